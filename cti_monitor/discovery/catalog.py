"""
Discovered Event-Type Catalog

Operator-facing memory of every event type the switching platform has
emitted, since the set is not known up front. The catalog is bounded: it
keeps at most ``max_event_types`` entries (the least recently seen type is
evicted when a new one arrives) and at most ``max_call_ids_per_type``
associated call ids per entry.
"""

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

# Token recorded for payloads whose event type could not be extracted
UNKNOWN_EVENT_TYPE = "UnknownEvent"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DiscoveredEventType:
    """Cumulative diagnostics for one event type."""

    event_type: str
    first_seen_at: datetime
    last_seen_at: datetime
    occurrence_count: int = 1
    associated_call_ids: "OrderedDict[str, None]" = field(default_factory=OrderedDict)
    last_sample_payload: str = ""

    @property
    def call_ids(self) -> List[str]:
        return list(self.associated_call_ids)

    def copy(self) -> "DiscoveredEventType":
        return DiscoveredEventType(
            event_type=self.event_type,
            first_seen_at=self.first_seen_at,
            last_seen_at=self.last_seen_at,
            occurrence_count=self.occurrence_count,
            associated_call_ids=OrderedDict(self.associated_call_ids),
            last_sample_payload=self.last_sample_payload,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "first_seen_at": self.first_seen_at.isoformat(),
            "last_seen_at": self.last_seen_at.isoformat(),
            "occurrence_count": self.occurrence_count,
            "associated_call_ids": self.call_ids,
            "last_sample_payload": self.last_sample_payload,
        }


class EventTypeCatalog:
    """
    Thread-safe, bounded table of discovered event types.

    ``record`` is an increment-or-create under a single lock, so concurrent
    sightings of the same type never lose a count.
    """

    def __init__(
        self,
        max_event_types: int = 1000,
        max_call_ids_per_type: int = 500,
        sample_length: int = 500,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.max_event_types = max_event_types
        self.max_call_ids_per_type = max_call_ids_per_type
        self.sample_length = sample_length
        self._clock = clock or _utcnow
        self._entries: "OrderedDict[str, DiscoveredEventType]" = OrderedDict()
        self._lock = threading.Lock()
        self._evicted = 0

    def record(
        self,
        event_type: Optional[str],
        call_id: Optional[str],
        payload: str,
    ) -> bool:
        """
        Record one sighting.

        Returns:
            True if this was the first sighting of the event type
        """
        key = event_type or UNKNOWN_EVENT_TYPE
        sample = payload[: self.sample_length] if payload else ""
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
            is_new = entry is None

            if entry is None:
                if len(self._entries) >= self.max_event_types:
                    evicted, _ = self._entries.popitem(last=False)
                    self._evicted += 1
                    logger.debug("event_type_evicted", event_type=evicted)
                entry = DiscoveredEventType(
                    event_type=key,
                    first_seen_at=now,
                    last_seen_at=now,
                    occurrence_count=1,
                    last_sample_payload=sample,
                )
                self._entries[key] = entry
            else:
                entry.occurrence_count += 1
                entry.last_seen_at = now
                entry.last_sample_payload = sample
                self._entries.move_to_end(key)

            if call_id and self.max_call_ids_per_type > 0:
                ids = entry.associated_call_ids
                if call_id in ids:
                    ids.move_to_end(call_id)
                else:
                    ids[call_id] = None
                    while len(ids) > self.max_call_ids_per_type:
                        ids.popitem(last=False)

        if is_new:
            logger.info("event_type_discovered", event_type=key, call_id=call_id)

        return is_new

    def get(self, event_type: str) -> Optional[DiscoveredEventType]:
        with self._lock:
            entry = self._entries.get(event_type)
            return entry.copy() if entry else None

    def snapshot(self) -> Dict[str, DiscoveredEventType]:
        """Copy of the table, safe to read while recording continues."""
        with self._lock:
            return {key: entry.copy() for key, entry in self._entries.items()}

    def summary(self) -> List[DiscoveredEventType]:
        """Entries sorted by occurrence count, most frequent first."""
        return sorted(
            self.snapshot().values(),
            key=lambda e: e.occurrence_count,
            reverse=True,
        )

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()
            self._evicted = 0

    @property
    def evicted_count(self) -> int:
        return self._evicted

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, event_type: object) -> bool:
        with self._lock:
            return event_type in self._entries
