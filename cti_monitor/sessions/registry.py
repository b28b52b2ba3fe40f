"""
Call Session Registry

Concurrent store of call sessions keyed by call identifier. Updates to the
same call are serialized through a per-call lock; updates to different
calls never wait on each other.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional

import structlog

from ..config import RetentionBasis
from ..core.locks import KeyedLock
from .models import CallSession, SessionEvent

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallSessionRegistry:
    """
    Registry of live call sessions.

    Sessions are created on the first event bearing an unseen call id and
    mutated by every later event for that id. The retention sweep is the
    only way a session leaves the registry.

    Args:
        is_terminal: Predicate over ``current_state``; terminal sessions are
            eligible for eviction once older than the retention window
        measure_from: Whether age counts from session start or last update
    """

    def __init__(
        self,
        is_terminal: Callable[[str], bool],
        measure_from: RetentionBasis = RetentionBasis.STARTED_AT,
    ):
        self._is_terminal = is_terminal
        self.measure_from = measure_from
        self._sessions: Dict[str, CallSession] = {}
        self._locks = KeyedLock()
        self._created = 0
        self._evicted = 0

    async def upsert(
        self,
        call_id: str,
        event_type: str,
        observed_at: datetime,
        fields: Optional[Mapping[str, str]] = None,
    ) -> CallSession:
        """
        Apply one event to the session for ``call_id``, creating it if needed.

        Appends ``(event_type, observed_at)`` to the history, sets the
        current state and merges ``fields`` into the metadata
        (last write wins per key).

        Returns:
            Snapshot of the session after the update
        """
        async with self._locks.hold(call_id):
            session = self._sessions.get(call_id)

            if session is None:
                session = CallSession(
                    call_id=call_id,
                    started_at=observed_at,
                    current_state=event_type,
                    last_updated_at=observed_at,
                )
                self._sessions[call_id] = session
                self._created += 1
                logger.debug("session_created", call_id=call_id, event_type=event_type)

            session.event_history.append(SessionEvent(event_type, observed_at))
            session.current_state = event_type
            session.last_updated_at = observed_at
            if fields:
                session.metadata.update(fields)

            if self._is_terminal(event_type):
                logger.info(
                    "call_completed",
                    call_id=call_id,
                    duration_seconds=session.duration_seconds(observed_at),
                    events=session.event_count,
                )

            return session.snapshot()

    def get(self, call_id: str) -> Optional[CallSession]:
        """Snapshot of the session, or None when no session exists."""
        session = self._sessions.get(call_id)
        return session.snapshot() if session else None

    def attach_contact(self, call_id: str, contact_id: str) -> bool:
        """Store the external contact id on a live session."""
        session = self._sessions.get(call_id)
        if session is None:
            return False
        session.external_contact_id = contact_id
        return True

    async def sweep(
        self,
        retention_window: timedelta,
        now_fn: Callable[[], datetime] = _utcnow,
    ) -> List[str]:
        """
        Evict terminal sessions older than ``retention_window``.

        Each candidate is re-checked under its own lock right before removal,
        so an event that lands during the sweep either keeps the session
        alive (it is no longer terminal) or arrives after the removal and
        starts a new session. No lock is held across more than one session.

        Returns:
            Call ids that were evicted
        """
        cutoff = now_fn() - retention_window
        removed: List[str] = []

        for call_id in list(self._sessions):
            if not self._is_expired(self._sessions.get(call_id), cutoff):
                continue

            async with self._locks.hold(call_id):
                session = self._sessions.get(call_id)
                if self._is_expired(session, cutoff):
                    del self._sessions[call_id]
                    removed.append(call_id)

        if removed:
            self._evicted += len(removed)
            logger.info("sessions_swept", removed=len(removed), remaining=len(self._sessions))

        return removed

    def snapshot(self) -> Dict[str, CallSession]:
        return {call_id: s.snapshot() for call_id, s in self._sessions.items()}

    def call_ids(self) -> List[str]:
        return list(self._sessions)

    @property
    def created_count(self) -> int:
        return self._created

    @property
    def evicted_count(self) -> int:
        return self._evicted

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions

    def _is_expired(self, session: Optional[CallSession], cutoff: datetime) -> bool:
        if session is None or not self._is_terminal(session.current_state):
            return False
        reference = (
            session.last_updated_at
            if self.measure_from == RetentionBasis.LAST_UPDATED
            else session.started_at
        )
        return reference < cutoff
