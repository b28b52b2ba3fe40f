"""Call session data structures."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class SessionEvent:
    """One entry of a session's event history."""

    event_type: str
    observed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "observed_at": self.observed_at.isoformat(),
        }


@dataclass
class CallSession:
    """
    Observed lifecycle of one call.

    ``event_history`` is append-only for the lifetime of the record; an event
    is never retracted, even if it later turns out to be misclassified.
    """

    call_id: str
    started_at: datetime
    current_state: str
    last_updated_at: datetime
    event_history: List[SessionEvent] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    external_contact_id: Optional[str] = None

    @property
    def event_count(self) -> int:
        return len(self.event_history)

    def duration_seconds(self, now: datetime) -> int:
        return max(0, int((now - self.started_at).total_seconds()))

    def snapshot(self) -> "CallSession":
        """Independent copy for readers outside the registry."""
        return CallSession(
            call_id=self.call_id,
            started_at=self.started_at,
            current_state=self.current_state,
            last_updated_at=self.last_updated_at,
            event_history=list(self.event_history),
            metadata=dict(self.metadata),
            external_contact_id=self.external_contact_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "call_id": self.call_id,
            "started_at": self.started_at.isoformat(),
            "current_state": self.current_state,
            "last_updated_at": self.last_updated_at.isoformat(),
            "event_history": [e.to_dict() for e in self.event_history],
            "metadata": dict(self.metadata),
            "external_contact_id": self.external_contact_id,
        }
