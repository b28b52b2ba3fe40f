"""Request and result models for the contact-tracking system."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


def _clean_attributes(value: Any) -> Dict[str, str]:
    """Drop null attributes and stringify the rest."""
    if not value:
        return {}
    return {str(k): str(v) for k, v in dict(value).items() if v is not None}


class ContactCreateRequest(BaseModel):
    """Create a contact for a newly observed call."""

    initiation_timestamp: datetime
    attributes: Dict[str, str] = Field(default_factory=dict)

    @field_validator("attributes", mode="before")
    @classmethod
    def drop_null_attributes(cls, v: Any) -> Dict[str, str]:
        return _clean_attributes(v)


class ContactUpdateRequest(BaseModel):
    """Push a state transition for an existing contact."""

    contact_id: str
    state: str
    timestamp: datetime
    attributes: Dict[str, str] = Field(default_factory=dict)

    @field_validator("attributes", mode="before")
    @classmethod
    def drop_null_attributes(cls, v: Any) -> Dict[str, str]:
        return _clean_attributes(v)


class HeartbeatSignal(BaseModel):
    """Liveness signal sent independently of call events."""

    status: str = "ACTIVE"
    timestamp: datetime
    events_sent: int = 0


class PublishStatus(str, Enum):
    """Outcome of one publish call."""

    PUBLISHED = "published"
    NOT_ELIGIBLE = "not_eligible"
    NO_SESSION = "no_session"
    FAILED = "failed"
    DISABLED = "disabled"


@dataclass
class PublishOutcome:
    """Result of publishing one classified event."""

    status: PublishStatus
    call_id: Optional[str] = None
    contact_id: Optional[str] = None
    state: Optional[str] = None
    attempts: int = 0
    contact_created: bool = False
    mapping_released: bool = False
    error: Optional[str] = None

    @property
    def published(self) -> bool:
        return self.status == PublishStatus.PUBLISHED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "call_id": self.call_id,
            "contact_id": self.contact_id,
            "state": self.state,
            "attempts": self.attempts,
            "contact_created": self.contact_created,
            "mapping_released": self.mapping_released,
            "error": self.error,
        }
