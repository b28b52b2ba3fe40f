"""API routes for operator diagnostics of the event monitor."""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..discovery import suggest_handler_name
from ..monitor import EventMonitor

router = APIRouter(prefix="/diagnostics", tags=["diagnostics"])


# Response models

class HealthResponse(BaseModel):
    """Liveness of the pipeline."""
    status: str
    running: bool
    last_heartbeat_at: Optional[str] = None


class StatsResponse(BaseModel):
    """Running counters."""
    running: bool
    total_processed: int
    total_published: int
    total_errors: int
    discovered_event_types: int
    active_sessions: int
    contact_mappings: int
    queue_depth: int
    in_flight_publishes: int
    success_rate: float
    started_at: Optional[str] = None
    last_heartbeat_at: Optional[str] = None


class EventTypeResponse(BaseModel):
    """One discovered event type."""
    event_type: str
    first_seen_at: str
    last_seen_at: str
    occurrence_count: int
    associated_call_ids: List[str] = Field(default_factory=list)
    last_sample_payload: Optional[str] = None
    suggested_handler: str


class SessionEventResponse(BaseModel):
    event_type: str
    observed_at: str


class SessionResponse(BaseModel):
    """Current state of one call session."""
    call_id: str
    started_at: str
    current_state: str
    last_updated_at: str
    event_history: List[SessionEventResponse] = Field(default_factory=list)
    metadata: Dict[str, str] = Field(default_factory=dict)
    external_contact_id: Optional[str] = None
    contact_mapped: bool = False


# Dependency injection

_monitor: Optional[EventMonitor] = None


def set_monitor(monitor: Optional[EventMonitor]) -> None:
    global _monitor
    _monitor = monitor


def get_monitor() -> EventMonitor:
    global _monitor
    if _monitor is None:
        _monitor = EventMonitor()
    return _monitor


# Routes

@router.get("/health", response_model=HealthResponse)
async def get_health(monitor: EventMonitor = Depends(get_monitor)):
    """Report whether the pipeline is running."""
    stats = monitor.get_stats()
    return HealthResponse(
        status="healthy" if stats.running else "stopped",
        running=stats.running,
        last_heartbeat_at=stats.last_heartbeat_at.isoformat() if stats.last_heartbeat_at else None,
    )


@router.get("/stats", response_model=StatsResponse)
async def get_stats(monitor: EventMonitor = Depends(get_monitor)):
    """Get registry size, mapping size and running counters."""
    return StatsResponse(**monitor.get_stats().to_dict())


@router.get("/event-types", response_model=List[EventTypeResponse])
async def get_event_types(
    limit: Optional[int] = Query(None, ge=1, description="Return at most this many entries"),
    monitor: EventMonitor = Depends(get_monitor),
):
    """Get the discovered event-type table, most frequent first."""
    entries = monitor.discovered_event_types()
    if limit:
        entries = entries[:limit]

    return [
        EventTypeResponse(
            event_type=e.event_type,
            first_seen_at=e.first_seen_at.isoformat(),
            last_seen_at=e.last_seen_at.isoformat(),
            occurrence_count=e.occurrence_count,
            associated_call_ids=e.call_ids,
            last_sample_payload=e.last_sample_payload,
            suggested_handler=suggest_handler_name(e.event_type),
        )
        for e in entries
    ]


@router.get("/sessions/{call_id}", response_model=SessionResponse)
async def get_session(
    call_id: str,
    monitor: EventMonitor = Depends(get_monitor),
):
    """Get the session recorded for a call."""
    session = monitor.get_session(call_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")

    return SessionResponse(
        call_id=session.call_id,
        started_at=session.started_at.isoformat(),
        current_state=session.current_state,
        last_updated_at=session.last_updated_at.isoformat(),
        event_history=[
            SessionEventResponse(event_type=e.event_type, observed_at=e.observed_at.isoformat())
            for e in session.event_history
        ],
        metadata=session.metadata,
        external_contact_id=session.external_contact_id,
        contact_mapped=monitor.publisher.get_contact_id(call_id) is not None,
    )
