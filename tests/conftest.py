"""Shared pytest fixtures for testing."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import pytest
import pytest_asyncio

from cti_monitor.config import (
    DiscoverySettings,
    MonitorSettings,
    PublisherSettings,
    RetentionSettings,
)
from cti_monitor.errors import ContactTrackingError
from cti_monitor.publishing.client import ContactTrackingClient
from cti_monitor.publishing.models import (
    ContactCreateRequest,
    ContactUpdateRequest,
    HeartbeatSignal,
)


# =============================================================================
# Test Doubles
# =============================================================================


class FixedClock:
    """Manually advanced clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingClient(ContactTrackingClient):
    """Contact-tracking client that records requests and fails on demand."""

    def __init__(self):
        self.creates: List[ContactCreateRequest] = []
        self.updates: List[ContactUpdateRequest] = []
        self.heartbeats: List[HeartbeatSignal] = []
        self.fail_creates = 0
        self.fail_updates = 0
        self.fail_heartbeats = False
        self.error: Optional[ContactTrackingError] = None
        self.closed = False
        self._next_id = 0

    @property
    def update_states(self) -> List[str]:
        return [u.state for u in self.updates]

    @property
    def calls(self) -> List[Tuple[str, object]]:
        return [("create", r) for r in self.creates] + [("update", r) for r in self.updates]

    async def create_contact(self, request: ContactCreateRequest) -> str:
        # Suspend like a real round trip so concurrent publishes interleave
        await asyncio.sleep(0)
        if self.fail_creates > 0:
            self.fail_creates -= 1
            raise self.error or ContactTrackingError("create failed")
        self.creates.append(request)
        self._next_id += 1
        return f"contact-{self._next_id:04d}"

    async def update_contact(self, request: ContactUpdateRequest) -> None:
        if self.fail_updates > 0:
            self.fail_updates -= 1
            raise self.error or ContactTrackingError("update failed")
        self.updates.append(request)

    async def send_heartbeat(self, signal: HeartbeatSignal) -> None:
        if self.fail_heartbeats:
            raise ContactTrackingError("heartbeat failed")
        self.heartbeats.append(signal)

    async def close(self) -> None:
        self.closed = True


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# =============================================================================
# Payloads
# =============================================================================


def call_event(event_type: str, call_id: str, **attributes: str) -> str:
    """Build an XML-shaped call event payload."""
    extra = "".join(f' {key}="{value}"' for key, value in attributes.items())
    return (
        f'<{event_type} xmlns="http://www.ecma-international.org/standards/ecma-323/csta/ed3" '
        f'callId="{call_id}"{extra}/>'
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def recording_client() -> RecordingClient:
    return RecordingClient()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings() -> MonitorSettings:
    """Monitor settings with short intervals and no endpoint."""
    return MonitorSettings(
        workers=2,
        queue_size=100,
        shutdown_grace_seconds=1.0,
        status_report_interval_seconds=3600,
        publisher=PublisherSettings(
            endpoint_url=None,
            max_attempts=3,
            retry_base_delay_seconds=1.0,
            heartbeat_interval_seconds=3600,
        ),
        retention=RetentionSettings(
            sweep_interval_seconds=3600,
            retention_window_seconds=3600,
        ),
        discovery=DiscoverySettings(max_event_types=100),
    )


@pytest.fixture
def router():
    from cti_monitor.routing import EligibilityRouter

    return EligibilityRouter()


@pytest.fixture
def catalog(clock):
    from cti_monitor.discovery import EventTypeCatalog

    return EventTypeCatalog(clock=clock)


@pytest.fixture
def classifier(router, catalog):
    from cti_monitor.discovery import EventClassifier

    return EventClassifier(router=router, catalog=catalog)


@pytest.fixture
def registry(router):
    from cti_monitor.sessions import CallSessionRegistry

    return CallSessionRegistry(is_terminal=router.is_terminal)


@pytest.fixture
def publisher(recording_client, registry, clock, sleep_recorder):
    from cti_monitor.publishing import ContactMappingPublisher, RetryPolicy

    return ContactMappingPublisher(
        recording_client,
        RetryPolicy(max_attempts=3, base_delay_seconds=1.0),
        registry=registry,
        clock=clock,
        sleep=sleep_recorder,
    )


@pytest_asyncio.fixture
async def monitor(settings, recording_client, clock, sleep_recorder):
    """Monitor wired to the recording client; stopped after the test."""
    from cti_monitor.monitor import EventMonitor

    event_monitor = EventMonitor(
        settings,
        client=recording_client,
        clock=clock,
        sleep=sleep_recorder,
    )
    yield event_monitor
    await event_monitor.stop()


@pytest.fixture
def make_event():
    """Factory for call event payloads."""
    return call_event
