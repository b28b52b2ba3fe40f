"""
Publishing Package

Delivers eligible call events to the external contact-tracking system:

- Get-or-create mapping from call id to external contact id
- State updates with linear-backoff retries
- Periodic heartbeat
- HTTP and simulated transports

Example usage:

    from cti_monitor.publishing import (
        ContactMappingPublisher,
        HttpContactTrackingClient,
        RetryPolicy,
    )

    client = HttpContactTrackingClient("https://contacts.example.com/events")
    publisher = ContactMappingPublisher(client, RetryPolicy(max_attempts=3))

    outcome = await publisher.publish(classification, session)
"""

from .client import (
    ContactTrackingClient,
    HttpContactTrackingClient,
    SimulatedContactTrackingClient,
)
from .models import (
    ContactCreateRequest,
    ContactUpdateRequest,
    HeartbeatSignal,
    PublishOutcome,
    PublishStatus,
)
from .publisher import ContactMappingPublisher
from .retry import RetryPolicy

__all__ = [
    "ContactTrackingClient",
    "HttpContactTrackingClient",
    "SimulatedContactTrackingClient",
    "ContactCreateRequest",
    "ContactUpdateRequest",
    "HeartbeatSignal",
    "PublishOutcome",
    "PublishStatus",
    "ContactMappingPublisher",
    "RetryPolicy",
]
