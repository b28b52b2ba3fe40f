"""
CTI Event Monitor

Discovers, correlates and publishes telephony switching-platform events:

- Pattern-based classification of opaque payloads into event types and call ids
- A concurrent call-session registry with retention-window eviction
- Category routing that decides which events reach the contact-tracking system
- Get-or-create contact mapping with retried delivery and a heartbeat

Example usage:

    from cti_monitor import EventMonitor, get_settings

    monitor = EventMonitor(get_settings())
    await monitor.start()
    await monitor.submit('<DeliveredEvent callId="C1" ani="5551234"/>')
    ...
    await monitor.stop()
"""

from .config import MonitorSettings, get_settings
from .discovery import ClassificationResult, EventClassifier, EventTypeCatalog
from .errors import (
    ConfigurationError,
    ContactTrackingError,
    MonitorError,
    MonitorNotRunningError,
    PublishError,
    RateLimitError,
)
from .monitor import BatchResult, EventMonitor, MonitorStats, ProcessingResult
from .publishing import ContactMappingPublisher, PublishOutcome, PublishStatus
from .routing import EligibilityRouter, EventCategory
from .sessions import CallSession, CallSessionRegistry, RetentionSweeper

__version__ = "1.0.0"

__all__ = [
    "MonitorSettings",
    "get_settings",
    "ClassificationResult",
    "EventClassifier",
    "EventTypeCatalog",
    "ConfigurationError",
    "ContactTrackingError",
    "MonitorError",
    "MonitorNotRunningError",
    "PublishError",
    "RateLimitError",
    "BatchResult",
    "EventMonitor",
    "MonitorStats",
    "ProcessingResult",
    "ContactMappingPublisher",
    "PublishOutcome",
    "PublishStatus",
    "EligibilityRouter",
    "EventCategory",
    "CallSession",
    "CallSessionRegistry",
    "RetentionSweeper",
]
