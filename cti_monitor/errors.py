"""Exception hierarchy for the CTI event monitor."""

from typing import Optional


class MonitorError(Exception):
    """Base exception for monitor errors."""

    def __init__(self, message: str, code: str = "monitor_error"):
        super().__init__(message)
        self.message = message
        self.code = code


class MonitorNotRunningError(MonitorError):
    """Raised when payloads are submitted to a stopped monitor."""

    def __init__(self, message: str = "Monitor is not running"):
        super().__init__(message, code="not_running")


class ConfigurationError(MonitorError):
    """Raised when a rules file or setting cannot be used."""

    def __init__(self, message: str):
        super().__init__(message, code="configuration_error")


class PublishError(MonitorError):
    """Base exception for publishing failures."""

    def __init__(
        self,
        message: str,
        call_id: Optional[str] = None,
        attempts: int = 0,
        code: str = "publish_error",
    ):
        super().__init__(message, code=code)
        self.call_id = call_id
        self.attempts = attempts


class ContactTrackingError(PublishError):
    """Transport or remote failure talking to the contact-tracking system."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = True,
        call_id: Optional[str] = None,
    ):
        super().__init__(message, call_id=call_id, code="contact_tracking_error")
        self.status_code = status_code
        self.retryable = retryable


class RateLimitError(ContactTrackingError):
    """Raised when the contact-tracking system throttles requests."""

    def __init__(self, retry_after: float, call_id: Optional[str] = None):
        super().__init__(
            f"Rate limited, retry after {retry_after}s",
            status_code=429,
            retryable=True,
            call_id=call_id,
        )
        self.retry_after = retry_after
