"""Retry policy for outbound publishing."""

from dataclasses import dataclass
from typing import Optional

from ..errors import ContactTrackingError, RateLimitError


@dataclass
class RetryPolicy:
    """
    Linear backoff: the delay before attempt ``n + 1`` is ``base * n``.

    ``max_attempts`` counts every attempt, including the first.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: Optional[float] = None

    def get_delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        delay = self.base_delay_seconds * attempt
        if self.max_delay_seconds is not None:
            delay = min(delay, self.max_delay_seconds)
        return delay

    def should_retry(self, attempt: int, error: Exception) -> bool:
        """Whether another attempt follows failed attempt ``attempt``."""
        if attempt >= self.max_attempts:
            return False
        if isinstance(error, ContactTrackingError):
            return error.retryable
        return True

    def delay_for(self, attempt: int, error: Exception) -> float:
        """Backoff delay, honouring a server-provided ``Retry-After``."""
        delay = self.get_delay(attempt)
        if isinstance(error, RateLimitError):
            delay = max(delay, error.retry_after)
        return delay
