"""Periodic retention sweep of completed call sessions."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import structlog

from .registry import CallSessionRegistry

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RetentionSweeper:
    """
    Background task that evicts terminal sessions past the retention window.

    The sweeper only manages registry memory. It never touches the
    publisher's contact mapping and cannot trigger publication. Running it
    twice in a row with no new events is a no-op the second time.

    Usage:
        sweeper = RetentionSweeper(registry, timedelta(hours=1), interval_seconds=900)
        await sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(
        self,
        registry: CallSessionRegistry,
        retention_window: timedelta,
        interval_seconds: float = 900.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.registry = registry
        self.retention_window = retention_window
        self.interval_seconds = interval_seconds
        self._clock = clock or _utcnow
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.runs = 0
        self.total_evicted = 0
        self.last_run_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sweep loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "sweeper_started",
            interval_seconds=self.interval_seconds,
            retention_seconds=self.retention_window.total_seconds(),
        )

    async def stop(self) -> None:
        """Halt the sweep loop. A sweep in progress is abandoned."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("sweeper_stopped", runs=self.runs, evicted=self.total_evicted)

    async def run_once(self) -> List[str]:
        """Run a single sweep pass."""
        removed = await self.registry.sweep(self.retention_window, self._clock)
        self.runs += 1
        self.total_evicted += len(removed)
        self.last_run_at = self._clock()
        logger.debug("sweep_completed", removed=len(removed))
        return removed

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("sweep_failed", error=str(e))
