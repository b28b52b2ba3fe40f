"""
CTI Event Monitor

Wires the pipeline together:

    raw payload -> EventClassifier -> CallSessionRegistry
                -> EligibilityRouter verdict -> ContactMappingPublisher

Payloads submitted with ``submit`` are drained by a pool of worker tasks.
Classification and the registry update happen on the worker; eligible
events are then handed to a tracked background publish task, so a slow
contact-tracking system never stalls ingestion of unrelated calls. The
retention sweeper, the heartbeat and the periodic status report run on
their own schedules.

Usage:
    monitor = EventMonitor(get_settings())
    await monitor.start()

    await monitor.submit(payload)
    ...
    await monitor.stop()
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

import structlog

from .config import MonitorSettings, PublisherSettings, get_settings, load_rules_file
from .discovery import (
    UNKNOWN_EVENT_TYPE,
    ClassificationResult,
    DiscoveredEventType,
    EventClassifier,
    EventTypeCatalog,
    metadata_rules,
    rules_from_config,
    suggest_handler_name,
)
from .errors import MonitorNotRunningError
from .publishing import (
    ContactMappingPublisher,
    ContactTrackingClient,
    HttpContactTrackingClient,
    PublishOutcome,
    PublishStatus,
    RetryPolicy,
    SimulatedContactTrackingClient,
)
from .routing import EligibilityRouter, category_rules_from_config
from .sessions import CallSession, CallSessionRegistry, RetentionSweeper

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Results
# =============================================================================


@dataclass
class ProcessingResult:
    """Outcome of pushing one payload through the whole pipeline."""

    classification: ClassificationResult
    session: Optional[CallSession] = None
    outcome: Optional[PublishOutcome] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        if self.error is not None:
            return False
        return self.outcome is None or self.outcome.status != PublishStatus.FAILED

    @property
    def published(self) -> bool:
        return self.outcome is not None and self.outcome.published


@dataclass
class BatchResult:
    """Aggregate outcome of ``process_batch``."""

    total: int = 0
    successful: int = 0
    published: int = 0
    failed: int = 0
    results: List[ProcessingResult] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.successful / self.total * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "published": self.published,
            "failed": self.failed,
            "success_rate": round(self.success_rate, 2),
        }


@dataclass
class MonitorStats:
    """Running counters for health reporting."""

    running: bool
    total_processed: int
    total_published: int
    total_errors: int
    discovered_event_types: int
    active_sessions: int
    contact_mappings: int
    queue_depth: int = 0
    in_flight_publishes: int = 0
    started_at: Optional[datetime] = None
    last_heartbeat_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        if self.total_processed == 0:
            return 0.0
        return (self.total_processed - self.total_errors) / self.total_processed * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "total_processed": self.total_processed,
            "total_published": self.total_published,
            "total_errors": self.total_errors,
            "discovered_event_types": self.discovered_event_types,
            "active_sessions": self.active_sessions,
            "contact_mappings": self.contact_mappings,
            "queue_depth": self.queue_depth,
            "in_flight_publishes": self.in_flight_publishes,
            "success_rate": round(self.success_rate, 2),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_heartbeat_at": (
                self.last_heartbeat_at.isoformat() if self.last_heartbeat_at else None
            ),
        }


# =============================================================================
# Monitor
# =============================================================================


class EventMonitor:
    """
    The event discovery, correlation and publishing pipeline.

    Args:
        settings: Monitor settings; defaults to ``get_settings()``
        client: Contact-tracking client; built from the publisher settings
            when omitted (simulated when no endpoint is configured)
        clock: Source of "now" for sessions, catalog and retention
        sleep: Awaitable used between publish retries
    """

    def __init__(
        self,
        settings: Optional[MonitorSettings] = None,
        client: Optional[ContactTrackingClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.settings = settings or get_settings()
        self._clock = clock or _utcnow

        rules: Dict[str, Any] = {}
        if self.settings.discovery.rules_file:
            rules = load_rules_file(self.settings.discovery.rules_file)

        self.router = self._build_router(rules)
        self.catalog = EventTypeCatalog(
            max_event_types=self.settings.discovery.max_event_types,
            max_call_ids_per_type=self.settings.discovery.max_call_ids_per_type,
            sample_length=self.settings.discovery.sample_length,
            clock=self._clock,
        )
        self.classifier = self._build_classifier(rules)
        self.registry = CallSessionRegistry(
            is_terminal=self.router.is_terminal,
            measure_from=self.settings.retention.measure_from,
        )

        publisher_settings = self.settings.publisher
        self.publisher = ContactMappingPublisher(
            client=client or build_client(publisher_settings),
            retry_policy=RetryPolicy(
                max_attempts=publisher_settings.max_attempts,
                base_delay_seconds=publisher_settings.retry_base_delay_seconds,
            ),
            registry=self.registry,
            call_id_attribute=publisher_settings.call_id_attribute,
            max_concurrent=publisher_settings.max_concurrent_publishes,
            clock=self._clock,
            sleep=sleep,
        )
        self.sweeper = RetentionSweeper(
            self.registry,
            retention_window=timedelta(seconds=self.settings.retention.retention_window_seconds),
            interval_seconds=self.settings.retention.sweep_interval_seconds,
            clock=self._clock,
        )

        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._publish_tasks: Set[asyncio.Task] = set()
        self._status_task: Optional[asyncio.Task] = None
        self._running = False
        self._started_at: Optional[datetime] = None

        # Statistics
        self._processed = 0
        self._errors = 0

    # -------------------------------------------------------------------------
    # Construction helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _build_router(rules: Dict[str, Any]) -> EligibilityRouter:
        categories = rules.get("categories")
        return EligibilityRouter(
            rules=category_rules_from_config(categories) if categories else None,
            correlation_markers=rules.get("correlation_markers"),
        )

    def _build_classifier(self, rules: Dict[str, Any]) -> EventClassifier:
        event_type_rules = rules.get("event_type_rules")
        call_id_rules = rules.get("call_id_rules")
        metadata_fields = rules.get("metadata_fields")

        return EventClassifier(
            router=self.router,
            catalog=self.catalog,
            event_type_rules=(
                rules_from_config(event_type_rules, "event_type_rules") if event_type_rules else None
            ),
            call_id_rules=(
                rules_from_config(call_id_rules, "call_id_rules") if call_id_rules else None
            ),
            metadata_rules=metadata_rules(metadata_fields) if metadata_fields else None,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start workers, sweeper, heartbeat and status report."""
        if self._running:
            return

        self._running = True
        self._started_at = self._clock()
        self._queue = asyncio.Queue(maxsize=self.settings.queue_size)

        for i in range(self.settings.workers):
            self._workers.append(asyncio.create_task(self._worker_loop(i)))

        await self.sweeper.start()
        if self.settings.publisher.enabled:
            await self.publisher.start_heartbeat(self.settings.publisher.heartbeat_interval_seconds)
        self._status_task = asyncio.create_task(self._status_loop())

        logger.info(
            "monitor_started",
            workers=len(self._workers),
            publishing=self.settings.publisher.enabled,
            client=type(self.publisher.client).__name__,
        )

    async def stop(self) -> None:
        """
        Stop the pipeline.

        Workers, sweeper, heartbeat and status report are halted at once.
        In-flight publishes get ``shutdown_grace_seconds`` to finish and are
        cancelled after that.
        """
        if not self._running:
            return
        self._running = False

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        if self._queue is not None and not self._queue.empty():
            logger.warning("queued_payloads_discarded", count=self._queue.qsize())

        await self.sweeper.stop()
        await self.publisher.stop_heartbeat()

        if self._status_task:
            self._status_task.cancel()
            try:
                await self._status_task
            except asyncio.CancelledError:
                pass
            self._status_task = None

        await self._await_publishes(self.settings.shutdown_grace_seconds)
        await self.publisher.close()

        self.log_status_report()
        logger.info("monitor_stopped", processed=self._processed, errors=self._errors)

    async def __aenter__(self) -> "EventMonitor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _await_publishes(self, timeout: float) -> None:
        if not self._publish_tasks:
            return

        done, pending = await asyncio.wait(set(self._publish_tasks), timeout=timeout)
        if pending:
            logger.warning("publishes_abandoned", count=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    async def submit(self, payload: str) -> None:
        """
        Queue a payload for the worker pool.

        Waits for queue space when the queue is full.

        Raises:
            MonitorNotRunningError: If the monitor has not been started
        """
        if not self._running or self._queue is None:
            raise MonitorNotRunningError()
        await self._queue.put(payload)

    async def drain(self) -> None:
        """Wait until every submitted payload has been fully processed."""
        if self._queue is not None:
            await self._queue.join()
        while self._publish_tasks:
            await asyncio.gather(*list(self._publish_tasks), return_exceptions=True)

    async def process_event(self, payload: str) -> ProcessingResult:
        """Classify, record and publish one payload inline."""
        classification = self._classify(payload)
        try:
            session = await self._record_session(classification)
        except Exception as e:
            self._errors += 1
            logger.error("event_processing_failed", call_id=classification.call_id, error=str(e))
            return ProcessingResult(classification=classification, error=str(e))

        outcome = await self._publish(classification, session)
        return ProcessingResult(
            classification=classification,
            session=session,
            outcome=outcome,
        )

    async def process_batch(self, payloads: Iterable[str]) -> BatchResult:
        """
        Process payloads one after another, in order.

        Sequential processing keeps per-call ordering identical to input
        order across the batch.
        """
        batch = BatchResult()

        for payload in payloads:
            result = await self.process_event(payload)
            batch.results.append(result)
            batch.total += 1
            if result.success:
                batch.successful += 1
            else:
                batch.failed += 1
            if result.published:
                batch.published += 1

        logger.info("batch_processed", **batch.to_dict())
        return batch

    def _classify(self, payload: str) -> ClassificationResult:
        self._processed += 1
        return self.classifier.classify(payload)

    async def _record_session(self, classification: ClassificationResult) -> Optional[CallSession]:
        if not classification.call_id:
            return None
        return await self.registry.upsert(
            classification.call_id,
            classification.event_type or UNKNOWN_EVENT_TYPE,
            self._clock(),
            classification.fields,
        )

    async def _publish(
        self,
        classification: ClassificationResult,
        session: Optional[CallSession],
    ) -> PublishOutcome:
        if not self.settings.publisher.enabled:
            return PublishOutcome(status=PublishStatus.DISABLED, call_id=classification.call_id)

        try:
            outcome = await self.publisher.publish(classification, session)
        except Exception as e:
            self._errors += 1
            logger.error(
                "publish_crashed",
                call_id=classification.call_id,
                event_type=classification.event_type,
                error=str(e),
            )
            return PublishOutcome(
                status=PublishStatus.FAILED,
                call_id=classification.call_id,
                error=str(e),
            )

        if outcome.status == PublishStatus.FAILED:
            self._errors += 1
        return outcome

    async def _worker_loop(self, worker_id: int) -> None:
        assert self._queue is not None
        logger.debug("worker_started", worker=worker_id)

        while True:
            payload = await self._queue.get()
            try:
                classification = self._classify(payload)
                session = await self._record_session(classification)
                if classification.publish_eligible and self.settings.publisher.enabled:
                    self._dispatch_publish(classification, session)
            except Exception as e:
                self._errors += 1
                logger.error("event_processing_failed", worker=worker_id, error=str(e))
            finally:
                self._queue.task_done()

    def _dispatch_publish(
        self,
        classification: ClassificationResult,
        session: Optional[CallSession],
    ) -> None:
        task = asyncio.create_task(self._publish(classification, session))
        self._publish_tasks.add(task)
        task.add_done_callback(self._publish_tasks.discard)

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def get_stats(self) -> MonitorStats:
        return MonitorStats(
            running=self._running,
            total_processed=self._processed,
            total_published=self.publisher.events_sent,
            total_errors=self._errors,
            discovered_event_types=len(self.catalog),
            active_sessions=len(self.registry),
            contact_mappings=self.publisher.mapping_size,
            queue_depth=self._queue.qsize() if self._queue is not None else 0,
            in_flight_publishes=len(self._publish_tasks),
            started_at=self._started_at,
            last_heartbeat_at=self.publisher.last_heartbeat_at,
        )

    def get_session(self, call_id: str) -> Optional[CallSession]:
        return self.registry.get(call_id)

    def discovered_event_types(self) -> List[DiscoveredEventType]:
        """Discovered event types, most frequent first."""
        return self.catalog.summary()

    def log_status_report(self) -> None:
        """Log running counters and the discovered event-type summary."""
        stats = self.get_stats()
        logger.info("monitor_status", **stats.to_dict())

        for entry in self.discovered_event_types():
            logger.info(
                "discovered_event_type",
                event_type=entry.event_type,
                occurrences=entry.occurrence_count,
                call_ids=len(entry.associated_call_ids),
                last_seen_at=entry.last_seen_at.isoformat(),
                handler=suggest_handler_name(entry.event_type),
            )

    async def _status_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.settings.status_report_interval_seconds)
                self.log_status_report()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("status_report_failed", error=str(e))


def build_client(settings: PublisherSettings) -> ContactTrackingClient:
    """HTTP client for a configured endpoint, otherwise the simulated client."""
    if settings.endpoint_url:
        return HttpContactTrackingClient(
            endpoint_url=settings.endpoint_url,
            api_key=settings.api_key,
            connect_timeout_seconds=settings.connect_timeout_seconds,
            read_timeout_seconds=settings.read_timeout_seconds,
            call_id_attribute=settings.call_id_attribute,
        )

    logger.info("simulated_client_selected", failure_rate=settings.simulated_failure_rate)
    return SimulatedContactTrackingClient(failure_rate=settings.simulated_failure_rate)
