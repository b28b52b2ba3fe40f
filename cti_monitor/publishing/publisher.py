"""
Contact Mapping Publisher

Forwards eligible call events to the contact-tracking system. For every
call it gets-or-creates one external contact, pushes the event's category
as a state update, and drops the call-to-contact mapping as soon as the
release of the call has been delivered.

Publishes for the same call are serialized through a per-call lock, so a
second event for a call always sees the contact created by the first.
Publishes for different calls run in parallel, bounded by a semaphore.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import structlog

from ..core.locks import KeyedLock
from ..discovery import UNKNOWN_EVENT_TYPE, ClassificationResult
from ..errors import ContactTrackingError
from ..routing import EventCategory
from ..sessions import CallSession, CallSessionRegistry
from .client import ContactTrackingClient
from .models import (
    ContactCreateRequest,
    ContactUpdateRequest,
    HeartbeatSignal,
    PublishOutcome,
    PublishStatus,
)
from .retry import RetryPolicy

logger = structlog.get_logger(__name__)

# Metadata keys copied onto the create-contact request
CREATE_ATTRIBUTE_FIELDS = ("ani", "dnis", "ucid")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContactMappingPublisher:
    """
    Publishes classified events and owns the call-to-contact mapping.

    Usage:
        publisher = ContactMappingPublisher(client, RetryPolicy(max_attempts=3))
        outcome = await publisher.publish(classification, session)
    """

    def __init__(
        self,
        client: ContactTrackingClient,
        retry_policy: Optional[RetryPolicy] = None,
        registry: Optional[CallSessionRegistry] = None,
        call_id_attribute: str = "source_call_id",
        max_concurrent: int = 50,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.registry = registry
        self.call_id_attribute = call_id_attribute
        self._clock = clock or _utcnow
        self._sleep = sleep or asyncio.sleep

        self._mapping: Dict[str, str] = {}
        self._locks = KeyedLock()
        self._slots = asyncio.Semaphore(max_concurrent)

        # Statistics
        self._events_sent = 0
        self._failed = 0
        self._contacts_created = 0
        self.last_heartbeat_at: Optional[datetime] = None

        self._heartbeat_task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    async def publish(
        self,
        classification: ClassificationResult,
        session: Optional[CallSession],
    ) -> PublishOutcome:
        """
        Publish one classified event.

        Ineligible events return ``NOT_ELIGIBLE`` without any external call.
        Transport and remote failures are retried with linear backoff; after
        the last attempt the event is logged as permanently failed and
        dropped.
        """
        if not classification.publish_eligible:
            logger.debug(
                "publish_not_eligible",
                event_type=classification.event_type,
                category=classification.category.value,
            )
            return PublishOutcome(
                status=PublishStatus.NOT_ELIGIBLE,
                call_id=classification.call_id,
            )

        if session is None:
            logger.debug("publish_without_session", event_type=classification.event_type)
            return PublishOutcome(
                status=PublishStatus.NO_SESSION,
                call_id=classification.call_id,
            )

        async with self._locks.hold(session.call_id):
            async with self._slots:
                return await self._publish_with_retry(classification, session)

    async def _publish_with_retry(
        self,
        classification: ClassificationResult,
        session: CallSession,
    ) -> PublishOutcome:
        call_id = session.call_id
        state = classification.category.value
        created = False
        attempt = 0

        while True:
            attempt += 1
            try:
                contact_id, was_created = await self._get_or_create(session)
                created = created or was_created
                await self.client.update_contact(
                    self._build_update(classification, session, contact_id)
                )
            except ContactTrackingError as e:
                if not self.retry_policy.should_retry(attempt, e):
                    self._failed += 1
                    logger.error(
                        "publish_failed_permanently",
                        call_id=call_id,
                        event_type=classification.event_type,
                        state=state,
                        attempts=attempt,
                        error=str(e),
                    )
                    return PublishOutcome(
                        status=PublishStatus.FAILED,
                        call_id=call_id,
                        contact_id=self._mapping.get(call_id),
                        state=state,
                        attempts=attempt,
                        contact_created=created,
                        error=str(e),
                    )

                delay = self.retry_policy.delay_for(attempt, e)
                logger.warning(
                    "publish_retrying",
                    call_id=call_id,
                    attempt=attempt,
                    delay=delay,
                    error=str(e),
                )
                await self._sleep(delay)
                continue

            self._events_sent += 1

            released = False
            if classification.category == EventCategory.RELEASED:
                released = self._mapping.pop(call_id, None) is not None
                logger.info("contact_mapping_released", call_id=call_id, contact_id=contact_id)

            logger.info(
                "event_published",
                call_id=call_id,
                contact_id=contact_id,
                state=state,
                attempts=attempt,
            )

            return PublishOutcome(
                status=PublishStatus.PUBLISHED,
                call_id=call_id,
                contact_id=contact_id,
                state=state,
                attempts=attempt,
                contact_created=created,
                mapping_released=released,
            )

    async def _get_or_create(self, session: CallSession) -> Tuple[str, bool]:
        """Resolve the external contact for a call, creating it on first use."""
        call_id = session.call_id

        existing = self._mapping.get(call_id)
        if existing:
            return existing, False

        if session.external_contact_id:
            # Mapping was already released (or a create was lost); start afresh
            logger.warning(
                "contact_mapping_missing",
                call_id=call_id,
                previous_contact_id=session.external_contact_id,
            )

        attributes: Dict[str, Optional[str]] = {self.call_id_attribute: call_id}
        for name in CREATE_ATTRIBUTE_FIELDS:
            attributes[name] = session.metadata.get(name)

        contact_id = await self.client.create_contact(
            ContactCreateRequest(
                initiation_timestamp=session.started_at,
                attributes=attributes,
            )
        )

        self._mapping[call_id] = contact_id
        self._contacts_created += 1
        session.external_contact_id = contact_id
        if self.registry is not None:
            self.registry.attach_contact(call_id, contact_id)

        logger.info("contact_created", call_id=call_id, contact_id=contact_id)
        return contact_id, True

    def _build_update(
        self,
        classification: ClassificationResult,
        session: CallSession,
        contact_id: str,
    ) -> ContactUpdateRequest:
        category = classification.category
        event_type = classification.event_type or UNKNOWN_EVENT_TYPE

        attributes: Dict[str, Optional[str]] = dict(session.metadata)
        attributes[self.call_id_attribute] = session.call_id
        attributes["event_type"] = event_type

        if category == EventCategory.QUEUED:
            attributes["queue_id"] = session.metadata.get("queueId")
        elif category == EventCategory.DIVERTED:
            attributes["agent_id"] = session.metadata.get("agentId")
        elif category == EventCategory.RELEASED:
            attributes["call_duration"] = str(session.duration_seconds(self._clock()))
        elif category == EventCategory.MEDIA_START:
            attributes["media_type"] = "AUDIO"
        elif category == EventCategory.UNKNOWN:
            attributes["custom_event_type"] = event_type

        return ContactUpdateRequest(
            contact_id=contact_id,
            state=category.value,
            timestamp=self._clock(),
            attributes=attributes,
        )

    # -------------------------------------------------------------------------
    # Heartbeat
    # -------------------------------------------------------------------------

    async def send_heartbeat(self, status: str = "ACTIVE") -> bool:
        """Send one liveness signal. Failures are logged, never retried."""
        signal = HeartbeatSignal(
            status=status,
            timestamp=self._clock(),
            events_sent=self._events_sent,
        )
        try:
            await self.client.send_heartbeat(signal)
        except ContactTrackingError as e:
            logger.warning("heartbeat_failed", error=str(e))
            return False

        self.last_heartbeat_at = signal.timestamp
        logger.debug("heartbeat_sent", events_sent=signal.events_sent)
        return True

    async def start_heartbeat(self, interval_seconds: float) -> None:
        """Start the periodic heartbeat."""
        if self._heartbeat_task is not None:
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(interval_seconds))

    async def stop_heartbeat(self) -> None:
        """Halt the periodic heartbeat."""
        if self._heartbeat_task is None:
            return
        self._heartbeat_task.cancel()
        try:
            await self._heartbeat_task
        except asyncio.CancelledError:
            pass
        self._heartbeat_task = None

    async def _heartbeat_loop(self, interval_seconds: float) -> None:
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                await self.send_heartbeat()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("heartbeat_loop_error", error=str(e))

    async def close(self) -> None:
        await self.stop_heartbeat()
        await self.client.close()

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def get_contact_id(self, call_id: str) -> Optional[str]:
        return self._mapping.get(call_id)

    def mapping_snapshot(self) -> Dict[str, str]:
        return dict(self._mapping)

    @property
    def mapping_size(self) -> int:
        return len(self._mapping)

    @property
    def events_sent(self) -> int:
        return self._events_sent

    @property
    def failed_count(self) -> int:
        return self._failed

    @property
    def contacts_created(self) -> int:
        return self._contacts_created
