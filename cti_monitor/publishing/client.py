"""
Contact-Tracking Clients

Transport to the external contact-tracking system. The HTTP client posts
JSON to a single function URL and distinguishes request kinds by the
``X-Event-Type`` header; the simulated client issues contact ids locally so
the pipeline can run without an endpoint.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

import httpx
import structlog

from ..errors import ContactTrackingError, RateLimitError
from .models import ContactCreateRequest, ContactUpdateRequest, HeartbeatSignal

logger = structlog.get_logger(__name__)


class ContactTrackingClient(ABC):
    """Interface to the contact-tracking system."""

    @abstractmethod
    async def create_contact(self, request: ContactCreateRequest) -> str:
        """
        Create a contact.

        Returns:
            The external contact id

        Raises:
            ContactTrackingError: On transport or remote failure
        """
        pass

    @abstractmethod
    async def update_contact(self, request: ContactUpdateRequest) -> None:
        """
        Push a state update to an existing contact.

        Raises:
            ContactTrackingError: On transport or remote failure
        """
        pass

    @abstractmethod
    async def send_heartbeat(self, signal: HeartbeatSignal) -> None:
        """Send a liveness signal."""
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None


class HttpContactTrackingClient(ContactTrackingClient):
    """
    JSON-over-HTTP client for a contact-tracking function URL.

    Every request is a POST of the model's JSON body with headers:
    - ``X-Event-Type``: CONTACT_CREATE, CONTACT_UPDATE or HEARTBEAT
    - ``X-Call-ID``: originating call id, when known
    """

    USER_AGENT = "cti-monitor/1.0"
    CONTACT_ID_KEYS = ("contactId", "contact_id", "ContactId", "id")

    def __init__(
        self,
        endpoint_url: str,
        api_key: Optional[str] = None,
        connect_timeout_seconds: float = 30.0,
        read_timeout_seconds: float = 60.0,
        call_id_attribute: str = "source_call_id",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint_url = endpoint_url
        self.call_id_attribute = call_id_attribute
        self._owns_client = http_client is None

        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.USER_AGENT,
        }
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(read_timeout_seconds, connect=connect_timeout_seconds),
            follow_redirects=False,
        )
        self._headers = headers

    async def create_contact(self, request: ContactCreateRequest) -> str:
        call_id = request.attributes.get(self.call_id_attribute)
        data = await self._post("CONTACT_CREATE", request.model_dump(mode="json"), call_id)

        for key in self.CONTACT_ID_KEYS:
            contact_id = data.get(key)
            if contact_id:
                return str(contact_id)

        raise ContactTrackingError(
            "Create-contact response carried no contact id",
            retryable=False,
            call_id=call_id,
        )

    async def update_contact(self, request: ContactUpdateRequest) -> None:
        call_id = request.attributes.get(self.call_id_attribute)
        await self._post("CONTACT_UPDATE", request.model_dump(mode="json"), call_id)

    async def send_heartbeat(self, signal: HeartbeatSignal) -> None:
        await self._post("HEARTBEAT", signal.model_dump(mode="json"), None)

    async def close(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    async def _post(
        self,
        event_kind: str,
        body: Dict[str, Any],
        call_id: Optional[str],
    ) -> Dict[str, Any]:
        headers = dict(self._headers)
        headers["X-Event-Type"] = event_kind
        if call_id:
            headers["X-Call-ID"] = call_id

        try:
            response = await self._http_client.post(
                self.endpoint_url,
                json=body,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise ContactTrackingError(
                f"{event_kind} request failed: {e}",
                retryable=True,
                call_id=call_id,
            ) from e

        if response.status_code == 429:
            try:
                retry_after = float(response.headers.get("Retry-After", 1))
            except ValueError:
                retry_after = 1.0
            raise RateLimitError(retry_after, call_id=call_id)

        if response.status_code >= 400:
            raise ContactTrackingError(
                f"{event_kind} rejected: HTTP {response.status_code}",
                status_code=response.status_code,
                retryable=True,
                call_id=call_id,
            )

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}


class SimulatedContactTrackingClient(ContactTrackingClient):
    """
    In-process stand-in for the contact-tracking system.

    Issues ``contact-<8 hex>`` ids and records every request, with optional
    latency and failure injection for exercising the retry path.
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        latency_seconds: float = 0.0,
        rng: Optional[random.Random] = None,
    ):
        self.failure_rate = failure_rate
        self.latency_seconds = latency_seconds
        self._rng = rng or random.Random()
        self.created: List[Tuple[str, ContactCreateRequest]] = []
        self.updates: List[ContactUpdateRequest] = []
        self.heartbeats: List[HeartbeatSignal] = []

    async def create_contact(self, request: ContactCreateRequest) -> str:
        await self._simulate("create_contact")
        contact_id = f"contact-{uuid4().hex[:8]}"
        self.created.append((contact_id, request))
        logger.info("simulated_contact_created", contact_id=contact_id)
        return contact_id

    async def update_contact(self, request: ContactUpdateRequest) -> None:
        await self._simulate("update_contact")
        self.updates.append(request)
        logger.info(
            "simulated_contact_updated",
            contact_id=request.contact_id,
            state=request.state,
        )

    async def send_heartbeat(self, signal: HeartbeatSignal) -> None:
        self.heartbeats.append(signal)

    async def _simulate(self, operation: str) -> None:
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)
        if self.failure_rate > 0 and self._rng.random() < self.failure_rate:
            raise ContactTrackingError(f"Simulated {operation} failure", retryable=True)
