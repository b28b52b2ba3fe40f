"""
Event Classifier

Turns an opaque payload from the switching platform into a symbolic event
type, an optional call identifier and a routing verdict. Payloads are never
decoded as protocol messages; the classifier only runs ordered extraction
rules over the text, so malformed or non-XML input is classified rather
than rejected.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence

import structlog

from ..routing import EligibilityRouter, EventCategory
from .catalog import EventTypeCatalog
from .rules import (
    DEFAULT_CALL_ID_RULES,
    DEFAULT_EVENT_TYPE_RULES,
    DEFAULT_METADATA_RULES,
    ExtractionRule,
    extract_fields,
    first_match,
)

logger = structlog.get_logger(__name__)

# Length of payload excerpts written to logs
LOG_SAMPLE_LENGTH = 500


@dataclass(frozen=True)
class ClassificationResult:
    """
    Immutable outcome of classifying one payload.

    ``fields`` holds the auxiliary metadata (agent, queue, ani, dnis, ucid)
    extracted alongside the call id; it is merged into the call session.
    """

    raw_payload: str
    event_type: Optional[str]
    call_id: Optional[str]
    category: EventCategory
    publish_eligible: bool
    terminal: bool = False
    event_type_rule: Optional[str] = None
    call_id_rule: Optional[str] = None
    fields: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    @property
    def recognized(self) -> bool:
        return self.event_type is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "call_id": self.call_id,
            "category": self.category.value,
            "publish_eligible": self.publish_eligible,
            "terminal": self.terminal,
            "event_type_rule": self.event_type_rule,
            "call_id_rule": self.call_id_rule,
            "fields": dict(self.fields),
        }


class EventClassifier:
    """
    Classifies raw payloads using ordered first-match rule lists.

    Classification is a pure function of the payload. The only side effect
    is recording the sighting in the discovered event-type catalog, and a
    failure there is logged and swallowed so it can never change or fail a
    classification.

    Usage:
        classifier = EventClassifier(router=EligibilityRouter(), catalog=EventTypeCatalog())
        result = classifier.classify('<DeliveredEvent callId="C1" ...>')
    """

    def __init__(
        self,
        router: Optional[EligibilityRouter] = None,
        catalog: Optional[EventTypeCatalog] = None,
        event_type_rules: Optional[Sequence[ExtractionRule]] = None,
        call_id_rules: Optional[Sequence[ExtractionRule]] = None,
        metadata_rules: Optional[Sequence[ExtractionRule]] = None,
    ):
        self.router = router or EligibilityRouter()
        self.catalog = catalog
        self.event_type_rules = tuple(event_type_rules) if event_type_rules is not None else DEFAULT_EVENT_TYPE_RULES
        self.call_id_rules = tuple(call_id_rules) if call_id_rules is not None else DEFAULT_CALL_ID_RULES
        self.metadata_rules = tuple(metadata_rules) if metadata_rules is not None else DEFAULT_METADATA_RULES

    def classify(self, payload: Optional[str]) -> ClassificationResult:
        """Classify a payload. Never raises."""
        raw = payload if isinstance(payload, str) else ""

        try:
            result = self._classify(raw)
        except Exception as e:
            logger.warning(
                "classification_failed",
                error=str(e),
                sample=raw[:LOG_SAMPLE_LENGTH],
            )
            result = ClassificationResult(
                raw_payload=raw,
                event_type=None,
                call_id=None,
                category=EventCategory.UNKNOWN,
                publish_eligible=self._fallback_eligibility(raw),
            )

        self._record(result)
        return result

    def extract_event_type(self, payload: str) -> Optional[str]:
        match = first_match(self.event_type_rules, payload)
        return match.value if match else None

    def extract_call_id(self, payload: str) -> Optional[str]:
        match = first_match(self.call_id_rules, payload)
        return match.value if match else None

    def _classify(self, raw: str) -> ClassificationResult:
        if not raw.strip():
            decision = self.router.route(None, raw)
            return ClassificationResult(
                raw_payload=raw,
                event_type=None,
                call_id=None,
                category=decision.category,
                publish_eligible=decision.publish_eligible,
            )

        type_match = first_match(self.event_type_rules, raw)
        call_match = first_match(self.call_id_rules, raw)
        event_type = type_match.value if type_match else None
        call_id = call_match.value if call_match else None

        if event_type is None:
            logger.warning("event_type_unrecognized", sample=raw[:LOG_SAMPLE_LENGTH])

        fields = extract_fields(self.metadata_rules, raw) if call_id else {}
        decision = self.router.route(event_type, raw)

        return ClassificationResult(
            raw_payload=raw,
            event_type=event_type,
            call_id=call_id,
            category=decision.category,
            publish_eligible=decision.publish_eligible,
            terminal=decision.terminal,
            event_type_rule=type_match.rule if type_match else None,
            call_id_rule=call_match.rule if call_match else None,
            fields=fields,
        )

    def _fallback_eligibility(self, raw: str) -> bool:
        try:
            return self.router.has_correlation_marker(raw)
        except Exception:
            return False

    def _record(self, result: ClassificationResult) -> None:
        if self.catalog is None:
            return
        try:
            self.catalog.record(result.event_type, result.call_id, result.raw_payload)
        except Exception as e:
            logger.warning(
                "event_type_record_failed",
                event_type=result.event_type,
                error=str(e),
            )


def suggest_handler_name(event_type: Optional[str]) -> str:
    """Name a handler for an event type, e.g. ``handleEventQueued``."""
    if not event_type:
        return "handleUnknownEvent"
    return f"handle{event_type}"
