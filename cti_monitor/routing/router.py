"""Eligibility routing for classified events."""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .categories import (
    DEFAULT_CATEGORY_RULES,
    DEFAULT_CORRELATION_MARKERS,
    UNKNOWN_POLICY,
    CategoryRule,
    EventCategory,
    PublishPolicy,
    normalize_event_type,
)


@dataclass(frozen=True)
class RoutingDecision:
    """Category and publish verdict for one event."""

    category: EventCategory
    publish_eligible: bool
    terminal: bool = False


class EligibilityRouter:
    """
    Maps event types to categories and decides publish eligibility.

    The category table is evaluated in order and the first rule whose
    keyword occurs in the event type wins. Events that match nothing are
    ``unknown`` and are forwarded only when the raw payload mentions a
    call-correlation marker.

    Usage:
        router = EligibilityRouter()
        decision = router.route("EventQueued", payload)
    """

    def __init__(
        self,
        rules: Optional[Iterable[CategoryRule]] = None,
        correlation_markers: Optional[Iterable[str]] = None,
    ):
        self.rules: Tuple[CategoryRule, ...] = tuple(rules) if rules is not None else DEFAULT_CATEGORY_RULES
        if correlation_markers is None:
            correlation_markers = DEFAULT_CORRELATION_MARKERS
        self.correlation_markers: Tuple[str, ...] = tuple(m.lower() for m in correlation_markers)

    def categorize(self, event_type: Optional[str]) -> EventCategory:
        """Category of an event type; ``unknown`` for None or no match."""
        rule = self._match(event_type)
        return rule.category if rule else EventCategory.UNKNOWN

    def is_terminal(self, event_type: Optional[str]) -> bool:
        """Whether a session in this state may be evicted by the sweeper."""
        rule = self._match(event_type)
        return rule is not None and rule.terminal

    def route(self, event_type: Optional[str], raw_payload: str = "") -> RoutingDecision:
        """Decide category and publish eligibility. Never raises."""
        rule = self._match(event_type)

        if rule is None:
            eligible = UNKNOWN_POLICY == PublishPolicy.ALWAYS or (
                UNKNOWN_POLICY == PublishPolicy.IF_CORRELATED
                and self.has_correlation_marker(raw_payload)
            )
            return RoutingDecision(EventCategory.UNKNOWN, eligible)

        if rule.policy == PublishPolicy.ALWAYS:
            eligible = True
        elif rule.policy == PublishPolicy.NEVER:
            eligible = False
        else:
            eligible = self.has_correlation_marker(raw_payload)

        return RoutingDecision(rule.category, eligible, rule.terminal)

    def has_correlation_marker(self, raw_payload: Optional[str]) -> bool:
        """Case-insensitive check for any call-correlation marker."""
        if not raw_payload:
            return False
        lowered = raw_payload.lower()
        return any(marker in lowered for marker in self.correlation_markers)

    def _match(self, event_type: Optional[str]) -> Optional[CategoryRule]:
        if not event_type:
            return None
        normalized = normalize_event_type(event_type)
        for rule in self.rules:
            if rule.matches(normalized):
                return rule
        return None
