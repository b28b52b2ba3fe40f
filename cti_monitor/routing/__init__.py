"""
Routing Package

Maps classified event types onto a closed set of categories and decides
which events are forwarded to the contact-tracking system.
"""

from .categories import (
    DEFAULT_CATEGORY_RULES,
    DEFAULT_CORRELATION_MARKERS,
    CategoryRule,
    EventCategory,
    PublishPolicy,
    category_rules_from_config,
    normalize_event_type,
)
from .router import EligibilityRouter, RoutingDecision

__all__ = [
    "DEFAULT_CATEGORY_RULES",
    "DEFAULT_CORRELATION_MARKERS",
    "CategoryRule",
    "EventCategory",
    "PublishPolicy",
    "category_rules_from_config",
    "normalize_event_type",
    "EligibilityRouter",
    "RoutingDecision",
]
