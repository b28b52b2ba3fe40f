"""
Discovery Package

Classifies raw switching-platform payloads into event types and call
identifiers, and keeps an operator-visible catalog of every event type a
deployment actually emits.
"""

from .catalog import UNKNOWN_EVENT_TYPE, DiscoveredEventType, EventTypeCatalog
from .classifier import ClassificationResult, EventClassifier, suggest_handler_name
from .rules import (
    DEFAULT_CALL_ID_RULES,
    DEFAULT_EVENT_TYPE_RULES,
    DEFAULT_METADATA_FIELDS,
    DEFAULT_METADATA_RULES,
    ExtractionRule,
    RuleMatch,
    extract_fields,
    first_match,
    metadata_rules,
    rules_from_config,
)

__all__ = [
    "UNKNOWN_EVENT_TYPE",
    "DiscoveredEventType",
    "EventTypeCatalog",
    "ClassificationResult",
    "EventClassifier",
    "suggest_handler_name",
    "DEFAULT_CALL_ID_RULES",
    "DEFAULT_EVENT_TYPE_RULES",
    "DEFAULT_METADATA_FIELDS",
    "DEFAULT_METADATA_RULES",
    "ExtractionRule",
    "RuleMatch",
    "extract_fields",
    "first_match",
    "metadata_rules",
    "rules_from_config",
]
