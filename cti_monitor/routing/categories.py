"""
Event Categories

The closed set of event classes used for publish-eligibility routing, and the
keyword table that maps vendor event-type names onto them. The table is data:
it is evaluated top to bottom, first match wins, and a deployment can replace
it from the rules file.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Tuple

from ..errors import ConfigurationError


class EventCategory(str, Enum):
    """Category of a classified event."""

    RINGING = "ringing"
    QUEUED = "queued"
    DIVERTED = "diverted"
    PARTY_CHANGED = "party-changed"
    RELEASED = "released"
    MEDIA_START = "media-start"
    MEDIA_END = "media-end"
    CONTACT_CREATED = "contact-created"
    CONTACT_STATE_UPDATED = "contact-state-updated"
    UNKNOWN = "unknown"


class PublishPolicy(str, Enum):
    """Whether events of a category are forwarded."""

    ALWAYS = "always"
    NEVER = "never"
    IF_CORRELATED = "if_correlated"  # Only when the payload carries a correlation marker


@dataclass(frozen=True)
class CategoryRule:
    """One row of the keyword-to-category table."""

    category: EventCategory
    keywords: Tuple[str, ...]
    policy: PublishPolicy = PublishPolicy.ALWAYS
    terminal: bool = False

    def matches(self, normalized_event_type: str) -> bool:
        """Check an already-normalized event type against the keywords."""
        return any(keyword in normalized_event_type for keyword in self.keywords)


_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_event_type(event_type: str) -> str:
    """Lower-case and strip separators, so ``Party_Changed`` reads ``partychanged``."""
    return _NON_ALNUM.sub("", event_type.lower())


DEFAULT_CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    # Call end is checked first: "EventReleasedFromQueue" ends the call
    CategoryRule(
        EventCategory.RELEASED,
        ("released", "cleared", "disconnected", "bye"),
        terminal=True,
    ),
    CategoryRule(
        EventCategory.RINGING,
        ("ringing", "delivered", "alerting"),
    ),
    CategoryRule(EventCategory.QUEUED, ("queued",)),
    CategoryRule(EventCategory.DIVERTED, ("diverted",)),
    CategoryRule(
        EventCategory.PARTY_CHANGED,
        ("partychanged", "transferred", "conferenced"),
    ),
    CategoryRule(
        EventCategory.MEDIA_START,
        ("sipinvite", "invite", "mediastart"),
    ),
    CategoryRule(
        EventCategory.MEDIA_END,
        ("mediaend", "mediastop"),
    ),
    CategoryRule(
        EventCategory.CONTACT_CREATED,
        ("contactcreated", "contactmappingcreated"),
        policy=PublishPolicy.NEVER,
    ),
    CategoryRule(
        EventCategory.CONTACT_STATE_UPDATED,
        ("contactstateupdated", "contactupdated"),
        policy=PublishPolicy.NEVER,
    ),
)

# Category used when no rule matches
UNKNOWN_POLICY = PublishPolicy.IF_CORRELATED

DEFAULT_CORRELATION_MARKERS: Tuple[str, ...] = (
    "callid",
    "connectionid",
    "ucid",
    "ani",
    "dnis",
)


def category_rules_from_config(entries: Iterable[Dict[str, Any]]) -> Tuple[CategoryRule, ...]:
    """
    Build a category table from rules-file entries.

    Each entry needs ``category`` and ``keywords``; ``policy`` defaults to
    ``always`` (``never`` for the contact-origin categories) and ``terminal``
    to true only for ``released``.

    Raises:
        ConfigurationError: On an unknown category or policy, or empty keywords
    """
    rules: List[CategoryRule] = []

    for index, entry in enumerate(entries):
        try:
            category = EventCategory(entry["category"])
        except (KeyError, ValueError, TypeError) as e:
            raise ConfigurationError(f"categories[{index}]: invalid category ({e})") from e

        if category == EventCategory.UNKNOWN:
            raise ConfigurationError(f"categories[{index}]: 'unknown' is the fallback and takes no keywords")

        keywords = tuple(normalize_event_type(str(k)) for k in entry.get("keywords") or ())
        keywords = tuple(k for k in keywords if k)
        if not keywords:
            raise ConfigurationError(f"categories[{index}]: at least one keyword is required")

        default_policy = (
            PublishPolicy.NEVER
            if category in (EventCategory.CONTACT_CREATED, EventCategory.CONTACT_STATE_UPDATED)
            else PublishPolicy.ALWAYS
        )
        try:
            policy = PublishPolicy(entry.get("policy", default_policy))
        except ValueError as e:
            raise ConfigurationError(f"categories[{index}]: invalid policy ({e})") from e

        rules.append(
            CategoryRule(
                category=category,
                keywords=keywords,
                policy=policy,
                terminal=bool(entry.get("terminal", category == EventCategory.RELEASED)),
            )
        )

    return tuple(rules)
