"""
Extraction Rules

Ordered (name, pattern) rule lists used to pull the event type, the call
identifier and auxiliary metadata out of a raw payload. Lists are evaluated
top to bottom and the first rule that matches wins; there is no scoring and
no combining of partial matches.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from ..errors import ConfigurationError


@dataclass(frozen=True)
class ExtractionRule:
    """A named regular expression whose first group is the extracted value."""

    name: str
    pattern: Pattern[str]

    @classmethod
    def compile(cls, name: str, expression: str, flags: int = 0) -> "ExtractionRule":
        compiled = re.compile(expression, flags)
        if compiled.groups < 1:
            raise ConfigurationError(f"Rule '{name}' must define a capture group")
        return cls(name=name, pattern=compiled)

    def extract(self, payload: str) -> Optional[str]:
        match = self.pattern.search(payload)
        if not match:
            return None
        value = match.group(1)
        if value is None:
            return None
        value = value.strip()
        return value or None


@dataclass(frozen=True)
class RuleMatch:
    """The winning rule and its extracted value."""

    rule: str
    value: str


def first_match(rules: Sequence[ExtractionRule], payload: str) -> Optional[RuleMatch]:
    """Apply ``rules`` in order and return the first extraction."""
    for rule in rules:
        value = rule.extract(payload)
        if value is not None:
            return RuleMatch(rule=rule.name, value=value)
    return None


# =============================================================================
# Default rule sets
# =============================================================================


DEFAULT_EVENT_TYPE_RULES: Tuple[ExtractionRule, ...] = (
    # <DeliveredEvent xmlns=...>
    ExtractionRule.compile("opening_tag", r"<([A-Za-z][A-Za-z0-9]*Event)[\s/>]"),
    # eventType="EventQueued"
    ExtractionRule.compile("event_type_attribute", r"\beventType\s*=\s*\"([^\"]+)\""),
    # <eventName>EventQueued</eventName>
    ExtractionRule.compile("event_name_element", r"<eventName>([^<]+)</eventName>"),
    # xmlns="http://www.ecma-international.org/standards/ecma-323/csta/ed3#DeliveredEvent"
    ExtractionRule.compile("namespace_fragment", r"xmlns[^>]*#([A-Za-z][A-Za-z0-9]*Event)\b"),
    # <csta:DeliveredEvent>
    ExtractionRule.compile("namespace_prefix", r"<[A-Za-z][A-Za-z0-9]*:([A-Za-z][A-Za-z0-9]*Event)\b"),
    # Event="EventReleased"
    ExtractionRule.compile("event_attribute", r"\bEvent\s*=\s*\"([^\"]+)\""),
    # <EventRinging callId=...>
    ExtractionRule.compile(
        "known_call_event_tag",
        r"<([A-Za-z]*(?:Ringing|Queued|Diverted|Released|PartyChanged))\b",
    ),
)

DEFAULT_CALL_ID_RULES: Tuple[ExtractionRule, ...] = (
    ExtractionRule.compile("call_id_attribute", r"\bcallId\s*=\s*\"([^\"]+)\"", re.IGNORECASE),
    ExtractionRule.compile("call_id_element", r"<callId>([^<]+)</callId>", re.IGNORECASE),
    ExtractionRule.compile("connection_id_attribute", r"\bconnectionId\s*=\s*\"([^\"]+)\"", re.IGNORECASE),
    ExtractionRule.compile("connection_id_element", r"<connectionId>([^<]+)</connectionId>", re.IGNORECASE),
    # Universal call identifier
    ExtractionRule.compile("ucid_attribute", r"\bucid\s*=\s*\"([^\"]+)\"", re.IGNORECASE),
    ExtractionRule.compile("ucid_element", r"<ucid>([^<]+)</ucid>", re.IGNORECASE),
)

DEFAULT_METADATA_FIELDS: Tuple[str, ...] = ("agentId", "queueId", "ani", "dnis", "ucid")


def metadata_rules(fields: Iterable[str]) -> Tuple[ExtractionRule, ...]:
    """Attribute-style rules (``name="value"``), one per metadata field."""
    return tuple(
        ExtractionRule.compile(field_name, rf"\b{re.escape(field_name)}\s*=\s*\"([^\"]+)\"")
        for field_name in fields
    )


DEFAULT_METADATA_RULES = metadata_rules(DEFAULT_METADATA_FIELDS)


def extract_fields(rules: Sequence[ExtractionRule], payload: str) -> Dict[str, str]:
    """Every metadata field present in the payload, keyed by rule name."""
    fields: Dict[str, str] = {}
    for rule in rules:
        value = rule.extract(payload)
        if value is not None:
            fields[rule.name] = value
    return fields


def rules_from_config(entries: Iterable[Any], kind: str) -> Tuple[ExtractionRule, ...]:
    """
    Build an ordered rule list from rules-file entries.

    Entries are ``{"name": ..., "pattern": ..., "ignore_case": bool}``
    mappings, evaluated in file order.

    Raises:
        ConfigurationError: On a missing pattern or an invalid expression
    """
    rules: List[ExtractionRule] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or "pattern" not in entry:
            raise ConfigurationError(f"{kind}[{index}]: expected a mapping with a 'pattern'")
        name = str(entry.get("name") or f"{kind}_{index}")
        flags = re.IGNORECASE if entry.get("ignore_case") else 0
        try:
            rules.append(ExtractionRule.compile(name, str(entry["pattern"]), flags))
        except re.error as e:
            raise ConfigurationError(f"{kind}[{index}]: invalid pattern ({e})") from e
    return tuple(rules)
