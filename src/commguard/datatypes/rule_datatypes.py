"""
Moderation rule types and their per-type condition variants.

A rule's ``conditions`` is a tagged union selected by ``rule_type``:

- ``keyword``        -> :class:`KeywordConditions`
- ``regex``          -> :class:`RegexConditions`
- ``ai_sentiment``,
  ``ai_toxicity``,
  ``spam_detection`` -> :class:`ThresholdConditions`

Raw mappings coming from operators are validated against a JSON schema per
rule type in :func:`parse_conditions`; anything malformed raises
:class:`~commguard.errors.ConfigurationError` at creation time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple, Union

import jsonschema
from jsonschema import ValidationError

from commguard.errors import ConfigurationError
from commguard.util.record_utils import utcnow_iso


class RuleType(Enum):
    """Supported moderation rule kinds."""

    KEYWORD = "keyword"
    REGEX = "regex"
    AI_SENTIMENT = "ai_sentiment"
    AI_TOXICITY = "ai_toxicity"
    SPAM_DETECTION = "spam_detection"

    def __str__(self) -> str:
        return self.value

    @property
    def uses_oracle(self) -> bool:
        return self in (RuleType.AI_SENTIMENT, RuleType.AI_TOXICITY, RuleType.SPAM_DETECTION)


class Comparator(Enum):
    """How a threshold rule compares the oracle score to its threshold."""

    GTE = "gte"
    LTE = "lte"

    def __str__(self) -> str:
        return self.value

    def compare(self, score: float, threshold: float) -> bool:
        if self is Comparator.GTE:
            return score >= threshold
        return score <= threshold


class AutoAction(Enum):
    """Automatic action applied to flagged content."""

    DELETE = "delete"
    HIDE = "hide"
    WARN = "warn"
    NONE = "none"

    def __str__(self) -> str:
        return self.value


# Defaults carried over from the rule templates operators start from
DEFAULT_THRESHOLDS: Dict[RuleType, Tuple[float, Comparator]] = {
    RuleType.AI_SENTIMENT: (-0.5, Comparator.LTE),
    RuleType.AI_TOXICITY: (0.7, Comparator.GTE),
    RuleType.SPAM_DETECTION: (0.6, Comparator.GTE),
}


@dataclass(frozen=True, slots=True)
class KeywordConditions:
    keywords: Tuple[str, ...]
    case_sensitive: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"keywords": list(self.keywords), "case_sensitive": self.case_sensitive}


@dataclass(frozen=True, slots=True)
class RegexConditions:
    """One or more patterns; ``flags`` uses the JavaScript-style letters operators know.

    Only ``i`` (ignore case), ``m`` (multiline) and ``s`` (dot-all) change
    matching; ``g`` and ``u`` are accepted and ignored. Without explicit flags
    matching is case-insensitive.
    """

    patterns: Tuple[str, ...]
    flags: str = "i"

    def to_dict(self) -> Dict[str, Any]:
        return {"patterns": list(self.patterns), "flags": self.flags}

    @property
    def re_flags(self) -> int:
        value = 0
        if "i" in self.flags:
            value |= re.IGNORECASE
        if "m" in self.flags:
            value |= re.MULTILINE
        if "s" in self.flags:
            value |= re.DOTALL
        return value


@dataclass(frozen=True, slots=True)
class ThresholdConditions:
    threshold: float
    comparator: Comparator = Comparator.GTE

    def to_dict(self) -> Dict[str, Any]:
        return {"threshold": self.threshold, "comparator": self.comparator.value}


RuleConditions = Union[KeywordConditions, RegexConditions, ThresholdConditions]


_THRESHOLD_SCHEMA = {
    "type": "object",
    "properties": {
        "threshold": {"type": "number"},
        "comparator": {"type": "string", "enum": ["gte", "lte"]},
    },
}

CONDITION_SCHEMAS: Dict[RuleType, Dict[str, Any]] = {
    RuleType.KEYWORD: {
        "type": "object",
        "properties": {
            "keywords": {
                "type": "array",
                "items": {"type": "string", "minLength": 1},
                "minItems": 1,
            },
            "case_sensitive": {"type": "boolean"},
        },
        "required": ["keywords"],
    },
    RuleType.REGEX: {
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "minLength": 1},
            "patterns": {
                "type": "array",
                "items": {"type": "string", "minLength": 1},
                "minItems": 1,
            },
            "flags": {"type": "string", "pattern": "^[gimsu]*$"},
        },
        "anyOf": [{"required": ["pattern"]}, {"required": ["patterns"]}],
    },
    RuleType.AI_SENTIMENT: _THRESHOLD_SCHEMA,
    RuleType.AI_TOXICITY: _THRESHOLD_SCHEMA,
    RuleType.SPAM_DETECTION: _THRESHOLD_SCHEMA,
}

ACTIONS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "auto_action": {"type": "string", "enum": [a.value for a in AutoAction]},
        "notify_moderators": {"type": "boolean"},
    },
}


def parse_rule_type(value: RuleType | str) -> RuleType:
    if isinstance(value, RuleType):
        return value
    try:
        return RuleType(str(value))
    except ValueError as exc:
        raise ConfigurationError(f"Unknown rule type '{value}'") from exc


def parse_auto_action(value: AutoAction | str) -> AutoAction:
    if isinstance(value, AutoAction):
        return value
    try:
        return AutoAction(str(value))
    except ValueError as exc:
        raise ConfigurationError(f"Unknown auto action '{value}'") from exc


def parse_conditions(
    rule_type: RuleType,
    raw: Dict[str, Any] | RuleConditions,
    *,
    strict: bool = True,
) -> RuleConditions:
    """Build the typed condition variant for ``rule_type`` from a raw mapping.

    Args:
        rule_type: Rule type selecting the variant.
        raw: Operator supplied mapping, or an already typed variant.
        strict: Validate the mapping against the rule type's JSON schema and
            compile regex patterns. Rows loaded back from storage were
            validated when created and are rebuilt with ``strict=False``.

    Raises:
        ConfigurationError: If the mapping does not describe valid conditions.
    """
    if isinstance(raw, (KeywordConditions, RegexConditions, ThresholdConditions)):
        raw = raw.to_dict()

    if strict:
        try:
            jsonschema.validate(instance=raw, schema=CONDITION_SCHEMAS[rule_type])
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid {rule_type.value} conditions: {exc.message}") from exc

    if rule_type is RuleType.KEYWORD:
        return KeywordConditions(
            keywords=tuple(str(k) for k in raw.get("keywords", [])),
            case_sensitive=bool(raw.get("case_sensitive", False)),
        )

    if rule_type is RuleType.REGEX:
        patterns = list(raw.get("patterns") or [])
        if raw.get("pattern"):
            patterns.insert(0, raw["pattern"])
        conditions = RegexConditions(patterns=tuple(str(p) for p in patterns), flags=str(raw.get("flags", "i")))
        if strict:
            for pattern in conditions.patterns:
                try:
                    re.compile(pattern, conditions.re_flags)
                except re.error as exc:
                    raise ConfigurationError(f"Invalid regex pattern {pattern!r}: {exc}") from exc
        return conditions

    default_threshold, default_comparator = DEFAULT_THRESHOLDS[rule_type]
    comparator = raw.get("comparator")
    return ThresholdConditions(
        threshold=float(raw.get("threshold", default_threshold)),
        comparator=Comparator(comparator) if comparator else default_comparator,
    )


@dataclass(frozen=True, slots=True)
class RuleActions:
    auto_action: AutoAction = AutoAction.NONE
    notify_moderators: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"auto_action": self.auto_action.value, "notify_moderators": self.notify_moderators}


def parse_actions(raw: Dict[str, Any] | RuleActions | None, *, strict: bool = True) -> RuleActions:
    """Build :class:`RuleActions` from a raw mapping; unknown keys are ignored."""
    if isinstance(raw, RuleActions):
        return raw
    raw = raw or {}
    if strict:
        try:
            jsonschema.validate(instance=raw, schema=ACTIONS_SCHEMA)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid rule actions: {exc.message}") from exc
    return RuleActions(
        auto_action=AutoAction(raw.get("auto_action") or AutoAction.NONE.value),
        notify_moderators=bool(raw.get("notify_moderators", False)),
    )


@dataclass(slots=True)
class ModerationRule:
    """An operator-defined moderation rule.

    Read-only during evaluation. ``community_id`` of None means the rule
    applies to every community of the organization.
    """

    id: str
    organization_id: str
    name: str
    rule_type: RuleType
    conditions: RuleConditions
    actions: RuleActions = field(default_factory=RuleActions)
    severity: int = 1
    is_active: bool = True
    community_id: str | None = None
    description: str | None = None
    created_by: str | None = None
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)

    @property
    def default_priority(self) -> int:
        """Queue priority of a match on this rule.

        Every rule type currently maps severity one-to-one onto priority.
        """
        return max(1, min(5, self.severity))

    def applies_to(self, community_id: str | None) -> bool:
        return self.community_id is None or self.community_id == community_id
