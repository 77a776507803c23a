"""Built-in moderation rule templates operators can start from."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from commguard.datatypes.rule_datatypes import RuleType
from commguard.errors import NotFound


@dataclass(frozen=True, slots=True)
class RuleTemplate:
    id: str
    name: str
    description: str
    rule_type: RuleType
    conditions: Dict[str, Any]
    actions: Dict[str, Any]
    severity: int


RULE_TEMPLATES: List[RuleTemplate] = [
    RuleTemplate(
        id="spam-keywords",
        name="Spam Keywords Detection",
        description="Detects common spam keywords",
        rule_type=RuleType.KEYWORD,
        conditions={
            "keywords": ["spam", "scam", "free money", "click here", "buy now"],
            "case_sensitive": False,
        },
        actions={"auto_action": "hide", "notify_moderators": True},
        severity=3,
    ),
    RuleTemplate(
        id="toxic-language",
        name="Toxic Language Detection",
        description="Detects toxic and harmful language",
        rule_type=RuleType.AI_TOXICITY,
        conditions={"threshold": 0.7, "comparator": "gte"},
        actions={"auto_action": "hide", "notify_moderators": True},
        severity=4,
    ),
    RuleTemplate(
        id="negative-sentiment",
        name="Negative Sentiment Detection",
        description="Flags highly negative content",
        rule_type=RuleType.AI_SENTIMENT,
        conditions={"threshold": -0.8, "comparator": "lte"},
        actions={"auto_action": "none", "notify_moderators": True},
        severity=2,
    ),
    RuleTemplate(
        id="excessive-caps",
        name="Excessive Caps Detection",
        description="Detects messages with excessive capital letters",
        rule_type=RuleType.REGEX,
        conditions={"patterns": ["[A-Z]{10,}"], "flags": "g"},
        actions={"auto_action": "warn", "notify_moderators": False},
        severity=1,
    ),
    RuleTemplate(
        id="url-spam",
        name="URL Spam Detection",
        description="Detects messages with suspicious URLs",
        rule_type=RuleType.REGEX,
        conditions={
            "patterns": [r"http[s]?://(?:[a-zA-Z]|[0-9]|[$-_@.&+]|[!*\(\),]|(?:%[0-9a-fA-F][0-9a-fA-F]))+"],
            "flags": "gi",
        },
        actions={"auto_action": "hide", "notify_moderators": True},
        severity=3,
    ),
]


def list_templates() -> List[RuleTemplate]:
    return list(RULE_TEMPLATES)


def get_template(template_id: str) -> RuleTemplate:
    for template in RULE_TEMPLATES:
        if template.id == template_id:
            return template
    raise NotFound("rule template", template_id)
