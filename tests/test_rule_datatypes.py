import re

import pytest

from commguard.datatypes.queue_datatypes import (
    DisposeAction,
    QueueStatus,
    can_transition,
    parse_dispose_action,
)
from commguard.datatypes.rule_datatypes import (
    AutoAction,
    Comparator,
    KeywordConditions,
    ModerationRule,
    RegexConditions,
    RuleType,
    ThresholdConditions,
    parse_actions,
    parse_conditions,
    parse_rule_type,
)
from commguard.errors import ConfigurationError


def test_keyword_conditions_parse_with_default_case_insensitivity() -> None:
    conditions = parse_conditions(RuleType.KEYWORD, {"keywords": ["spam", "scam"]})

    assert isinstance(conditions, KeywordConditions)
    assert conditions.keywords == ("spam", "scam")
    assert conditions.case_sensitive is False


@pytest.mark.parametrize(
    "raw",
    [
        {},
        {"keywords": []},
        {"keywords": "spam"},
        {"keywords": [""]},
        {"keywords": ["ok"], "case_sensitive": "yes"},
    ],
)
def test_keyword_conditions_reject_malformed_input(raw) -> None:
    with pytest.raises(ConfigurationError):
        parse_conditions(RuleType.KEYWORD, raw)


def test_regex_conditions_accept_single_pattern_or_list() -> None:
    single = parse_conditions(RuleType.REGEX, {"pattern": r"\bfoo\b"})
    many = parse_conditions(RuleType.REGEX, {"pattern": "a+", "patterns": ["b+", "c+"]})

    assert isinstance(single, RegexConditions)
    assert single.patterns == (r"\bfoo\b",)
    assert many.patterns == ("a+", "b+", "c+")


def test_regex_flags_map_to_python_flags() -> None:
    assert RegexConditions(patterns=("x",)).re_flags == re.IGNORECASE
    assert RegexConditions(patterns=("x",), flags="g").re_flags == 0
    assert RegexConditions(patterns=("x",), flags="ims").re_flags == re.IGNORECASE | re.MULTILINE | re.DOTALL


def test_regex_conditions_reject_uncompilable_pattern() -> None:
    with pytest.raises(ConfigurationError, match="Invalid regex"):
        parse_conditions(RuleType.REGEX, {"pattern": "(unclosed"})


def test_regex_conditions_reject_unknown_flags() -> None:
    with pytest.raises(ConfigurationError):
        parse_conditions(RuleType.REGEX, {"pattern": "x", "flags": "q"})


def test_threshold_conditions_fill_defaults_per_rule_type() -> None:
    sentiment = parse_conditions(RuleType.AI_SENTIMENT, {})
    toxicity = parse_conditions(RuleType.AI_TOXICITY, {})
    spam = parse_conditions(RuleType.SPAM_DETECTION, {"threshold": 0.9, "comparator": "lte"})

    assert sentiment == ThresholdConditions(threshold=-0.5, comparator=Comparator.LTE)
    assert toxicity == ThresholdConditions(threshold=0.7, comparator=Comparator.GTE)
    assert spam == ThresholdConditions(threshold=0.9, comparator=Comparator.LTE)


def test_threshold_conditions_reject_unknown_comparator() -> None:
    with pytest.raises(ConfigurationError):
        parse_conditions(RuleType.AI_TOXICITY, {"threshold": 0.5, "comparator": "gt"})


def test_comparator_is_inclusive() -> None:
    assert Comparator.GTE.compare(0.6, 0.6)
    assert Comparator.LTE.compare(-0.5, -0.5)
    assert not Comparator.GTE.compare(0.59, 0.6)


def test_parse_rule_type_rejects_unknown_value() -> None:
    assert parse_rule_type("spam_detection") is RuleType.SPAM_DETECTION
    with pytest.raises(ConfigurationError):
        parse_rule_type("sarcasm")


def test_parse_actions_defaults_and_validation() -> None:
    assert parse_actions(None).auto_action is AutoAction.NONE
    assert parse_actions({"auto_action": "hide", "notify_moderators": True}).notify_moderators is True
    with pytest.raises(ConfigurationError):
        parse_actions({"auto_action": "ban"})


def test_rule_priority_follows_severity() -> None:
    rule = ModerationRule(
        id="r1",
        organization_id="org",
        name="rule",
        rule_type=RuleType.KEYWORD,
        conditions=KeywordConditions(keywords=("x",)),
        severity=4,
    )
    assert rule.default_priority == 4
    assert rule.applies_to("any-community")

    rule.community_id = "c1"
    assert rule.applies_to("c1")
    assert not rule.applies_to("c2")


def test_queue_state_machine() -> None:
    assert can_transition(QueueStatus.PENDING, QueueStatus.ESCALATED)
    assert can_transition(QueueStatus.ESCALATED, QueueStatus.REJECTED)
    assert not can_transition(QueueStatus.ESCALATED, QueueStatus.ESCALATED)
    assert not can_transition(QueueStatus.APPROVED, QueueStatus.REJECTED)
    assert not can_transition(QueueStatus.REJECTED, QueueStatus.APPROVED)


def test_parse_dispose_action() -> None:
    assert parse_dispose_action("reject") is DisposeAction.REJECT
    assert DisposeAction.ESCALATE.target_status is QueueStatus.ESCALATED
    with pytest.raises(ConfigurationError):
        parse_dispose_action("ban")
