"""Evaluate one content item against a set of moderation rules.

Rules are evaluated independently: a match (or a failure) of one rule never
prevents the others from being evaluated. Within a rule the first satisfied
condition wins.

AI-backed rule types share a single oracle call per content item. If that
call fails, every AI rule degrades to no-match and a warning is attached to
the :class:`EvaluationReport`; evaluation itself never raises for oracle or
rule configuration problems.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List

from commguard.datatypes.content_datatypes import ContentItem
from commguard.datatypes.oracle_datatypes import OracleScores
from commguard.datatypes.queue_datatypes import Violation
from commguard.datatypes.rule_datatypes import (
    AutoAction,
    KeywordConditions,
    ModerationRule,
    RegexConditions,
    RuleType,
    ThresholdConditions,
)
from commguard.errors import ConfigurationError, OracleUnavailable
from commguard.oracle.scoring_oracle import ScoringOracleAdapter
from commguard.util.logger import get_logger

logger = get_logger("rule_evaluator")


@dataclass(slots=True)
class EvaluationReport:
    """Result of evaluating one content item.

    Attributes:
        violations: Matches ordered by priority (highest first), then rule order.
        warnings: Processing warnings (oracle failures, skipped rules).
        scores: Oracle scores if the oracle was consulted successfully.
    """

    violations: List[Violation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    scores: OracleScores | None = None


@dataclass(frozen=True, slots=True)
class ViolationSummary:
    """Aggregate of several violations, as written to one queue item."""

    priority: int
    reason: str
    ai_confidence: float | None
    auto_action: AutoAction
    rule_ids: List[str]
    notify_moderators: bool


def summarize_violations(violations: List[Violation]) -> ViolationSummary:
    """Fold violations into queue item fields.

    priority is the maximum over matches, the reason lists the matched rule
    names, ai_confidence is the highest confidence among AI-based matches
    (None if only keyword/regex rules matched) and auto_action comes from the
    highest-priority match.
    """
    if not violations:
        raise ValueError("Cannot summarize an empty list of violations")

    top = max(violations, key=lambda v: v.priority)
    ai_confidences = [v.confidence for v in violations if v.rule_type.uses_oracle]
    return ViolationSummary(
        priority=top.priority,
        reason="Rule violation: " + ", ".join(v.rule_name for v in violations),
        ai_confidence=max(ai_confidences) if ai_confidences else None,
        auto_action=top.auto_action,
        rule_ids=[v.rule_id for v in violations],
        notify_moderators=any(v.notify_moderators for v in violations),
    )


def match_keyword(text: str, conditions: KeywordConditions) -> str | None:
    """Return the first configured keyword contained in ``text``."""
    haystack = text if conditions.case_sensitive else text.lower()
    for keyword in conditions.keywords:
        needle = keyword if conditions.case_sensitive else keyword.lower()
        if needle and needle in haystack:
            return keyword
    return None


def match_regex(text: str, conditions: RegexConditions) -> str | None:
    """Return the first pattern found in ``text``.

    Raises:
        ConfigurationError: If a pattern does not compile.
    """
    for pattern in conditions.patterns:
        try:
            compiled = re.compile(pattern, conditions.re_flags)
        except re.error as exc:
            raise ConfigurationError(f"Invalid regex pattern {pattern!r}: {exc}") from exc
        if compiled.search(text):
            return pattern
    return None


class _ScoreMemo:
    """Per-item memo: the oracle is asked at most once, failures included."""

    __slots__ = ("_adapter", "_text", "_done", "scores", "error")

    def __init__(self, adapter: ScoringOracleAdapter, text: str) -> None:
        self._adapter = adapter
        self._text = text
        self._done = False
        self.scores: OracleScores | None = None
        self.error: OracleUnavailable | None = None

    async def get(self) -> OracleScores:
        if not self._done:
            self._done = True
            try:
                self.scores = await self._adapter.score(self._text)
            except OracleUnavailable as exc:
                self.error = exc
        if self.error is not None:
            raise self.error
        assert self.scores is not None
        return self.scores


class RuleEvaluator:
    """Matches content items against moderation rules."""

    def __init__(self, oracle: ScoringOracleAdapter) -> None:
        self._oracle = oracle

    async def evaluate(self, item: ContentItem, rules: Iterable[ModerationRule]) -> List[Violation]:
        """Return the ordered violations of ``item`` against ``rules``."""
        report = await self.evaluate_with_report(item, rules)
        return report.violations

    async def evaluate_with_report(self, item: ContentItem, rules: Iterable[ModerationRule]) -> EvaluationReport:
        report = EvaluationReport()
        memo = _ScoreMemo(self._oracle, item.text)
        oracle_warned = False

        for rule in rules:
            if not rule.is_active or not rule.applies_to(item.community_id):
                continue
            try:
                violation = await self._evaluate_rule(item, rule, memo)
            except ConfigurationError as exc:
                logger.error("[RULE EVALUATOR] Skipping rule %s (%s): %s", rule.id, rule.name, exc)
                report.warnings.append(f"Rule '{rule.name}' skipped: {exc}")
                continue
            except OracleUnavailable as exc:
                if not oracle_warned:
                    oracle_warned = True
                    logger.warning("[RULE EVALUATOR] Oracle unavailable for content %s: %s", item.id, exc)
                    report.warnings.append(f"Scoring oracle unavailable: {exc}")
                continue
            if violation is not None:
                report.violations.append(violation)

        # sort is stable: equal priorities keep rule order
        report.violations.sort(key=lambda v: -v.priority)
        report.scores = memo.scores

        if report.violations:
            logger.debug(
                "[RULE EVALUATOR] Content %s matched %d rule(s): %s",
                item.id,
                len(report.violations),
                ", ".join(v.rule_name for v in report.violations),
            )
        return report

    async def _evaluate_rule(self, item: ContentItem, rule: ModerationRule, memo: _ScoreMemo) -> Violation | None:
        conditions = rule.conditions

        if rule.rule_type is RuleType.KEYWORD:
            if not isinstance(conditions, KeywordConditions):
                raise ConfigurationError("keyword rule without keyword conditions", rule.id)
            keyword = match_keyword(item.text, conditions)
            if keyword is None:
                return None
            return self._violation(rule, f"Matched keyword '{keyword}'", 1.0)

        if rule.rule_type is RuleType.REGEX:
            if not isinstance(conditions, RegexConditions):
                raise ConfigurationError("regex rule without regex conditions", rule.id)
            pattern = match_regex(item.text, conditions)
            if pattern is None:
                return None
            return self._violation(rule, f"Matched pattern '{pattern}'", 1.0)

        if not isinstance(conditions, ThresholdConditions):
            raise ConfigurationError(f"{rule.rule_type} rule without threshold conditions", rule.id)

        scores = await memo.get()
        score = scores.score_for(rule.rule_type)
        if not conditions.comparator.compare(score, conditions.threshold):
            return None
        reason = f"{rule.rule_type} score {score:.2f} {conditions.comparator} {conditions.threshold}"
        return self._violation(rule, reason, score)

    @staticmethod
    def _violation(rule: ModerationRule, reason: str, confidence: float) -> Violation:
        return Violation(
            rule_id=rule.id,
            rule_name=rule.name,
            rule_type=rule.rule_type,
            reason=reason,
            confidence=confidence,
            priority=rule.default_priority,
            auto_action=rule.actions.auto_action,
            notify_moderators=rule.actions.notify_moderators,
        )
