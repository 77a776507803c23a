from __future__ import annotations

from dataclasses import dataclass

from commguard.datatypes.rule_datatypes import RuleType


@dataclass(frozen=True, slots=True)
class OracleScores:
    """Scores returned by the content-analysis provider for one text body.

    Attributes:
        sentiment: -1 (negative) .. 1 (positive).
        toxicity: 0 .. 1.
        spam: 0 .. 1.
        confidence: Provider's own confidence in the analysis, 0 .. 1.
    """

    sentiment: float
    toxicity: float
    spam: float
    confidence: float = 1.0

    def score_for(self, rule_type: RuleType) -> float:
        """Return the score a threshold rule of ``rule_type`` compares against."""
        if rule_type is RuleType.AI_SENTIMENT:
            return self.sentiment
        if rule_type is RuleType.AI_TOXICITY:
            return self.toxicity
        if rule_type is RuleType.SPAM_DETECTION:
            return self.spam
        raise ValueError(f"Rule type {rule_type} is not scored by the oracle")
