import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeOracle
from commguard.configuration.oracle_settings import OracleSettings
from commguard.datatypes.oracle_datatypes import OracleScores
from commguard.datatypes.rule_datatypes import RuleType
from commguard.errors import OracleUnavailable
from commguard.oracle.scoring_oracle import (
    OpenAIScoringOracle,
    ScoringOracleAdapter,
    build_oracle_adapter,
    parse_scores,
)


def _completion(content: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_parse_scores_valid_payload() -> None:
    scores = parse_scores('{"sentiment": -0.4, "toxicity": 0.2, "spam": 0.9, "confidence": 0.8}')

    assert scores == OracleScores(sentiment=-0.4, toxicity=0.2, spam=0.9, confidence=0.8)
    assert scores.score_for(RuleType.SPAM_DETECTION) == pytest.approx(0.9)
    assert scores.score_for(RuleType.AI_SENTIMENT) == pytest.approx(-0.4)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"sentiment": 0.1}',
        '{"sentiment": 2, "toxicity": 0.2, "spam": 0.1, "confidence": 1}',
        '{"sentiment": 0, "toxicity": 0.2, "spam": 0.1, "confidence": 1, "extra": 1}',
    ],
)
def test_parse_scores_rejects_invalid_replies(raw: str) -> None:
    with pytest.raises(OracleUnavailable):
        parse_scores(raw)


def test_score_for_keyword_rule_is_an_error() -> None:
    with pytest.raises(ValueError):
        OracleScores(0, 0, 0).score_for(RuleType.KEYWORD)


@pytest.mark.asyncio
async def test_openai_oracle_requests_structured_output() -> None:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=_completion('{"sentiment": 0.5, "toxicity": 0.0, "spam": 0.1, "confidence": 0.9}')
    )
    oracle = OpenAIScoringOracle(OracleSettings({"model_name": "test-model"}), client=client)

    scores = await oracle.score("lovely day")

    assert scores.sentiment == pytest.approx(0.5)
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["response_format"]["type"] == "json_schema"
    assert kwargs["messages"][-1] == {"role": "user", "content": "lovely day"}


@pytest.mark.asyncio
async def test_adapter_wraps_provider_errors() -> None:
    adapter = ScoringOracleAdapter(FakeOracle(error=ConnectionError("boom")), timeout_seconds=1.0)

    with pytest.raises(OracleUnavailable, match="boom"):
        await adapter.score("text")


@pytest.mark.asyncio
async def test_adapter_times_out() -> None:
    class Hanging(FakeOracle):
        async def score(self, text: str) -> OracleScores:
            await asyncio.sleep(5)
            return self.scores

    adapter = ScoringOracleAdapter(Hanging(), timeout_seconds=0.01)

    with pytest.raises(OracleUnavailable, match="timed out"):
        await adapter.score("text")


@pytest.mark.asyncio
async def test_adapter_passes_scores_through() -> None:
    expected = OracleScores(sentiment=0.2, toxicity=0.3, spam=0.4)
    adapter = ScoringOracleAdapter(FakeOracle(expected), timeout_seconds=1.0)

    assert await adapter.score("text") == expected


def test_build_adapter_disabled_by_default() -> None:
    adapter = build_oracle_adapter(OracleSettings({}))

    assert adapter.enabled is False
