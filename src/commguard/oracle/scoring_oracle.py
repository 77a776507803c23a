"""Scoring oracle: sentiment, toxicity and spam scores for a text body.

The moderation core never scores text itself. It talks to a black-box
provider through :class:`ScoringOracle`; :class:`OpenAIScoringOracle` is the
bundled implementation and works against any OpenAI-compatible endpoint
(OpenAI, vLLM, LM Studio, ...) using structured JSON output.

:class:`ScoringOracleAdapter` is what the rule evaluator uses. It bounds every
call by the configured timeout and turns every failure mode (timeout,
transport error, malformed reply, oracle disabled) into
:class:`~commguard.errors.OracleUnavailable`.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict

import jsonschema
from jsonschema import ValidationError
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionMessageParam
from openai.types.shared_params.response_format_json_schema import ResponseFormatJSONSchema

from commguard.configuration.oracle_settings import OracleSettings
from commguard.datatypes.oracle_datatypes import OracleScores
from commguard.errors import OracleUnavailable
from commguard.util.logger import get_logger

logger = get_logger("scoring_oracle")


SCORES_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "sentiment": {"type": "number", "minimum": -1, "maximum": 1},
        "toxicity": {"type": "number", "minimum": 0, "maximum": 1},
        "spam": {"type": "number", "minimum": 0, "maximum": 1},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
    },
    "required": ["sentiment", "toxicity", "spam", "confidence"],
    "additionalProperties": False,
}

SYSTEM_PROMPT = (
    "You score community content for moderation. For the user's text return JSON with: "
    "sentiment from -1 (very negative) to 1 (very positive); toxicity from 0 to 1; "
    "spam (likelihood the text is spam or unsolicited promotion) from 0 to 1; "
    "confidence from 0 to 1 in your own assessment. Return only the JSON object."
)


def parse_scores(raw: str) -> OracleScores:
    """Parse and validate a provider reply.

    Raises:
        OracleUnavailable: If the reply is not JSON or does not match the score schema.
    """
    try:
        payload = json.loads(raw.strip())
    except json.JSONDecodeError as exc:
        raise OracleUnavailable(f"Oracle reply is not JSON: {exc}") from exc

    try:
        jsonschema.validate(instance=payload, schema=SCORES_SCHEMA)
    except ValidationError as exc:
        raise OracleUnavailable(f"Oracle reply failed validation: {exc.message}") from exc

    return OracleScores(
        sentiment=float(payload["sentiment"]),
        toxicity=float(payload["toxicity"]),
        spam=float(payload["spam"]),
        confidence=float(payload["confidence"]),
    )


class ScoringOracle(ABC):
    """External content-analysis provider."""

    @abstractmethod
    async def score(self, text: str) -> OracleScores:
        """Return sentiment, toxicity and spam scores for ``text``."""


class OpenAIScoringOracle(ScoringOracle):
    """Scores text through an OpenAI-compatible chat completions endpoint."""

    def __init__(self, settings: OracleSettings, client: AsyncOpenAI | None = None) -> None:
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
        )
        self._model_name = settings.model_name
        self._response_format = ResponseFormatJSONSchema(
            type="json_schema",
            json_schema={
                "name": "content_scores",
                "strict": True,
                "schema": SCORES_SCHEMA,
            },
        )
        logger.info(
            "[SCORING ORACLE] Initialized with base_url=%s, model=%s",
            settings.base_url,
            self._model_name,
        )

    async def score(self, text: str) -> OracleScores:
        messages: list[ChatCompletionMessageParam] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": text},
        ]
        response = await self._client.chat.completions.create(
            model=self._model_name,
            messages=messages,
            response_format=self._response_format,
        )
        return parse_scores(response.choices[0].message.content or "")


class ScoringOracleAdapter:
    """Timeout-bounded wrapper around a :class:`ScoringOracle`.

    ``oracle`` may be None when scoring is disabled; every call then raises
    :class:`OracleUnavailable` so AI rules degrade to no-match.
    """

    def __init__(self, oracle: ScoringOracle | None, timeout_seconds: float = 0.5) -> None:
        self._oracle = oracle
        self._timeout = timeout_seconds

    @property
    def enabled(self) -> bool:
        return self._oracle is not None

    async def score(self, text: str) -> OracleScores:
        """Score ``text`` within the configured timeout.

        Raises:
            OracleUnavailable: On timeout, provider error or invalid reply.
        """
        if self._oracle is None:
            raise OracleUnavailable("Scoring oracle is disabled")

        try:
            return await asyncio.wait_for(self._oracle.score(text), timeout=self._timeout)
        except OracleUnavailable:
            raise
        except asyncio.TimeoutError as exc:
            logger.warning("[SCORING ORACLE] Timed out after %.2fs", self._timeout)
            raise OracleUnavailable(f"Oracle timed out after {self._timeout}s") from exc
        except Exception as exc:
            logger.warning("[SCORING ORACLE] Request failed: %s", exc)
            raise OracleUnavailable(str(exc)) from exc


def build_oracle_adapter(settings: OracleSettings) -> ScoringOracleAdapter:
    """Create the adapter described by the ``oracle`` config section."""
    if not settings.enabled:
        logger.info("[SCORING ORACLE] Disabled by configuration; AI rules will not match")
        return ScoringOracleAdapter(None, settings.timeout_seconds)
    return ScoringOracleAdapter(OpenAIScoringOracle(settings), settings.timeout_seconds)
