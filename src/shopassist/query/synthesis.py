"""Query synthesis: natural language in, candidate SQL out.

The model's answer is untrusted. It is parsed into a
:class:`~shopassist.core.types.GeneratedQuery` or rejected with a
:class:`~shopassist.exceptions.SynthesisError`; nothing unparsable is ever
coerced into executable text. Whatever comes out still has to pass the
safety validator before it can run.
"""

from __future__ import annotations

import json
import logging
import math
import re
import threading
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from shopassist.core.types import CommandContext, GeneratedQuery, Scalar
from shopassist.exceptions import SynthesisError
from shopassist.query.generators import TextGenerator
from shopassist.query.prompt import PromptBuilder

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class SynthesisPayload(BaseModel):
    """Shape the model is asked to answer in."""

    interpretation: str | None = None
    entity: str | None = None
    sql: str | None = None
    params: list[Scalar] = Field(default_factory=list)
    estimated_results: int | float | str | None = None
    error: str | None = None

    model_config = {"extra": "ignore"}


def _estimate(value: int | float | str | None) -> int | None:
    """Normalize an estimate such as ``"1-5 customers"`` to its largest number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, int | float):
        return max(int(value), 0)
    numbers = [int(n) for n in re.findall(r"\d+", value)]
    return max(numbers) if numbers else None


def parse_generated_query(raw: str) -> GeneratedQuery:
    """Parse the model's raw answer.

    Raises:
        SynthesisError: If the answer is not a JSON object of the expected
            shape, or the model declined to produce SQL.
    """
    cleaned = _FENCE.sub("", raw.strip()).strip()
    try:
        data: Any = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise SynthesisError("Model answer is not valid JSON") from e

    if not isinstance(data, dict):
        raise SynthesisError("Model answer is not a JSON object")

    try:
        payload = SynthesisPayload.model_validate(data)
    except PydanticValidationError as e:
        raise SynthesisError("Model answer has an unexpected shape") from e

    interpretation = (payload.interpretation or "").strip()
    if payload.error or not payload.sql or not payload.sql.strip():
        raise SynthesisError(
            f"Model declined the request: {payload.error or 'no SQL returned'}",
            interpretation=interpretation or None,
        )

    return GeneratedQuery(
        sql_text=payload.sql,
        parameters=tuple(payload.params),
        interpretation=interpretation,
        entity_tag=(payload.entity or "").strip(),
        estimated_result_count=_estimate(payload.estimated_results),
    )


class QuerySynthesizer(ABC):
    """Anything that can turn a search request into a candidate query."""

    @abstractmethod
    def synthesize(self, text: str, context: CommandContext) -> GeneratedQuery:
        """Produce a candidate query.

        Args:
            text: The full original command text.
            context: Where the user currently is.

        Raises:
            SynthesisError: If no usable candidate could be produced.
        """
        ...


class QuerySynthesisClient(QuerySynthesizer):
    """Asks a text-generation capability for SQL.

    At most ``max_concurrency`` requests are in flight to the capability at
    once; a caller that cannot get a slot within ``acquire_timeout`` seconds
    gets a retryable :class:`SynthesisError` instead of queueing forever.
    """

    def __init__(
        self,
        generator: TextGenerator,
        prompt_builder: PromptBuilder | None = None,
        max_concurrency: int = 4,
        acquire_timeout: float = 15.0,
    ) -> None:
        self._generator = generator
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._slots = threading.BoundedSemaphore(max(max_concurrency, 1))
        self._acquire_timeout = acquire_timeout

    def synthesize(self, text: str, context: CommandContext) -> GeneratedQuery:
        prompt = self._prompt_builder.build(text, context)

        if not self._slots.acquire(timeout=self._acquire_timeout):
            raise SynthesisError("Too many concurrent synthesis requests", retryable=True)
        try:
            raw = self._generator.generate(prompt)
        finally:
            self._slots.release()

        logger.debug(f"Raw model answer ({self._generator.model_name}): {raw[:500]}")
        query = parse_generated_query(raw)
        logger.info(f"Synthesized query for entity '{query.entity_tag}': {query.sql_text}")
        return query
