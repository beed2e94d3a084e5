"""Severity classification of spec deviations."""

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass
from typing import Any, Callable

from flowguard.config.settings import DEFAULT_LLM_TIMEOUT_SECONDS
from flowguard.llm.prompts.verify import (
    SEVERITY_RESPONSE_SCHEMA,
    SEVERITY_SYSTEM_PROMPT,
    build_severity_prompt,
)
from flowguard.llm.providers.base import LLMProvider
from flowguard.llm.structured import StructuredResponseError
from flowguard.verify.models import Deviation, Severity, SeverityRating

logger = logging.getLogger(__name__)

# Returns a replacement severity, or None to keep the model's rating
SeverityOverride = Callable[[Deviation, SeverityRating], Severity | None]


@dataclass(frozen=True)
class RatingContext:
    """Diff context shown to the rater alongside a deviation."""

    file_path: str
    change_type: str  # FileStatus value of the file
    spec_content: str


class SeverityRater:
    """Rates each deviation as Critical, High, Medium or Low.

    Rating is kept apart from matching so a local heuristic can override the
    model's severity without re-running the match.
    """

    def __init__(
        self,
        provider: LLMProvider,
        timeout: float = DEFAULT_LLM_TIMEOUT_SECONDS,
        override: SeverityOverride | None = None,
    ) -> None:
        self.provider = provider
        self.timeout = timeout
        self.override = override

    async def rate(
        self,
        deviation: Deviation,
        context: RatingContext,
        semaphore: asyncio.Semaphore | None = None,
        spec_id: str | None = None,
    ) -> SeverityRating:
        """Rate one deviation.

        Raises:
            LanguageModelError: If the model call fails, times out, or returns
                a severity outside the four levels.
        """
        messages = [
            {
                "role": "user",
                "content": build_severity_prompt(
                    deviation,
                    context.file_path,
                    context.change_type,
                    context.spec_content,
                ),
            }
        ]
        limiter: AbstractAsyncContextManager[Any] = semaphore or nullcontext()
        async with limiter:
            data = await self.provider.generate_structured(
                messages,
                SEVERITY_RESPONSE_SCHEMA,
                system=SEVERITY_SYSTEM_PROMPT,
                timeout=self.timeout,
                phase="rate",
                spec_id=spec_id,
            )

        try:
            severity = Severity.parse(data.get("severity"))
        except ValueError as e:
            raise StructuredResponseError(str(e), phase="rate") from e

        try:
            confidence = min(1.0, max(0.0, float(data.get("confidence", 0.0))))
        except (TypeError, ValueError):
            confidence = 0.0
        impact_areas = data.get("impact_areas") or []
        rating = SeverityRating(
            severity=severity,
            reasoning=str(data.get("reasoning", "")),
            confidence=confidence,
            impact_areas=[str(area) for area in impact_areas if area],
        )

        if self.override is not None:
            replacement = self.override(deviation, rating)
            if replacement is not None and replacement != rating.severity:
                logger.info(
                    "Severity override for %r: %s -> %s",
                    deviation.description[:60],
                    rating.severity.value,
                    replacement.value,
                )
                rating.severity = replacement
        return rating
