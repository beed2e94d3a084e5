"""Base class for LLM providers."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from flowguard.llm.structured import parse_structured_response, schema_instruction
from flowguard.verify.errors import LanguageModelError

if TYPE_CHECKING:
    from flowguard.llm.metrics import MetricsCollector

logger = logging.getLogger(__name__)


@dataclass
class Completion:
    """Completed response text with usage metadata."""

    text: str
    cost_usd: float | None = None
    tokens_in: int | None = None
    tokens_out: int | None = None
    cached_tokens_in: int | None = None


class APIErrorType(Enum):
    """Types of API errors for classification."""

    RATE_LIMITED = "rate_limited"
    API_UNAVAILABLE = "api_unavailable"
    BUDGET_EXCEEDED = "budget_exceeded"
    UNKNOWN = "unknown"


# Patterns to match in error messages (case-insensitive)
RATE_LIMIT_PATTERNS = [
    "rate limit",
    "rate_limit",
    "ratelimit",
    "429",
    "too many requests",
    "throttl",
]

UNAVAILABLE_PATTERNS = [
    "overloaded",
    "503",
    "502",
    "504",
    "unavailable",
    "service error",
    "temporarily",
    "try again later",
    "capacity",
]

BUDGET_PATTERNS = [
    "budget",
    "spending limit",
    "billing",
    "credit",
    "quota exceeded",
    "usage limit",
    "daily limit",
    "out of usage",
    "limit reached",
]


def classify_api_error(error: Exception) -> APIErrorType:
    """Classify an API error by parsing the error message."""
    error_str = str(error).lower()

    for pattern in BUDGET_PATTERNS:
        if pattern in error_str:
            return APIErrorType.BUDGET_EXCEEDED

    for pattern in RATE_LIMIT_PATTERNS:
        if pattern in error_str:
            return APIErrorType.RATE_LIMITED

    for pattern in UNAVAILABLE_PATTERNS:
        if pattern in error_str:
            return APIErrorType.API_UNAVAILABLE

    return APIErrorType.UNKNOWN


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    Subclasses implement ``_complete``; the public coroutines add the timeout,
    budget check, metrics recording and error normalization shared by all
    providers. Every failure surfaces as a ``LanguageModelError``.
    """

    provider_name: str  # "anthropic" or "openai"
    native_structured_output = False

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        metrics_collector: "MetricsCollector | None" = None,
    ) -> None:
        """Initialize provider.

        Args:
            model: Model identifier string.
            api_key: Optional API key (uses env var or web auth if None).
            metrics_collector: Optional collector that records every call.
        """
        self.model = model
        self.api_key = api_key
        self.metrics_collector = metrics_collector

    @abstractmethod
    async def _complete(
        self,
        messages: list[dict[str, str]],
        system: str,
        max_tokens: int,
        phase: str,
        schema: dict[str, Any] | None = None,
    ) -> Completion:
        """Run one completion request.

        Args:
            messages: Conversation as list of {role, content} dicts.
            system: System prompt.
            max_tokens: Maximum tokens in response.
            phase: Pipeline phase (match, rate, feedback).
            schema: JSON schema to enforce natively; only passed when
                ``native_structured_output`` is set.
        """

    async def generate_text(
        self,
        messages: list[dict[str, str]],
        *,
        system: str = "",
        max_tokens: int = 4096,
        timeout: float | None = None,
        phase: str = "unknown",
        spec_id: str | None = None,
    ) -> str:
        """Generate free text.

        Raises:
            LanguageModelError: On timeout, budget exhaustion or API failure.
        """
        completion = await self._run(
            messages, system, max_tokens, timeout, phase, spec_id, schema=None
        )
        return completion.text

    async def generate_structured(
        self,
        messages: list[dict[str, str]],
        schema: dict[str, Any],
        *,
        system: str = "",
        max_tokens: int = 4096,
        timeout: float | None = None,
        phase: str = "unknown",
        spec_id: str | None = None,
    ) -> dict[str, Any]:
        """Generate a JSON object conforming to ``schema``.

        Providers without native schema support are asked for JSON in the
        system prompt and the reply is extracted from the text.

        Raises:
            LanguageModelError: On timeout or API failure.
            StructuredResponseError: If the reply is not schema-shaped JSON.
        """
        if self.native_structured_output:
            completion = await self._run(
                messages, system, max_tokens, timeout, phase, spec_id, schema=schema
            )
        else:
            instruction = schema_instruction(schema)
            full_system = f"{system}\n\n{instruction}" if system else instruction
            completion = await self._run(
                messages, full_system, max_tokens, timeout, phase, spec_id, schema=None
            )
        return parse_structured_response(completion.text, schema, phase=phase)

    async def _run(
        self,
        messages: list[dict[str, str]],
        system: str,
        max_tokens: int,
        timeout: float | None,
        phase: str,
        spec_id: str | None,
        schema: dict[str, Any] | None,
    ) -> Completion:
        start_time = time.perf_counter()
        completion: Completion | None = None
        error_msg: str | None = None

        try:
            if self.metrics_collector is not None:
                self.metrics_collector.check_budget()
            completion = await asyncio.wait_for(
                self._complete(messages, system, max_tokens, phase, schema=schema),
                timeout=timeout,
            )
            return completion
        except TimeoutError as e:
            error_msg = f"{self.provider_name} {phase} call timed out after {timeout}s"
            logger.warning(error_msg)
            raise LanguageModelError(error_msg, phase=phase) from e
        except LanguageModelError as e:
            error_msg = str(e)
            raise
        except Exception as e:
            error_type = classify_api_error(e)
            error_msg = f"{self.provider_name} {phase} call failed ({error_type.value}): {e}"
            logger.warning(error_msg)
            raise LanguageModelError(error_msg, phase=phase) from e
        finally:
            elapsed_ms = int((time.perf_counter() - start_time) * 1000)
            if self.metrics_collector is not None:
                from flowguard.llm.metrics import LLMCall

                call = LLMCall.create(
                    phase=phase,
                    spec_id=spec_id,
                    cost_usd=completion.cost_usd if completion else None,
                    latency_ms=elapsed_ms,
                    model=self.model,
                    success=completion is not None,
                    error=error_msg,
                    tokens_in=completion.tokens_in if completion else None,
                    tokens_out=completion.tokens_out if completion else None,
                    cached_tokens_in=(
                        completion.cached_tokens_in if completion else None
                    ),
                )
                self.metrics_collector.record(call)
