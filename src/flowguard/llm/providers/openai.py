"""OpenAI LLM provider."""

import logging
import os
from typing import TYPE_CHECKING, Any

from flowguard.llm.prompt_cache import (
    PROMPT_CACHE_RETENTION,
    build_prompt_cache_key,
)
from flowguard.llm.providers.base import Completion, LLMProvider

if TYPE_CHECKING:
    from flowguard.llm.metrics import MetricsCollector

logger = logging.getLogger(__name__)


def _extract_usage_tokens(
    usage: Any,
) -> tuple[int | None, int | None, int | None]:
    """Extract prompt/completion/cached prompt tokens from usage payloads."""
    if usage is None:
        return None, None, None
    tokens_in = getattr(usage, "prompt_tokens", None)
    tokens_out = getattr(usage, "completion_tokens", None)
    if tokens_in is None:
        tokens_in = getattr(usage, "input_tokens", None)
    if tokens_out is None:
        tokens_out = getattr(usage, "output_tokens", None)
    prompt_details = getattr(usage, "prompt_tokens_details", None)
    if prompt_details is None and isinstance(usage, dict):
        prompt_details = usage.get("prompt_tokens_details")

    cached_tokens_in = None
    if prompt_details is not None:
        cached_tokens_in = getattr(prompt_details, "cached_tokens", None)
        if cached_tokens_in is None and isinstance(prompt_details, dict):
            cached_tokens_in = prompt_details.get("cached_tokens")

    return (
        int(tokens_in) if tokens_in is not None else None,
        int(tokens_out) if tokens_out is not None else None,
        int(cached_tokens_in) if cached_tokens_in is not None else None,
    )


def _estimate_cost(
    tokens_in: int | None,
    tokens_out: int | None,
    prices_per_mtok: tuple[float, float] | None,
) -> float | None:
    """Estimate USD cost from token usage and (input, output) per-million prices."""
    if prices_per_mtok is None or tokens_in is None or tokens_out is None:
        return None
    input_price, output_price = prices_per_mtok
    return (tokens_in * input_price + tokens_out * output_price) / 1_000_000


class OpenAIProvider(LLMProvider):
    """OpenAI provider using the openai Python SDK.

    Structured calls use ``response_format`` JSON schemas. Requires an API
    key (from settings, env var, or passed directly). The API reports no
    cost, so calls are priced only when ``prices_per_mtok`` is given.
    """

    provider_name = "openai"
    native_structured_output = True

    def __init__(
        self,
        model: str = "gpt-5.2",
        api_key: str | None = None,
        metrics_collector: "MetricsCollector | None" = None,
        prices_per_mtok: tuple[float, float] | None = None,
    ) -> None:
        super().__init__(
            model=model, api_key=api_key, metrics_collector=metrics_collector
        )
        self.prices_per_mtok = prices_per_mtok
        self._client: Any = None
        logger.info("OpenAIProvider initialized (model=%s)", model)

    def _get_async_client(self) -> Any:
        """Get (and reuse) an async OpenAI client instance."""
        if self._client is not None:
            return self._client

        from openai import AsyncOpenAI

        api_key = self.api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError(
                "OpenAI API key required. Set OPENAI_API_KEY env var or configure "
                "in settings."
            )
        self._client = AsyncOpenAI(api_key=api_key)
        return self._client

    async def _complete(
        self,
        messages: list[dict[str, str]],
        system: str,
        max_tokens: int,
        phase: str,
        schema: dict[str, Any] | None = None,
    ) -> Completion:
        client = self._get_async_client()

        api_messages: list[dict[str, str]] = []
        if system:
            api_messages.append({"role": "system", "content": system})
        api_messages.extend(messages)

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": api_messages,
            "max_completion_tokens": max_tokens,
            "prompt_cache_key": build_prompt_cache_key(
                provider=self.provider_name, model=self.model, phase=phase
            ),
            "prompt_cache_retention": PROMPT_CACHE_RETENTION,
        }
        if schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": f"flowguard_{phase}",
                    "schema": schema,
                    "strict": False,
                },
            }

        logger.debug("OpenAI %s request: %d messages", phase, len(api_messages))
        response = await client.chat.completions.create(**kwargs)
        tokens_in, tokens_out, cached_tokens_in = _extract_usage_tokens(
            response.usage
        )
        text = response.choices[0].message.content or ""
        return Completion(
            text=text,
            cost_usd=_estimate_cost(tokens_in, tokens_out, self.prices_per_mtok),
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            cached_tokens_in=cached_tokens_in,
        )
