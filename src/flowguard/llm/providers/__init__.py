"""LLM provider implementations."""
from __future__ import annotations

from typing import TYPE_CHECKING

from flowguard.llm.providers.base import (
    APIErrorType,
    Completion,
    LLMProvider,
    classify_api_error,
)

if TYPE_CHECKING:
    from flowguard.config.settings import Settings
    from flowguard.llm.metrics import MetricsCollector


def create_provider(
    settings: "Settings", metrics_collector: "MetricsCollector | None" = None
) -> LLMProvider:
    """Create the provider configured in settings.

    Raises:
        ValueError: If the configured provider name is unknown.
    """
    provider_name = settings.llm_provider
    if provider_name == "openai":
        from flowguard.llm.providers.openai import OpenAIProvider

        return OpenAIProvider(
            model=settings.llm_model,
            api_key=settings.openai_api_key,
            metrics_collector=metrics_collector,
            prices_per_mtok=settings.openai_prices_per_mtok,
        )
    if provider_name == "anthropic":
        from flowguard.llm.providers.anthropic import AnthropicProvider

        return AnthropicProvider(
            model=settings.llm_model,
            api_key=settings.anthropic_api_key,
            use_web_auth=settings.use_web_auth,
            metrics_collector=metrics_collector,
        )
    raise ValueError(f"Unknown LLM provider: {provider_name}")


__all__ = [
    "APIErrorType",
    "Completion",
    "LLMProvider",
    "classify_api_error",
    "create_provider",
]
