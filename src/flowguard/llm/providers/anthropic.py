"""Anthropic LLM provider using Claude Agent SDK."""

import logging
from typing import TYPE_CHECKING, Any

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ResultMessage,
    TextBlock,
    query,
)

from flowguard.llm.providers.base import Completion, LLMProvider

if TYPE_CHECKING:
    from flowguard.llm.metrics import MetricsCollector

logger = logging.getLogger(__name__)


def _extract_token_usage(message: ResultMessage) -> tuple[int | None, int | None]:
    """Best-effort extraction of token usage from SDK result messages."""
    tokens_in = getattr(message, "total_input_tokens", None)
    tokens_out = getattr(message, "total_output_tokens", None)

    usage = getattr(message, "usage", None)
    if usage is not None:
        if isinstance(usage, dict):
            tokens_in = tokens_in or usage.get("input_tokens")
            tokens_out = tokens_out or usage.get("output_tokens")
        else:
            tokens_in = tokens_in or getattr(usage, "input_tokens", None)
            tokens_out = tokens_out or getattr(usage, "output_tokens", None)

    return (
        int(tokens_in) if tokens_in is not None else None,
        int(tokens_out) if tokens_out is not None else None,
    )


class AnthropicProvider(LLMProvider):
    """Anthropic provider using Claude Agent SDK.

    Supports both web auth (default) and API key authentication. The SDK has
    no schema-constrained mode, so structured calls go through the base
    class's JSON instruction path.
    """

    provider_name = "anthropic"

    def __init__(
        self,
        model: str = "claude-sonnet-4-5-20241022",
        api_key: str | None = None,
        use_web_auth: bool = True,
        metrics_collector: "MetricsCollector | None" = None,
    ) -> None:
        """Initialize Anthropic provider.

        Args:
            model: Model identifier (for metrics tracking).
            api_key: Optional API key. If None and use_web_auth=True, uses web auth.
            use_web_auth: Whether to use web auth (default True).
            metrics_collector: Optional collector that records every call.
        """
        super().__init__(
            model=model, api_key=api_key, metrics_collector=metrics_collector
        )
        self.use_web_auth = use_web_auth
        logger.info(
            "AnthropicProvider initialized (model=%s, web_auth=%s)",
            model,
            use_web_auth,
        )

    def _format_messages_as_prompt(self, messages: list[dict[str, str]]) -> str:
        """Format message history as a single prompt for the agent."""
        if not messages:
            return ""
        if len(messages) == 1:
            return messages[0].get("content", "")

        parts: list[str] = []
        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content", "")
            if role == "user":
                parts.append(f"User: {content}")
            elif role == "assistant":
                parts.append(f"Assistant: {content}")
        return "\n\n".join(parts)

    async def _complete(
        self,
        messages: list[dict[str, str]],
        system: str,
        max_tokens: int,
        phase: str,
        schema: dict[str, Any] | None = None,
    ) -> Completion:
        _ = max_tokens, schema  # The SDK manages output length itself.
        env_config: dict[str, str] = {}
        if self.use_web_auth:
            env_config["ANTHROPIC_API_KEY"] = ""  # Force web auth
        elif self.api_key:
            env_config["ANTHROPIC_API_KEY"] = self.api_key

        options = ClaudeAgentOptions(
            allowed_tools=[],
            system_prompt=system or None,
            max_turns=1,
            env=env_config,
        )
        prompt = self._format_messages_as_prompt(messages)

        chunks: list[str] = []
        cost: float | None = None
        tokens_in: int | None = None
        tokens_out: int | None = None

        logger.debug("Anthropic %s query: prompt=%d chars", phase, len(prompt))
        async for message in query(prompt=prompt, options=options):
            if isinstance(message, AssistantMessage):
                for block in message.content:
                    if isinstance(block, TextBlock):
                        chunks.append(block.text)
            elif isinstance(message, ResultMessage):
                cost = message.total_cost_usd
                tokens_in, tokens_out = _extract_token_usage(message)
                logger.info("Query complete, cost: $%.4f", cost or 0)

        return Completion(
            text="".join(chunks),
            cost_usd=cost,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
        )
