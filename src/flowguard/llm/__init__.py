"""LLM providers, metrics and prompts for FlowGuard."""
from __future__ import annotations

from .metrics import (
    Budget,
    BudgetExceededError,
    LLMCall,
    MetricsCollector,
    PhaseStats,
)
from .providers import LLMProvider, create_provider
from .structured import StructuredResponseError

__all__ = [
    "Budget",
    "BudgetExceededError",
    "LLMCall",
    "LLMProvider",
    "MetricsCollector",
    "PhaseStats",
    "StructuredResponseError",
    "create_provider",
]
