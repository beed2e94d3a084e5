"""Metrics and cost tracking for LLM calls.

Every language-model call made during a verification is recorded to
``.flowguard/metrics.jsonl`` with latency, token usage and outcome. An
optional budget cap is checked before each call.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from flowguard.schema import InvalidSchemaError, header_from_data, write_schema_fields

logger = logging.getLogger(__name__)


@dataclass
class LLMCall:
    """Record of a single LLM API call.

    Token counts and cost are recorded when available from the provider.
    """

    call_id: str
    phase: str  # match, rate, feedback
    spec_id: str | None
    cost_usd: float | None
    tokens_in: int | None
    tokens_out: int | None
    latency_ms: int
    model: str
    timestamp: datetime
    success: bool
    error: str | None = None
    cached_tokens_in: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "call_id": self.call_id,
            "phase": self.phase,
            "spec_id": self.spec_id,
            "cost_usd": self.cost_usd,
            "latency_ms": self.latency_ms,
            "model": self.model,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "error": self.error,
        }
        if self.tokens_in is not None:
            data["tokens_in"] = self.tokens_in
        if self.tokens_out is not None:
            data["tokens_out"] = self.tokens_out
        if self.cached_tokens_in is not None:
            data["cached_tokens_in"] = self.cached_tokens_in
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LLMCall":
        """Create from dictionary."""
        return cls(
            call_id=data["call_id"],
            phase=data["phase"],
            spec_id=data.get("spec_id"),
            cost_usd=data.get("cost_usd"),
            tokens_in=data.get("tokens_in"),
            tokens_out=data.get("tokens_out"),
            latency_ms=data["latency_ms"],
            model=data["model"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            success=data["success"],
            error=data.get("error"),
            cached_tokens_in=data.get("cached_tokens_in"),
        )

    @classmethod
    def create(
        cls,
        phase: str,
        cost_usd: float | None,
        latency_ms: int,
        model: str,
        spec_id: str | None = None,
        success: bool = True,
        error: str | None = None,
        tokens_in: int | None = None,
        tokens_out: int | None = None,
        cached_tokens_in: int | None = None,
    ) -> "LLMCall":
        """Create a new LLMCall with auto-generated ID and timestamp."""
        return cls(
            call_id=str(uuid.uuid4())[:8],
            phase=phase,
            spec_id=spec_id,
            cost_usd=cost_usd,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            latency_ms=latency_ms,
            model=model,
            timestamp=datetime.now(UTC),
            success=success,
            error=error,
            cached_tokens_in=cached_tokens_in,
        )


# Pipeline phases in the order a verification runs them
PHASE_ORDER = ("match", "rate", "feedback")


@dataclass
class PhaseStats:
    """Aggregate of the calls made in one phase."""

    phase: str
    calls: int = 0
    failures: int = 0
    cost_usd: float = 0.0
    tokens_in: int = 0
    tokens_out: int = 0
    latency_ms: int = 0

    def add(self, call: LLMCall) -> None:
        self.calls += 1
        if not call.success:
            self.failures += 1
        self.cost_usd += call.cost_usd or 0.0
        self.tokens_in += call.tokens_in or 0
        self.tokens_out += call.tokens_out or 0
        self.latency_ms += call.latency_ms

    @property
    def avg_latency_ms(self) -> float:
        return self.latency_ms / self.calls if self.calls else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "calls": self.calls,
            "failures": self.failures,
            "cost_usd": self.cost_usd,
            "tokens_in": self.tokens_in,
            "tokens_out": self.tokens_out,
            "avg_latency_ms": self.avg_latency_ms,
        }


class MetricsCollector:
    """Records LLM calls to a JSONL file and aggregates them per phase.

    The first line of the file is a schema header; every other line is one
    LLMCall. Calls already on disk count towards the budget.
    """

    def __init__(self, path: Path, budget: "Budget | None" = None) -> None:
        self.path = path
        self.budget = budget
        self._calls: list[LLMCall] = []
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                for line_num, line in enumerate(f):
                    line = line.strip()
                    if not line:
                        continue
                    data = json.loads(line)
                    if line_num == 0:
                        header_from_data(data, "metrics", self.path)
                        continue
                    self._calls.append(LLMCall.from_dict(data))
            logger.debug("Loaded %d metrics from %s", len(self._calls), self.path)
        except (OSError, ValueError, KeyError, InvalidSchemaError) as e:
            logger.warning("Failed to load metrics from %s: %s", self.path, e)

    def record(self, call: LLMCall) -> None:
        """Record a new LLM call."""
        self._calls.append(call)
        self._append(call)
        logger.debug(
            "Recorded call %s: phase=%s, cost=$%.4f",
            call.call_id,
            call.phase,
            call.cost_usd or 0.0,
        )

    def _append(self, call: LLMCall) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists() or self.path.stat().st_size == 0:
            header = {
                **write_schema_fields("metrics"),
                "created_at": datetime.now(UTC).isoformat(),
            }
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(json.dumps(header) + "\n")

        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(call.to_dict()) + "\n")

    def check_budget(self) -> None:
        """Raise BudgetExceededError when the configured cap is exhausted."""
        if self.budget is not None:
            self.budget.check(self)

    @property
    def calls(self) -> list[LLMCall]:
        return list(self._calls)

    @property
    def total_cost(self) -> float:
        return sum(c.cost_usd or 0.0 for c in self._calls)

    def by_phase(self, spec_id: str | None = None) -> list[PhaseStats]:
        """Aggregate calls per phase, pipeline phases first.

        Args:
            spec_id: Only count calls made while checking this spec.
        """
        stats: dict[str, PhaseStats] = {}
        for call in self._calls:
            if spec_id is not None and call.spec_id != spec_id:
                continue
            stats.setdefault(call.phase, PhaseStats(call.phase)).add(call)

        def order(phase: str) -> tuple[int, str]:
            if phase in PHASE_ORDER:
                return PHASE_ORDER.index(phase), phase
            return len(PHASE_ORDER), phase

        return [stats[phase] for phase in sorted(stats, key=order)]

    def totals(self, spec_id: str | None = None) -> PhaseStats:
        """Aggregate of all calls, optionally for one spec."""
        total = PhaseStats("total")
        for call in self._calls:
            if spec_id is None or call.spec_id == spec_id:
                total.add(call)
        return total


class BudgetExceededError(Exception):
    """Raised when a budget limit is exceeded."""

    def __init__(
        self, limit_type: str, current_value: float, limit_value: float
    ) -> None:
        self.limit_type = limit_type
        self.current_value = current_value
        self.limit_value = limit_value
        super().__init__(
            f"Budget exceeded: {limit_type} is {current_value:.2f}, "
            f"limit is {limit_value:.2f}"
        )


@dataclass
class Budget:
    """Optional spending cap for LLM usage in a workspace."""

    max_usd: float | None = None

    def check(self, collector: MetricsCollector) -> None:
        """Check if the budget has been exceeded.

        Raises:
            BudgetExceededError: If any limit is exceeded.
        """
        if self.max_usd is not None and collector.total_cost >= self.max_usd:
            raise BudgetExceededError("cost", collector.total_cost, self.max_usd)

    def remaining(self, collector: MetricsCollector) -> float | None:
        """Get remaining budget, or None if no budget set."""
        if self.max_usd is None:
            return None
        return max(0.0, self.max_usd - collector.total_cost)
