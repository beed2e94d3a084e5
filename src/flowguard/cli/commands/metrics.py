"""Metrics command: LLM usage and spend in this workspace."""

from __future__ import annotations

import argparse
import json

from flowguard.config.paths import get_paths
from flowguard.llm.metrics import Budget, MetricsCollector, PhaseStats


def _row(stats: PhaseStats) -> str:
    return (
        f"{stats.phase:<10} {stats.calls:>6} {stats.failures:>7} "
        f"{stats.tokens_in:>10} {stats.tokens_out:>10} "
        f"{stats.avg_latency_ms:>9.0f} {stats.cost_usd:>10.4f}"
    )


def cmd_metrics(args: argparse.Namespace) -> int:
    """Print per-phase call counts, tokens, latency and cost."""
    from flowguard.config.settings import settings

    budget_usd = settings.llm_budget_usd
    collector = MetricsCollector(
        get_paths().metrics,
        budget=Budget(max_usd=budget_usd) if budget_usd else None,
    )
    phases = collector.by_phase(args.spec)
    totals = collector.totals(args.spec)
    remaining = collector.budget.remaining(collector) if collector.budget else None

    if args.json:
        print(
            json.dumps(
                {
                    "phases": [stats.to_dict() for stats in phases],
                    "total": totals.to_dict(),
                    "budget_usd": budget_usd,
                    "budget_remaining_usd": remaining,
                },
                indent=2,
            )
        )
        return 0

    if not phases:
        print("No LLM calls recorded")
        return 0

    print(
        f"{'phase':<10} {'calls':>6} {'failed':>7} {'tokens_in':>10} "
        f"{'tokens_out':>10} {'avg_ms':>9} {'cost_usd':>10}"
    )
    for stats in phases:
        print(_row(stats))
    print(_row(totals))
    if remaining is not None:
        print(f"\nBudget: ${remaining:.4f} of ${budget_usd:.2f} remaining")
    return 0
