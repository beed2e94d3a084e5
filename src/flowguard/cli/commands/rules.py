"""Rules command: list built-in verification rules."""

from __future__ import annotations

import argparse


def cmd_rules(args: argparse.Namespace) -> int:
    """Print each rule with its enablement after settings overrides."""
    from flowguard.config.settings import settings
    from flowguard.verify.rules import default_registry

    registry = default_registry()
    overrides = settings.rule_overrides()
    enabled = {rule.id for rule in registry.enabled_rules(overrides)}
    for rule in registry.rules():
        state = "enabled" if rule.id in enabled else "disabled"
        fix = "  auto-fix" if rule.supports_auto_fix else ""
        print(
            f"{rule.id:<20} {state:<9} {rule.severity.value:<8} "
            f"{rule.category.value:<10} {rule.name}{fix}"
        )
    registry.clear()
    return 0
