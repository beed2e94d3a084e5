"""Spec-independent verification rules."""
from __future__ import annotations

from flowguard.verify.rules.base import (
    DuplicateRuleError,
    PatternRule,
    RulePattern,
    RuleRegistry,
    ValidationContext,
    VerificationRule,
)
from flowguard.verify.rules.secrets import HardcodedSecretsRule
from flowguard.verify.rules.sql_injection import SqlInjectionRule


def default_registry() -> RuleRegistry:
    """Build a registry holding the built-in rules."""
    return RuleRegistry([HardcodedSecretsRule(), SqlInjectionRule()])


__all__ = [
    "DuplicateRuleError",
    "HardcodedSecretsRule",
    "PatternRule",
    "RulePattern",
    "RuleRegistry",
    "SqlInjectionRule",
    "ValidationContext",
    "VerificationRule",
    "default_registry",
]
