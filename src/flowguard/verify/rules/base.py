"""Verification rule contract and registry.

Rules are spec-independent checks over one file's content. They never call a
language model. Which rules exist is decided by whoever owns the
``RuleRegistry``; the engine only asks it for the enabled rules.
"""

import logging
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from flowguard.verify.models import (
    ChangedFile,
    IssueCategory,
    Severity,
    VerificationIssue,
)

logger = logging.getLogger(__name__)

MAX_CODE_PREVIEW = 100


@dataclass
class ValidationContext:
    """Input to a rule for a single file."""

    file_path: str
    file_content: str
    file_changes: list[ChangedFile] = field(default_factory=list)
    spec_content: str = ""
    workspace_root: Path | None = None


class VerificationRule(ABC):
    """A registered, spec-agnostic check."""

    id: str
    name: str
    category: IssueCategory
    severity: Severity
    enabled: bool = True

    @abstractmethod
    def validate(self, context: ValidationContext) -> list[VerificationIssue]:
        """Return zero or more issues for the file in ``context``."""

    def auto_fix(
        self, issue: VerificationIssue, context: ValidationContext
    ) -> str | None:
        """Return fixed file content for an issue, or None when unsupported."""
        return None

    @property
    def supports_auto_fix(self) -> bool:
        return type(self).auto_fix is not VerificationRule.auto_fix


@dataclass(frozen=True)
class RulePattern:
    """One regex a pattern rule looks for."""

    name: str
    regex: re.Pattern[str]
    suggestion: str


class PatternRule(VerificationRule):
    """Rule that reports the first matching line of each of its patterns."""

    patterns: tuple[RulePattern, ...] = ()
    message_template = "{name} detected"

    def validate(self, context: ValidationContext) -> list[VerificationIssue]:
        issues: list[VerificationIssue] = []
        lines = context.file_content.splitlines()
        for pattern in self.patterns:
            for line_number, line in enumerate(lines, start=1):
                match = pattern.regex.search(line)
                if not match:
                    continue
                issues.append(
                    VerificationIssue(
                        id=str(uuid.uuid4()),
                        severity=self.severity,
                        category=self.category,
                        file=context.file_path,
                        line=line_number,
                        message=self.message_template.format(name=pattern.name),
                        suggestion=pattern.suggestion,
                        code=match.group(0)[:MAX_CODE_PREVIEW],
                        rule_id=self.id,
                    )
                )
                break
        return issues


class DuplicateRuleError(ValueError):
    """Raised when registering a rule id that is already registered."""


class RuleRegistry:
    """Owns the set of verification rules for one engine.

    Registries are plain objects: build one at startup, hand it to the
    engine, and ``clear()`` it at shutdown.
    """

    def __init__(self, rules: list[VerificationRule] | None = None) -> None:
        self._rules: dict[str, VerificationRule] = {}
        for rule in rules or []:
            self.register(rule)

    def register(self, rule: VerificationRule) -> None:
        """Add a rule.

        Raises:
            DuplicateRuleError: If a rule with the same id is registered.
        """
        if rule.id in self._rules:
            raise DuplicateRuleError(f"Rule already registered: {rule.id}")
        self._rules[rule.id] = rule
        logger.debug("Registered rule %s", rule.id)

    def unregister(self, rule_id: str) -> VerificationRule | None:
        """Remove and return a rule, or None if it was not registered."""
        return self._rules.pop(rule_id, None)

    def get(self, rule_id: str) -> VerificationRule | None:
        return self._rules.get(rule_id)

    def rules(self) -> list[VerificationRule]:
        """All rules in registration order."""
        return list(self._rules.values())

    def enabled_rules(
        self, overrides: dict[str, bool] | None = None
    ) -> list[VerificationRule]:
        """Rules that are enabled, applying per-rule overrides by id."""
        overrides = overrides or {}
        return [
            rule
            for rule in self._rules.values()
            if overrides.get(rule.id, rule.enabled)
        ]

    def clear(self) -> None:
        self._rules.clear()

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules
