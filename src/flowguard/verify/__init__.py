"""Spec-driven verification of code changes.

Only models and errors are exported here; import the engine, adapters and
stages from their modules.
"""
from __future__ import annotations

from flowguard.verify.errors import (
    AdapterError,
    LanguageModelError,
    NotFoundError,
    RuleExecutionError,
    StructuralError,
    VerificationCancelledError,
    VerificationError,
)
from flowguard.verify.models import (
    ApprovalStatus,
    DiffAnalysis,
    DiffFormat,
    DiffInput,
    DiffMetadata,
    IssueCategory,
    Severity,
    Verification,
    VerificationInput,
    VerificationIssue,
    VerificationOptions,
    VerificationSummary,
)

__all__ = [
    "AdapterError",
    "ApprovalStatus",
    "DiffAnalysis",
    "DiffFormat",
    "DiffInput",
    "DiffMetadata",
    "IssueCategory",
    "LanguageModelError",
    "NotFoundError",
    "RuleExecutionError",
    "Severity",
    "StructuralError",
    "Verification",
    "VerificationCancelledError",
    "VerificationError",
    "VerificationInput",
    "VerificationIssue",
    "VerificationOptions",
    "VerificationSummary",
]
