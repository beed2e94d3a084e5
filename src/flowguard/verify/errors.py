"""Exceptions raised by the verification pipeline.

Only StructuralError (and an AdapterError that leaves no diff content) escapes
``VerificationEngine.verify_changes``; the rest are recovered into
system-category issues.
"""
from __future__ import annotations


class VerificationError(Exception):
    """Base exception for verification pipeline errors."""

    pass


class StructuralError(VerificationError):
    """Raised when a diff cannot be parsed for its declared format."""

    def __init__(self, message: str, diff_format: str | None = None) -> None:
        self.diff_format = diff_format
        super().__init__(message)


class NotFoundError(VerificationError):
    """Raised when a stored artifact (spec, verification) does not exist."""

    def __init__(self, artifact_type: str, artifact_id: str) -> None:
        self.artifact_type = artifact_type
        self.artifact_id = artifact_id
        super().__init__(f"{artifact_type} not found: {artifact_id}")


class AdapterError(VerificationError):
    """Raised when a diff source cannot be adapted (bad URL, remote failure)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class LanguageModelError(VerificationError):
    """Raised when a language-model call times out or returns unusable data."""

    def __init__(self, message: str, phase: str = "unknown") -> None:
        self.phase = phase
        super().__init__(message)


class RuleExecutionError(VerificationError):
    """Raised when a verification rule fails while validating a file."""

    def __init__(self, rule_id: str, cause: BaseException) -> None:
        self.rule_id = rule_id
        self.cause = cause
        super().__init__(f"Rule {rule_id} failed: {cause}")


class VerificationCancelledError(VerificationError):
    """Raised between stages when the caller cancelled the verification."""

    def __init__(self, stage: str) -> None:
        self.stage = stage
        super().__init__(f"Verification cancelled before {stage}")
