"""Data models for the verification system."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class DiffFormat(Enum):
    """Source representation of a diff."""

    GIT = "git"
    GITHUB = "github"  # JSON array of PR file objects
    GITLAB = "gitlab"  # JSON object with a changes array
    UNIFIED = "unified"


class FileStatus(Enum):
    """Operation applied to a file by a diff."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class ChangeType(Enum):
    """Kind of a single diff line."""

    ADDITION = "addition"
    DELETION = "deletion"
    CONTEXT = "context"


class DeviationType(Enum):
    """How a change diverges from a spec requirement."""

    MISSING = "missing"  # Required but not implemented
    CONTRADICTION = "contradiction"  # Implemented against the requirement
    INCOMPLETE = "incomplete"  # Partially implemented

    @classmethod
    def parse(cls, value: Any) -> "DeviationType":
        """Coerce a model-provided label into a deviation type."""
        text = str(value or "").strip().lower()
        aliases = {
            "incorrect": cls.CONTRADICTION,
            "contradictory": cls.CONTRADICTION,
            "extra": cls.CONTRADICTION,
            "partial": cls.INCOMPLETE,
        }
        if text in aliases:
            return aliases[text]
        try:
            return cls(text)
        except ValueError:
            return cls.INCOMPLETE


class Severity(Enum):
    """Ordinal issue severity (Critical > High > Medium > Low)."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        """Numeric rank, higher is more severe."""
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """Parse a severity label case-insensitively.

        Raises:
            ValueError: If the label is not one of the four severities.
        """
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown severity: {value!r}")


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class IssueCategory(Enum):
    """Issue category. SYSTEM marks an inability to verify."""

    SECURITY = "security"
    PERFORMANCE = "performance"
    STYLE = "style"
    LOGIC = "logic"
    DOCUMENTATION = "documentation"
    TESTING = "testing"
    ARCHITECTURE = "architecture"
    SYSTEM = "system"


class ApprovalStatus(Enum):
    """Coarse recommendation derived from a verification run."""

    APPROVED = "approved"
    APPROVED_WITH_CONDITIONS = "approved_with_conditions"
    CHANGES_REQUESTED = "changes_requested"
    PENDING = "pending"


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# --- Diff input ---


@dataclass
class DiffMetadata:
    """Optional provenance attached to a diff."""

    commit_hash: str | None = None
    branch: str | None = None
    author: str | None = None
    message: str | None = None
    pr_url: str | None = None
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "commit_hash": self.commit_hash,
            "branch": self.branch,
            "author": self.author,
            "message": self.message,
            "pr_url": self.pr_url,
            "timestamp": _format_datetime(self.timestamp),
        }


@dataclass
class DiffInput:
    """Uniform diff handed to the engine by an adapter."""

    content: str
    format: DiffFormat | None = None  # None means detect from content
    metadata: DiffMetadata | None = None
    # Recoverable adapter failures (e.g. PR metadata fetch) to report as issues
    adapter_errors: list[str] = field(default_factory=list)


# --- Diff analysis ---


@dataclass(frozen=True)
class Change:
    """A single classified diff line."""

    type: ChangeType
    line_number: int
    content: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.type.value,
            "line_number": self.line_number,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Change":
        """Create from dictionary."""
        return cls(
            type=ChangeType(data["type"]),
            line_number=int(data["line_number"]),
            content=data["content"],
        )


@dataclass
class ChangedFile:
    """Per-file line-level changes."""

    path: str
    status: FileStatus
    changes: list[Change] = field(default_factory=list)
    old_path: str | None = None  # Set for renames

    @property
    def additions(self) -> int:
        return sum(1 for c in self.changes if c.type == ChangeType.ADDITION)

    @property
    def deletions(self) -> int:
        return sum(1 for c in self.changes if c.type == ChangeType.DELETION)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": self.path,
            "status": self.status.value,
            "old_path": self.old_path,
            "changes": [c.to_dict() for c in self.changes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangedFile":
        """Create from dictionary."""
        return cls(
            path=data["path"],
            status=FileStatus(data["status"]),
            changes=[Change.from_dict(c) for c in data.get("changes", [])],
            old_path=data.get("old_path"),
        )


@dataclass
class DiffAnalysis:
    """Structured view of a parsed diff.

    ``total_lines`` counts additions and deletions only; context lines are
    kept on each file but excluded from the tally.
    """

    total_files: int
    total_lines: int
    additions: int
    deletions: int
    changed_files: list[ChangedFile] = field(default_factory=list)
    added_files: int = 0
    modified_files: int = 0
    deleted_files: int = 0
    renamed_files: int = 0
    parsing_errors: list[str] = field(default_factory=list)

    @classmethod
    def from_files(
        cls, files: list[ChangedFile], parsing_errors: list[str] | None = None
    ) -> "DiffAnalysis":
        """Build an analysis whose totals are derived from the given files."""
        additions = sum(f.additions for f in files)
        deletions = sum(f.deletions for f in files)
        statuses = [f.status for f in files]
        return cls(
            total_files=len(files),
            total_lines=additions + deletions,
            additions=additions,
            deletions=deletions,
            changed_files=list(files),
            added_files=statuses.count(FileStatus.ADDED),
            modified_files=statuses.count(FileStatus.MODIFIED),
            deleted_files=statuses.count(FileStatus.DELETED),
            renamed_files=statuses.count(FileStatus.RENAMED),
            parsing_errors=list(parsing_errors or []),
        )

    @classmethod
    def empty(cls) -> "DiffAnalysis":
        """Zero-valued analysis for empty diffs."""
        return cls.from_files([])

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total_files": self.total_files,
            "total_lines": self.total_lines,
            "additions": self.additions,
            "deletions": self.deletions,
            "added_files": self.added_files,
            "modified_files": self.modified_files,
            "deleted_files": self.deleted_files,
            "renamed_files": self.renamed_files,
            "parsing_errors": self.parsing_errors,
            "changed_files": [f.to_dict() for f in self.changed_files],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiffAnalysis":
        """Create from dictionary."""
        return cls(
            total_files=data["total_files"],
            total_lines=data["total_lines"],
            additions=data["additions"],
            deletions=data["deletions"],
            changed_files=[ChangedFile.from_dict(f) for f in data["changed_files"]],
            added_files=data.get("added_files", 0),
            modified_files=data.get("modified_files", 0),
            deleted_files=data.get("deleted_files", 0),
            renamed_files=data.get("renamed_files", 0),
            parsing_errors=list(data.get("parsing_errors", [])),
        )


# --- Matching, rating, feedback ---


@dataclass
class RequirementMatch:
    """A spec requirement the changes address."""

    requirement_id: str
    requirement_text: str
    relevance: float  # 0.0 to 1.0
    reasoning: str


@dataclass
class Deviation:
    """A specific mismatch between the diff and a spec requirement."""

    type: DeviationType
    description: str
    expected_behavior: str
    actual_behavior: str
    file_path: str | None = None
    line_number: int | None = None
    requirement_id: str | None = None


@dataclass
class SpecMatchResult:
    """Matching outcome for one bounded chunk (one changed file).

    ``system_error`` is set when the chunk could not be verified at all
    (spec missing, model failure); its deviations then describe the failure.
    """

    spec_id: str
    file_changes: list[ChangedFile]
    matched_requirements: list[RequirementMatch] = field(default_factory=list)
    deviations: list[Deviation] = field(default_factory=list)
    confidence: float = 0.0
    system_error: str | None = None


@dataclass
class SeverityRating:
    """Severity classification for one deviation."""

    severity: Severity
    reasoning: str
    confidence: float
    impact_areas: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FixSuggestion:
    """Remediation guidance for an issue."""

    description: str
    steps: tuple[str, ...] = ()
    code_example: str | None = None
    automated_fix: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "description": self.description,
            "steps": list(self.steps),
            "code_example": self.code_example,
            "automated_fix": self.automated_fix,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FixSuggestion":
        """Create from dictionary."""
        return cls(
            description=data["description"],
            steps=tuple(data.get("steps", [])),
            code_example=data.get("code_example"),
            automated_fix=bool(data.get("automated_fix", False)),
        )


@dataclass(frozen=True)
class VerificationIssue:
    """A single reported issue. Immutable once created."""

    id: str
    severity: Severity
    category: IssueCategory
    file: str
    message: str
    line: int | None = None
    suggestion: str | None = None
    code: str | None = None
    spec_requirement_id: str | None = None
    fix_suggestion: FixSuggestion | None = None
    rule_id: str | None = None  # Set for issues produced by a VerificationRule

    @property
    def is_system(self) -> bool:
        return self.category == IssueCategory.SYSTEM

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "severity": self.severity.value,
            "category": self.category.value,
            "file": self.file,
            "line": self.line,
            "message": self.message,
            "suggestion": self.suggestion,
            "code": self.code,
            "spec_requirement_id": self.spec_requirement_id,
            "fix_suggestion": (
                self.fix_suggestion.to_dict() if self.fix_suggestion else None
            ),
            "rule_id": self.rule_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VerificationIssue":
        """Create from dictionary."""
        fix = data.get("fix_suggestion")
        return cls(
            id=data["id"],
            severity=Severity(data["severity"]),
            category=IssueCategory(data["category"]),
            file=data["file"],
            message=data["message"],
            line=data.get("line"),
            suggestion=data.get("suggestion"),
            code=data.get("code"),
            spec_requirement_id=data.get("spec_requirement_id"),
            fix_suggestion=FixSuggestion.from_dict(fix) if fix else None,
            rule_id=data.get("rule_id"),
        )


# --- Verification record ---


@dataclass
class VerificationSummary:
    """Tallies and recommendation for the final issue list."""

    passed: bool
    total_issues: int
    issue_counts: dict[str, int]  # Keyed by Severity.value
    recommendation: str
    approval_status: ApprovalStatus

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "passed": self.passed,
            "total_issues": self.total_issues,
            "issue_counts": dict(self.issue_counts),
            "recommendation": self.recommendation,
            "approval_status": self.approval_status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VerificationSummary":
        """Create from dictionary."""
        return cls(
            passed=data["passed"],
            total_issues=data["total_issues"],
            issue_counts=dict(data["issue_counts"]),
            recommendation=data["recommendation"],
            approval_status=ApprovalStatus(data["approval_status"]),
        )


@dataclass
class DiffSource:
    """Where the verified diff came from."""

    commit_hash: str = "unknown"
    branch: str = "unknown"
    author: str = "unknown"
    message: str = "No message"
    timestamp: datetime | None = None
    pr_url: str | None = None

    @classmethod
    def from_metadata(cls, metadata: DiffMetadata | None) -> "DiffSource":
        """Fill a diff source from optional metadata, defaulting unknowns."""
        if metadata is None:
            return cls()
        return cls(
            commit_hash=metadata.commit_hash or "unknown",
            branch=metadata.branch or "unknown",
            author=metadata.author or "unknown",
            message=metadata.message or "No message",
            timestamp=metadata.timestamp,
            pr_url=metadata.pr_url,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "commit_hash": self.commit_hash,
            "branch": self.branch,
            "author": self.author,
            "message": self.message,
            "timestamp": _format_datetime(self.timestamp),
            "pr_url": self.pr_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiffSource":
        """Create from dictionary."""
        return cls(
            commit_hash=data.get("commit_hash", "unknown"),
            branch=data.get("branch", "unknown"),
            author=data.get("author", "unknown"),
            message=data.get("message", "No message"),
            timestamp=_parse_datetime(data.get("timestamp")),
            pr_url=data.get("pr_url"),
        )


@dataclass(frozen=True)
class Verification:
    """Result of one verify_changes call. Never mutated after creation."""

    id: str
    epic_id: str
    diff_source: DiffSource
    analysis: DiffAnalysis
    issues: list[VerificationIssue]
    summary: VerificationSummary
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "epic_id": self.epic_id,
            "diff_source": self.diff_source.to_dict(),
            "analysis": self.analysis.to_dict(),
            "issues": [i.to_dict() for i in self.issues],
            "summary": self.summary.to_dict(),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Verification":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            epic_id=data["epic_id"],
            diff_source=DiffSource.from_dict(data.get("diff_source", {})),
            analysis=DiffAnalysis.from_dict(data["analysis"]),
            issues=[VerificationIssue.from_dict(i) for i in data.get("issues", [])],
            summary=VerificationSummary.from_dict(data["summary"]),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


# --- Engine input ---


@dataclass(frozen=True)
class VerificationOptions:
    """Caller options applied after issues are collected."""

    include_code_examples: bool = True
    skip_low_severity: bool = False
    max_issues: int | None = None
    auto_approve: bool = False


@dataclass
class VerificationInput:
    """Arguments of a single verify_changes call.

    ``spec_ids=None`` resolves the epic's specs from storage; an empty list
    means no spec applies.
    """

    epic_id: str
    diff_input: DiffInput
    spec_ids: list[str] | None = None
    options: VerificationOptions = field(default_factory=VerificationOptions)
