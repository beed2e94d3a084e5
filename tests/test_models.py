"""Unit tests for verification data models."""

from datetime import UTC, datetime

import pytest

from flowguard.verify.models import (
    Change,
    ChangedFile,
    ChangeType,
    DeviationType,
    DiffAnalysis,
    DiffMetadata,
    DiffSource,
    FileStatus,
    FixSuggestion,
    IssueCategory,
    Severity,
    VerificationIssue,
)


class TestSeverity:
    """Tests for Severity ordering and parsing."""

    def test_rank_order(self) -> None:
        ranks = [s.rank for s in Severity]
        assert ranks == sorted(ranks, reverse=True)
        assert Severity.CRITICAL.rank > Severity.LOW.rank

    def test_parse_is_case_insensitive(self) -> None:
        assert Severity.parse(" high ") == Severity.HIGH
        assert Severity.parse("CRITICAL") == Severity.CRITICAL

    def test_parse_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown severity"):
            Severity.parse("severe")


class TestDeviationType:
    """Tests for coercing model-provided deviation labels."""

    def test_known_and_aliases(self) -> None:
        assert DeviationType.parse("Missing") == DeviationType.MISSING
        assert DeviationType.parse("incorrect") == DeviationType.CONTRADICTION
        assert DeviationType.parse("partial") == DeviationType.INCOMPLETE

    def test_unknown_defaults_to_incomplete(self) -> None:
        assert DeviationType.parse(None) == DeviationType.INCOMPLETE
        assert DeviationType.parse("weird") == DeviationType.INCOMPLETE


class TestDiffAnalysis:
    """Tests for derived diff totals."""

    def test_from_files_counts(self) -> None:
        files = [
            ChangedFile(
                path="a.py",
                status=FileStatus.MODIFIED,
                changes=[
                    Change(ChangeType.CONTEXT, 1, "x"),
                    Change(ChangeType.DELETION, 2, "old"),
                    Change(ChangeType.ADDITION, 2, "new"),
                    Change(ChangeType.ADDITION, 3, "more"),
                ],
            ),
            ChangedFile(path="b.py", status=FileStatus.DELETED),
            ChangedFile(path="c.py", status=FileStatus.RENAMED, old_path="old_c.py"),
        ]

        analysis = DiffAnalysis.from_files(files, ["bad hunk"])

        assert analysis.total_files == 3
        assert analysis.additions == 2
        assert analysis.deletions == 1
        assert analysis.total_lines == 3
        assert (analysis.modified_files, analysis.deleted_files) == (1, 1)
        assert analysis.renamed_files == 1
        assert analysis.parsing_errors == ["bad hunk"]
        assert DiffAnalysis.from_dict(analysis.to_dict()) == analysis

    def test_empty(self) -> None:
        analysis = DiffAnalysis.empty()
        assert analysis.total_files == 0
        assert analysis.changed_files == []


class TestVerificationIssue:
    """Tests for issue serialization."""

    def test_round_trip_with_fix(self) -> None:
        issue = VerificationIssue(
            id="i1",
            severity=Severity.HIGH,
            category=IssueCategory.SECURITY,
            file="a.py",
            message="m",
            line=4,
            fix_suggestion=FixSuggestion("do it", ("one", "two"), "code", True),
            rule_id="hardcoded-secrets",
        )

        data = issue.to_dict()

        assert data["severity"] == "High"
        assert data["fix_suggestion"]["steps"] == ["one", "two"]
        assert VerificationIssue.from_dict(data) == issue

    def test_is_system(self) -> None:
        issue = VerificationIssue(
            id="i2",
            severity=Severity.MEDIUM,
            category=IssueCategory.SYSTEM,
            file="<diff>",
            message="m",
        )
        assert issue.is_system is True


class TestDiffSource:
    """Tests for diff provenance defaults."""

    def test_defaults_without_metadata(self) -> None:
        source = DiffSource.from_metadata(None)
        assert source.commit_hash == "unknown"
        assert source.message == "No message"

    def test_fills_from_metadata(self) -> None:
        timestamp = datetime(2026, 1, 2, 3, 4, tzinfo=UTC)
        source = DiffSource.from_metadata(
            DiffMetadata(commit_hash="abc", author="dev", timestamp=timestamp)
        )

        assert source.commit_hash == "abc"
        assert source.branch == "unknown"
        assert source.author == "dev"
        assert DiffSource.from_dict(source.to_dict()) == source
