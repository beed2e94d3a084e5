"""Tests for fix suggestions, issue formatting and summaries."""

import asyncio

from conftest import FEEDBACK_REPLY

from flowguard.verify.errors import LanguageModelError
from flowguard.verify.feedback import (
    APPROVED_RECOMMENDATION,
    FALLBACK_STEPS,
    SYSTEM_ERROR_RECOMMENDATION,
    FeedbackGenerator,
    approval_status,
    build_issue_message,
    classify_category,
    find_line_number,
    summarize,
)
from flowguard.verify.models import (
    ApprovalStatus,
    Change,
    ChangedFile,
    ChangeType,
    Deviation,
    DeviationType,
    FileStatus,
    IssueCategory,
    Severity,
    SeverityRating,
    VerificationIssue,
)

DEVIATION = Deviation(
    type=DeviationType.CONTRADICTION,
    description="Passwords compared in plain text",
    expected_behavior="Hash comparison",
    actual_behavior="String equality",
    file_path="src/login.py",
)
RATING = SeverityRating(
    severity=Severity.HIGH,
    reasoning="credential exposure",
    confidence=0.9,
    impact_areas=["Security", "functionality"],
)


def _issue(severity: Severity, category: IssueCategory = IssueCategory.LOGIC):
    return VerificationIssue(
        id=f"{severity.value}-{category.value}",
        severity=severity,
        category=category,
        file="a.py",
        message="m",
    )


class TestFeedbackGenerator:
    def test_generates_advisory_suggestion(self, make_provider) -> None:
        provider = make_provider(lambda phase, prompt: FEEDBACK_REPLY)
        fix = asyncio.run(
            FeedbackGenerator(provider).generate(DEVIATION, RATING, "src/login.py", 4)
        )
        assert fix.description == "Implement the missing behavior"
        assert fix.steps == ("Add the code", "Add a test")
        assert fix.code_example == "pass"
        assert fix.automated_fix is False
        assert provider.phases() == ["feedback"]
        assert "code_example" in provider.calls[0]["schema"]["properties"]

    def test_code_example_not_requested(self, make_provider) -> None:
        provider = make_provider(lambda phase, prompt: FEEDBACK_REPLY)
        fix = asyncio.run(
            FeedbackGenerator(provider).generate(
                DEVIATION, RATING, "src/login.py", include_code_example=False
            )
        )
        assert fix.code_example is None
        assert "code_example" not in provider.calls[0]["schema"]["properties"]
        assert "Do not include code examples" in provider.calls[0]["prompt"]

    def test_failure_falls_back_to_manual_steps(self, make_provider) -> None:
        provider = make_provider(
            lambda phase, prompt: LanguageModelError("down", phase=phase)
        )
        fix = asyncio.run(
            FeedbackGenerator(provider).generate(DEVIATION, RATING, "src/login.py")
        )
        assert fix.steps == FALLBACK_STEPS
        assert fix.description.startswith("Fix suggestion generation failed")
        assert fix.automated_fix is False

    def test_wrongly_typed_steps_fall_back(self, make_provider) -> None:
        provider = make_provider(
            lambda phase, prompt: {**FEEDBACK_REPLY, "steps": "Add the code"}
        )
        fix = asyncio.run(
            FeedbackGenerator(provider).generate(DEVIATION, RATING, "src/login.py")
        )
        assert fix.steps == FALLBACK_STEPS


def test_classify_category_uses_first_matching_area() -> None:
    assert classify_category(["Security", "performance"]) == IssueCategory.SECURITY
    assert classify_category(["user experience"]) == IssueCategory.LOGIC
    assert classify_category(["Test coverage"]) == IssueCategory.TESTING
    assert classify_category([]) == IssueCategory.LOGIC


def test_build_issue_message() -> None:
    assert build_issue_message(DEVIATION, RATING) == (
        "[CONTRADICTION] Passwords compared in plain text\n"
        "Expected: Hash comparison\n"
        "Actual: String equality\n"
        "Severity: High (credential exposure)"
    )


def test_find_line_number_searches_added_lines() -> None:
    file = ChangedFile(
        path="src/login.py",
        status=FileStatus.ADDED,
        changes=[
            Change(ChangeType.CONTEXT, 1, "Passwords compared in plain text"),
            Change(ChangeType.ADDITION, 7, "# Passwords compared in plain text"),
        ],
    )
    assert find_line_number(DEVIATION, [file]) == 7

    explicit = Deviation(
        type=DeviationType.MISSING,
        description="x",
        expected_behavior="",
        actual_behavior="",
        line_number=3,
    )
    assert find_line_number(explicit, [file]) == 3


class TestApprovalStatus:
    def test_no_issues(self) -> None:
        counts = {s.value: 0 for s in Severity}
        assert approval_status(counts, False) == ApprovalStatus.APPROVED

    def test_only_medium_and_low(self) -> None:
        counts = {"Critical": 0, "High": 0, "Medium": 1, "Low": 2}
        assert approval_status(counts, False) == ApprovalStatus.APPROVED_WITH_CONDITIONS

    def test_any_high(self) -> None:
        counts = {"Critical": 0, "High": 1, "Medium": 0, "Low": 0}
        assert approval_status(counts, False) == ApprovalStatus.CHANGES_REQUESTED

    def test_system_error_overrides_counts(self) -> None:
        counts = {s.value: 0 for s in Severity}
        assert approval_status(counts, True) == ApprovalStatus.CHANGES_REQUESTED


class TestSummarize:
    def test_empty(self) -> None:
        summary = summarize([])
        assert summary.passed is True
        assert summary.total_issues == 0
        assert summary.recommendation == APPROVED_RECOMMENDATION
        assert summary.approval_status == ApprovalStatus.APPROVED

    def test_counts_and_worst_recommendation(self) -> None:
        summary = summarize([_issue(Severity.LOW), _issue(Severity.MEDIUM)])
        assert summary.passed is True
        assert summary.issue_counts == {"Critical": 0, "High": 0, "Medium": 1, "Low": 1}
        assert "medium severity" in summary.recommendation
        assert summary.approval_status == ApprovalStatus.APPROVED_WITH_CONDITIONS

    def test_critical_fails(self) -> None:
        summary = summarize([_issue(Severity.CRITICAL)])
        assert summary.passed is False
        assert summary.recommendation.startswith("Changes requested - Critical")

    def test_system_error_fails_without_counted_issues(self) -> None:
        summary = summarize([], system_error_present=True)
        assert summary.passed is False
        assert summary.approval_status == ApprovalStatus.CHANGES_REQUESTED
        assert summary.recommendation == SYSTEM_ERROR_RECOMMENDATION

    def test_auto_approve_upgrades_conditions_only(self) -> None:
        summary = summarize([_issue(Severity.LOW)], auto_approve=True)
        assert summary.approval_status == ApprovalStatus.APPROVED
        assert summary.recommendation == (
            "Auto-approved - 1 non-blocking issue(s) noted"
        )

        blocked = summarize([_issue(Severity.HIGH)], auto_approve=True)
        assert blocked.approval_status == ApprovalStatus.CHANGES_REQUESTED

        broken = summarize(
            [_issue(Severity.LOW)], system_error_present=True, auto_approve=True
        )
        assert broken.approval_status == ApprovalStatus.CHANGES_REQUESTED
