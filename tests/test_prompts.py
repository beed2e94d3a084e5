"""Tests for LLM prompts."""

from flowguard.llm.prompts import (
    build_diff_summary,
    build_feedback_prompt,
    build_match_prompt,
    build_severity_prompt,
)
from flowguard.llm.prompts.verify import MAX_SUMMARY_CHANGES, MATCH_SPEC_CHARS
from flowguard.verify.models import (
    Change,
    ChangedFile,
    ChangeType,
    Deviation,
    DeviationType,
    FileStatus,
    Severity,
    SeverityRating,
)

FILE = ChangedFile(
    path="src/login.py",
    status=FileStatus.MODIFIED,
    changes=[
        Change(ChangeType.CONTEXT, 1, "def login():"),
        Change(ChangeType.DELETION, 2, "    return None"),
        Change(ChangeType.ADDITION, 2, "    return user"),
    ],
)
DEVIATION = Deviation(
    type=DeviationType.MISSING,
    description="No rate limiting",
    expected_behavior="Failed logins are rate limited",
    actual_behavior="Unlimited attempts",
)


def test_diff_summary_marks_change_types() -> None:
    assert build_diff_summary(FILE) == (
        "  def login():\n-     return None\n+     return user"
    )


def test_diff_summary_is_bounded() -> None:
    big = ChangedFile(
        path="big.py",
        status=FileStatus.ADDED,
        changes=[
            Change(ChangeType.ADDITION, n, "x" * 300)
            for n in range(1, MAX_SUMMARY_CHANGES + 11)
        ],
    )

    summary = build_diff_summary(big).splitlines()

    assert len(summary) == MAX_SUMMARY_CHANGES + 1
    assert summary[-1] == "... and 10 more changes"
    assert summary[0].endswith("...")


def test_match_prompt_numbers_requirements() -> None:
    prompt = build_match_prompt(FILE, ["Users log in", "Rate limit"], "spec")

    assert "Path: src/login.py" in prompt
    assert "- req-1: Users log in\n- req-2: Rate limit" in prompt


def test_match_prompt_without_requirements_truncates_spec() -> None:
    prompt = build_match_prompt(FILE, [], "s" * (MATCH_SPEC_CHARS + 10))

    assert "No structured requirements found" in prompt
    assert "... (truncated)" in prompt


def test_severity_prompt_includes_context() -> None:
    prompt = build_severity_prompt(DEVIATION, "src/login.py", "modified", "spec text")

    assert "**Type**: missing" in prompt
    assert "**Line**: N/A" in prompt
    assert "**Change Type**: modified" in prompt
    assert "spec text" in prompt


def test_feedback_prompt_code_example_toggle() -> None:
    rating = SeverityRating(Severity.HIGH, "bad", 0.9, ["security"])

    with_code = build_feedback_prompt(DEVIATION, rating, "src/login.py", 7, True)
    without_code = build_feedback_prompt(DEVIATION, rating, "src/login.py", 7, False)

    assert "Include a code example" in with_code
    assert "Do not include code examples" in without_code
    assert "**Impact Areas**: security" in with_code
    assert "**Line**: 7" in with_code
