"""Remediation guidance, issue materialization and run summaries."""

import asyncio
import logging
from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager, nullcontext
from typing import Any

from flowguard.config.settings import DEFAULT_LLM_TIMEOUT_SECONDS
from flowguard.llm.prompts.verify import (
    FEEDBACK_SYSTEM_PROMPT,
    build_feedback_prompt,
    feedback_response_schema,
)
from flowguard.llm.providers.base import LLMProvider
from flowguard.verify.errors import LanguageModelError
from flowguard.verify.models import (
    ApprovalStatus,
    ChangedFile,
    ChangeType,
    Deviation,
    FixSuggestion,
    IssueCategory,
    Severity,
    SeverityRating,
    VerificationIssue,
    VerificationSummary,
)

logger = logging.getLogger(__name__)

FALLBACK_STEPS = (
    "Review the deviation manually",
    "Consult the specification",
    "Implement the expected behavior",
)

RECOMMENDATIONS = {
    Severity.CRITICAL: (
        "Changes requested - Critical issues must be resolved before approval"
    ),
    Severity.HIGH: "Changes requested - High severity issues must be addressed",
    Severity.MEDIUM: (
        "Approved with conditions - Address medium severity issues when convenient"
    ),
    Severity.LOW: "Approved with conditions - Minor issues can be addressed later",
}
APPROVED_RECOMMENDATION = "Approved - No issues found"
SYSTEM_ERROR_RECOMMENDATION = (
    "Changes requested - Verification could not be completed; "
    "resolve system issues and re-run"
)

# Checked in order; the first matching impact area decides the category
_CATEGORY_KEYWORDS: tuple[tuple[tuple[str, ...], IssueCategory], ...] = (
    (("security",), IssueCategory.SECURITY),
    (("performance",), IssueCategory.PERFORMANCE),
    (("logic", "functionality"), IssueCategory.LOGIC),
    (("style", "format"), IssueCategory.STYLE),
    (("document",), IssueCategory.DOCUMENTATION),
    (("test",), IssueCategory.TESTING),
    (("architecture", "design"), IssueCategory.ARCHITECTURE),
)


def classify_category(impact_areas: Iterable[str]) -> IssueCategory:
    """Derive an issue category from rating impact areas (default logic)."""
    areas = [area.lower() for area in impact_areas]
    for keywords, category in _CATEGORY_KEYWORDS:
        if any(keyword in area for area in areas for keyword in keywords):
            return category
    return IssueCategory.LOGIC


def build_issue_message(deviation: Deviation, rating: SeverityRating) -> str:
    """Format the human-readable message of a rated deviation."""
    parts = [f"[{deviation.type.value.upper()}] {deviation.description}"]
    if deviation.expected_behavior:
        parts.append(f"Expected: {deviation.expected_behavior}")
    if deviation.actual_behavior:
        parts.append(f"Actual: {deviation.actual_behavior}")
    parts.append(f"Severity: {rating.severity.value} ({rating.reasoning})")
    return "\n".join(parts)


def find_line_number(deviation: Deviation, files: Iterable[ChangedFile]) -> int | None:
    """Locate a deviation in the changes when the model gave no line number."""
    if deviation.line_number is not None:
        return deviation.line_number

    needle = deviation.description[:50]
    for file in files:
        if deviation.file_path and file.path != deviation.file_path:
            continue
        for change in file.changes:
            if change.type != ChangeType.CONTEXT and needle and needle in change.content:
                return change.line_number
    return None


def count_issues(issues: Iterable[VerificationIssue]) -> dict[str, int]:
    """Tally issues per severity label."""
    counts = {severity.value: 0 for severity in Severity}
    for issue in issues:
        counts[issue.severity.value] += 1
    return counts


def approval_status(
    issue_counts: dict[str, int], system_error_present: bool
) -> ApprovalStatus:
    """Approval outcome as a pure function of severity counts and system errors."""
    if system_error_present:
        return ApprovalStatus.CHANGES_REQUESTED
    if issue_counts.get(Severity.CRITICAL.value, 0) or issue_counts.get(
        Severity.HIGH.value, 0
    ):
        return ApprovalStatus.CHANGES_REQUESTED
    if issue_counts.get(Severity.MEDIUM.value, 0) or issue_counts.get(
        Severity.LOW.value, 0
    ):
        return ApprovalStatus.APPROVED_WITH_CONDITIONS
    return ApprovalStatus.APPROVED


def summarize(
    issues: list[VerificationIssue],
    system_error_present: bool = False,
    auto_approve: bool = False,
) -> VerificationSummary:
    """Compute the summary of a final (filtered) issue list.

    ``auto_approve`` upgrades approved-with-conditions to approved; it never
    overrides changes requested.
    """
    counts = count_issues(issues)
    status = approval_status(counts, system_error_present)
    passed = (
        not system_error_present
        and counts[Severity.CRITICAL.value] == 0
        and counts[Severity.HIGH.value] == 0
    )

    if system_error_present:
        recommendation = SYSTEM_ERROR_RECOMMENDATION
    else:
        worst = next((s for s in Severity if counts[s.value] > 0), None)
        recommendation = RECOMMENDATIONS[worst] if worst else APPROVED_RECOMMENDATION

    if auto_approve and status == ApprovalStatus.APPROVED_WITH_CONDITIONS:
        status = ApprovalStatus.APPROVED
        recommendation = f"Auto-approved - {len(issues)} non-blocking issue(s) noted"

    return VerificationSummary(
        passed=passed,
        total_issues=len(issues),
        issue_counts=counts,
        recommendation=recommendation,
        approval_status=status,
    )


class FeedbackGenerator:
    """Generates fix suggestions for rated deviations.

    Suggestions from the model are advisory only: ``automated_fix`` is always
    False here. A failed request yields generic manual steps.
    """

    def __init__(
        self, provider: LLMProvider, timeout: float = DEFAULT_LLM_TIMEOUT_SECONDS
    ) -> None:
        self.provider = provider
        self.timeout = timeout

    async def generate(
        self,
        deviation: Deviation,
        rating: SeverityRating,
        file_path: str,
        line: int | None = None,
        include_code_example: bool = True,
        semaphore: asyncio.Semaphore | None = None,
        spec_id: str | None = None,
    ) -> FixSuggestion:
        """Generate a fix suggestion for one rated deviation."""
        messages = [
            {
                "role": "user",
                "content": build_feedback_prompt(
                    deviation, rating, file_path, line, include_code_example
                ),
            }
        ]
        limiter: AbstractAsyncContextManager[Any] = semaphore or nullcontext()
        try:
            async with limiter:
                data = await self.provider.generate_structured(
                    messages,
                    feedback_response_schema(include_code_example),
                    system=FEEDBACK_SYSTEM_PROMPT,
                    timeout=self.timeout,
                    phase="feedback",
                    spec_id=spec_id,
                )
        except LanguageModelError as e:
            logger.warning("Fix suggestion failed for %s: %s", file_path, e)
            return FixSuggestion(
                description=f"Fix suggestion generation failed: {e}",
                steps=FALLBACK_STEPS,
            )

        steps = data.get("steps") or []
        code_example = data.get("code_example") if include_code_example else None
        return FixSuggestion(
            description=str(data.get("description", "")),
            steps=tuple(str(step) for step in steps if step),
            code_example=str(code_example) if code_example else None,
            automated_fix=False,
        )
