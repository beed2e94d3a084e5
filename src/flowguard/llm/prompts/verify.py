"""Prompts and response schemas for spec matching, severity rating and feedback."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from flowguard.verify.models import ChangedFile, Deviation, SeverityRating

MAX_SUMMARY_CHANGES = 50
MAX_SUMMARY_LINE_CHARS = 100
MATCH_SPEC_CHARS = 3000
RATING_SPEC_CHARS = 2000

MATCH_SYSTEM_PROMPT = (
    "You are a code reviewer analyzing changes against specifications. Your task "
    "is to match code changes to requirements and identify any deviations."
)

SEVERITY_SYSTEM_PROMPT = """\
You are a code review expert who classifies the severity of deviations from \
specifications.

Use the following severity criteria:

**Critical**: Security vulnerabilities, data loss risks, breaking changes to \
public APIs, critical functionality completely broken, production outage risks

**High**: Functional requirements not met, performance degradation, incorrect \
business logic, data integrity issues

**Medium**: Non-functional requirements partially met, code quality issues, \
missing edge cases, minor performance concerns

**Low**: Style inconsistencies, documentation gaps, minor optimizations, \
cosmetic issues

Provide your classification with detailed reasoning and confidence score."""

FEEDBACK_SYSTEM_PROMPT = (
    "You are a code reviewer generating fix suggestions for identified issues. "
    "Provide clear, actionable guidance with code examples when applicable."
)

MATCH_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "matched_requirements": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "requirement_id": {"type": "string"},
                    "requirement_text": {"type": "string"},
                    "relevance": {"type": "number", "minimum": 0, "maximum": 1},
                    "reasoning": {"type": "string"},
                },
                "required": [
                    "requirement_id",
                    "requirement_text",
                    "relevance",
                    "reasoning",
                ],
            },
        },
        "deviations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "enum": ["missing", "contradiction", "incomplete"],
                    },
                    "description": {"type": "string"},
                    "expected_behavior": {"type": "string"},
                    "actual_behavior": {"type": "string"},
                    "requirement_id": {"type": "string"},
                    "file_path": {"type": "string"},
                    "line_number": {"type": "integer"},
                },
                "required": [
                    "type",
                    "description",
                    "expected_behavior",
                    "actual_behavior",
                ],
            },
        },
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
    },
    "required": ["matched_requirements", "deviations", "confidence"],
}

SEVERITY_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "severity": {
            "type": "string",
            "enum": ["Critical", "High", "Medium", "Low"],
        },
        "reasoning": {"type": "string"},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "impact_areas": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["severity", "reasoning", "confidence", "impact_areas"],
}


def feedback_response_schema(include_code_example: bool) -> dict[str, Any]:
    """Response schema for fix suggestions, optionally requesting code."""
    properties: dict[str, Any] = {
        "description": {"type": "string"},
        "steps": {"type": "array", "items": {"type": "string"}},
    }
    if include_code_example:
        properties["code_example"] = {"type": "string"}
    return {
        "type": "object",
        "properties": properties,
        "required": ["description", "steps"],
    }


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n... (truncated)"


def build_diff_summary(file: "ChangedFile") -> str:
    """Render a bounded +/- summary of one file's changes."""
    prefixes = {"addition": "+", "deletion": "-"}
    lines: list[str] = []
    for change in file.changes[:MAX_SUMMARY_CHANGES]:
        prefix = prefixes.get(change.type.value, " ")
        content = change.content
        if len(content) > MAX_SUMMARY_LINE_CHARS:
            content = content[:MAX_SUMMARY_LINE_CHARS] + "..."
        lines.append(f"{prefix} {content}")

    if len(file.changes) > MAX_SUMMARY_CHANGES:
        lines.append(
            f"... and {len(file.changes) - MAX_SUMMARY_CHANGES} more changes"
        )
    return "\n".join(lines)


def build_match_prompt(
    file: "ChangedFile", requirements: list[str], spec_content: str
) -> str:
    """Build the matching prompt for one changed file.

    Args:
        file: The changed file to analyze
        requirements: Requirements extracted from the spec, numbered req-1..n
        spec_content: Full spec text (truncated for the prompt)

    Returns:
        Formatted user prompt string
    """
    if requirements:
        requirement_list = "\n".join(
            f"- req-{i}: {req}" for i, req in enumerate(requirements, start=1)
        )
    else:
        requirement_list = "(No structured requirements found; use the full spec.)"

    return f"""Please analyze the following code changes against the specification \
requirements.

## Changed File
Path: {file.path}
Status: {file.status.value}

## Changes
{build_diff_summary(file) or "(no line changes)"}

## Spec Requirements
{requirement_list}

## Full Spec Context
{_truncate(spec_content, MATCH_SPEC_CHARS)}

## Instructions
1. Identify which requirements are matched by these changes
2. Identify any deviations from the requirements that concern this file
3. Provide a confidence score (0-1) for your analysis
4. Be specific about what was expected vs what was implemented

For each deviation, specify:
- type: 'missing' (required but not implemented), 'contradiction' (implemented \
against the requirement), or 'incomplete' (partially implemented)
- description: Clear description of the deviation
- expected_behavior: What the spec requires
- actual_behavior: What was actually implemented
- requirement_id: The req-<n> identifier the deviation relates to, when known

If the changes satisfy the spec, return empty arrays."""


def build_severity_prompt(
    deviation: "Deviation",
    file_path: str,
    change_type: str,
    spec_content: str,
) -> str:
    """Build the severity classification prompt for one deviation."""
    return f"""Please classify the severity of the following deviation:

## Deviation Details
**Type**: {deviation.type.value}
**Description**: {deviation.description}
**Expected Behavior**: {deviation.expected_behavior}
**Actual Behavior**: {deviation.actual_behavior}
**File**: {deviation.file_path or file_path}
**Line**: {deviation.line_number or "N/A"}

## Context
**File Path**: {file_path}
**Change Type**: {change_type}

## Spec Context
{_truncate(spec_content, RATING_SPEC_CHARS)}

## Instructions
1. Classify the severity as Critical, High, Medium, or Low
2. Provide detailed reasoning for your classification
3. Assign a confidence score (0-1)
4. List the impact areas (e.g., security, performance, functionality, \
user experience, maintainability)"""


def build_feedback_prompt(
    deviation: "Deviation",
    rating: "SeverityRating",
    file_path: str,
    line: int | None,
    include_code_example: bool,
) -> str:
    """Build the fix-suggestion prompt for one rated deviation."""
    if include_code_example:
        code_instruction = "2. Include a code example showing the fix (if applicable)"
    else:
        code_instruction = "2. Do not include code examples"

    return f"""Generate a fix suggestion for the following issue:

## Issue Details
**Type**: {deviation.type.value}
**Description**: {deviation.description}
**Expected**: {deviation.expected_behavior}
**Actual**: {deviation.actual_behavior}
**Severity**: {rating.severity.value}
**Impact Areas**: {", ".join(rating.impact_areas) or "unspecified"}

## Location
**File**: {file_path}
**Line**: {line or "N/A"}

## Instructions
1. Provide a clear description of how to fix the issue
{code_instruction}
3. List the steps needed to implement the fix"""
