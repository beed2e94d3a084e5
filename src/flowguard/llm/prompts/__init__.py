"""Centralized prompt definitions for the verification pipeline."""
from __future__ import annotations

from flowguard.llm.prompts.verify import (
    FEEDBACK_SYSTEM_PROMPT,
    MATCH_RESPONSE_SCHEMA,
    MATCH_SYSTEM_PROMPT,
    SEVERITY_RESPONSE_SCHEMA,
    SEVERITY_SYSTEM_PROMPT,
    build_diff_summary,
    build_feedback_prompt,
    build_match_prompt,
    build_severity_prompt,
    feedback_response_schema,
)

__all__ = [
    "FEEDBACK_SYSTEM_PROMPT",
    "MATCH_RESPONSE_SCHEMA",
    "MATCH_SYSTEM_PROMPT",
    "SEVERITY_RESPONSE_SCHEMA",
    "SEVERITY_SYSTEM_PROMPT",
    "build_diff_summary",
    "build_feedback_prompt",
    "build_match_prompt",
    "build_severity_prompt",
    "feedback_response_schema",
]
