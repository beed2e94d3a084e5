from __future__ import annotations

import pytest

from flowguard.llm.providers.base import APIErrorType, classify_api_error


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Error 429: Too Many Requests", APIErrorType.RATE_LIMITED),
        ("Request was throttled", APIErrorType.RATE_LIMITED),
        ("503 Service Unavailable", APIErrorType.API_UNAVAILABLE),
        ("The model is overloaded, try again later", APIErrorType.API_UNAVAILABLE),
        ("Monthly spending limit reached", APIErrorType.BUDGET_EXCEEDED),
        ("insufficient credit balance", APIErrorType.BUDGET_EXCEEDED),
        ("invalid request body", APIErrorType.UNKNOWN),
    ],
)
def test_classify_api_error(message: str, expected: APIErrorType) -> None:
    assert classify_api_error(RuntimeError(message)) == expected


def test_budget_wins_over_rate_limit() -> None:
    error = RuntimeError("429: usage limit exceeded for this billing period")

    assert classify_api_error(error) == APIErrorType.BUDGET_EXCEEDED
