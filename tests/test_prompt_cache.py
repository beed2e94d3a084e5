"""Tests for prompt caching helpers."""

from flowguard.llm.prompt_cache import build_prompt_cache_key


def test_prompt_cache_key_is_stable_for_same_context() -> None:
    key1 = build_prompt_cache_key(provider="openai", model="gpt-5.2", phase="match")
    key2 = build_prompt_cache_key(provider="openai", model="gpt-5.2", phase="match")

    assert key1 == key2
    assert key1.startswith("flowguard:match:")


def test_prompt_cache_key_changes_with_phase() -> None:
    key1 = build_prompt_cache_key(provider="openai", model="gpt-5.2", phase="match")
    key2 = build_prompt_cache_key(provider="openai", model="gpt-5.2", phase="rate")

    assert key1 != key2


def test_prompt_cache_key_changes_with_model() -> None:
    key1 = build_prompt_cache_key(provider="openai", model="gpt-5.2", phase="match")
    key2 = build_prompt_cache_key(provider="openai", model="gpt-5-mini", phase="match")

    assert key1 != key2
