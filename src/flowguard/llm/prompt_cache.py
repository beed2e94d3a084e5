"""Prompt caching helpers."""

from __future__ import annotations

import hashlib

PROMPT_CACHE_RETENTION = "24h"
PROMPT_CACHE_KEY_VERSION = "v1"


def build_prompt_cache_key(*, provider: str, model: str, phase: str) -> str:
    """Build a stable prompt cache key for provider requests.

    Matching, rating and feedback prompts each share a long fixed system
    prefix, so keying on provider/model/phase lets repeated calls within a
    verification reuse the cached prefix.
    """
    raw = f"flowguard:{PROMPT_CACHE_KEY_VERSION}:{provider}:{model}:{phase}"
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:24]
    return f"flowguard:{phase}:{digest}"
