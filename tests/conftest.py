from __future__ import annotations

import copy
import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from flowguard.config.settings import settings
from flowguard.llm.providers.base import Completion, LLMProvider
from flowguard.verify.storage import ArtifactStorage, SpecDocument

# Responses are dicts (sent as JSON), raw strings, or exceptions to raise
Handler = Callable[[str, str], Any]

AUTH_SPEC = """# Login

## Functional Requirements
- Users can log in with email and password
- Failed logins are rate limited

## Technical Plan
- Sessions are stored in Redis
"""

NEW_FILE_DIFF = """diff --git a/src/login.py b/src/login.py
new file mode 100644
index 0000000..1111111
--- /dev/null
+++ b/src/login.py
@@ -0,0 +1,5 @@
+def login(email, password):
+    user = find_user(email)
+    if user is None:
+        return None
+    return user.check(password)
"""


@pytest.fixture(autouse=True)
def isolate_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Prevent tests from persisting settings to disk."""
    original_data = copy.deepcopy(settings._data)

    def _noop_save() -> None:
        return None

    monkeypatch.setattr(settings, "_save", _noop_save)
    try:
        yield
    finally:
        settings._data = original_data


class ScriptedProvider(LLMProvider):
    """Provider whose replies come from a handler keyed on phase and prompt."""

    provider_name = "fake"
    native_structured_output = True

    def __init__(self, handler: Handler) -> None:
        super().__init__(model="fake-model")
        self.handler = handler
        self.calls: list[dict[str, Any]] = []

    async def _complete(
        self,
        messages: list[dict[str, str]],
        system: str,
        max_tokens: int,
        phase: str,
        schema: dict[str, Any] | None = None,
    ) -> Completion:
        prompt = messages[-1]["content"]
        self.calls.append({"phase": phase, "prompt": prompt, "schema": schema})
        reply = self.handler(phase, prompt)
        if isinstance(reply, BaseException):
            raise reply
        text = reply if isinstance(reply, str) else json.dumps(reply)
        return Completion(text=text, cost_usd=0.001, tokens_in=10, tokens_out=5)

    def phases(self) -> list[str]:
        return [call["phase"] for call in self.calls]


def match_reply(*deviations: dict[str, Any]) -> dict[str, Any]:
    return {
        "matched_requirements": [],
        "deviations": list(deviations),
        "confidence": 0.8,
    }


def rate_reply(severity: str, *impact_areas: str) -> dict[str, Any]:
    return {
        "severity": severity,
        "reasoning": f"rated {severity}",
        "confidence": 0.9,
        "impact_areas": list(impact_areas) or ["functionality"],
    }


FEEDBACK_REPLY = {
    "description": "Implement the missing behavior",
    "steps": ["Add the code", "Add a test"],
    "code_example": "pass",
}


@pytest.fixture
def make_provider() -> Callable[[Handler], ScriptedProvider]:
    return ScriptedProvider


@pytest.fixture
def storage(tmp_path: Path) -> ArtifactStorage:
    return ArtifactStorage(tmp_path)


@pytest.fixture
def add_spec(storage: ArtifactStorage) -> Callable[..., SpecDocument]:
    def _add(
        spec_id: str = "spec-auth", epic_id: str = "epic-1", content: str = AUTH_SPEC
    ) -> SpecDocument:
        spec = SpecDocument(id=spec_id, epic_id=epic_id, title=spec_id, content=content)
        storage.save_spec(spec)
        return spec

    return _add
