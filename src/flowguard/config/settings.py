"""Configuration and settings persistence."""

import json
import logging
import os
from pathlib import Path
from typing import Any

from flowguard.config.paths import get_paths

logger = logging.getLogger(__name__)

DEFAULT_LLM_TIMEOUT_SECONDS = 120.0
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_GITLAB_BASE_URL = "https://gitlab.com"


def get_settings_path() -> Path:
    """Get the path to the settings file."""
    return get_paths().global_settings


def _positive_float(raw_value: Any, default: float) -> float:
    if raw_value in (None, ""):
        return default
    try:
        value = float(raw_value)
    except (TypeError, ValueError):
        return default
    if value <= 0:
        return default
    return value


class Settings:
    """Persistent settings for FlowGuard."""

    _defaults: dict[str, Any] = {}

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        """Load settings from disk."""
        path = get_settings_path()
        if path.exists():
            try:
                self._data = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError):
                self._data = {}
        else:
            self._data = {}

    def _save(self) -> None:
        """Save settings to disk."""
        path = get_settings_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
            logger.info("Saved settings to %s", path)
        except OSError as e:
            logger.error("Failed to save settings: %s", e)

    def get(self, key: str) -> Any:
        """Get a setting value, falling back to default."""
        return self._data.get(key, self._defaults.get(key))

    def set(self, key: str, value: Any) -> None:
        """Set a setting value and persist to disk."""
        self._data[key] = value
        self._save()

    def _section(self, name: str) -> dict[str, Any]:
        raw = self._data.get(name, {})
        if isinstance(raw, dict):
            return raw
        return {}

    # --- LLM Provider Settings ---

    @property
    def llm_provider(self) -> str:
        """Get the LLM provider name ('anthropic' or 'openai')."""
        llm = self._section("llm")
        return str(llm.get("provider", "anthropic"))

    @llm_provider.setter
    def llm_provider(self, value: str) -> None:
        llm = self._section("llm")
        llm["provider"] = value
        self.set("llm", llm)

    @property
    def llm_model(self) -> str:
        """Get the LLM model name.

        Returns the configured model, or a default based on the provider.
        """
        llm = self._section("llm")
        if "model" in llm:
            return str(llm["model"])
        if llm.get("provider", "anthropic") == "openai":
            return "gpt-5.2"
        return "claude-sonnet-4-5-20241022"

    @llm_model.setter
    def llm_model(self, value: str) -> None:
        llm = self._section("llm")
        llm["model"] = value
        self.set("llm", llm)

    @property
    def llm_timeout_seconds(self) -> float:
        """Timeout applied to every language-model call."""
        llm = self._section("llm")
        return _positive_float(llm.get("timeout_seconds"), DEFAULT_LLM_TIMEOUT_SECONDS)

    @llm_timeout_seconds.setter
    def llm_timeout_seconds(self, value: float) -> None:
        llm = self._section("llm")
        llm["timeout_seconds"] = float(value)
        self.set("llm", llm)

    @property
    def llm_budget_usd(self) -> float | None:
        """Get optional LLM budget cap in USD.

        Spend accrues from the cost each call records: reported by the
        Anthropic SDK, estimated from ``openai_prices_per_mtok`` for OpenAI.
        OpenAI calls without configured prices cost nothing against the cap.

        Returns:
            Configured budget cap, or None when no cap is configured.
        """
        llm = self._section("llm")
        raw_value = llm.get("budget_usd")
        if raw_value in (None, ""):
            return None
        try:
            value = float(raw_value)
        except (TypeError, ValueError):
            return None
        if value <= 0:
            return None
        return value

    @llm_budget_usd.setter
    def llm_budget_usd(self, value: float | None) -> None:
        llm = self._section("llm")
        if value is None or value <= 0:
            llm.pop("budget_usd", None)
        else:
            llm["budget_usd"] = float(value)
        self.set("llm", llm)

    @property
    def openai_api_key(self) -> str | None:
        """Get OpenAI API key from settings or environment.

        Priority: settings > OPENAI_API_KEY env var
        """
        key = self._section("llm").get("openai_api_key")
        if key:
            return str(key)
        return os.environ.get("OPENAI_API_KEY")

    @openai_api_key.setter
    def openai_api_key(self, value: str | None) -> None:
        llm = self._section("llm")
        if value:
            llm["openai_api_key"] = value
        else:
            llm.pop("openai_api_key", None)
        self.set("llm", llm)

    @property
    def openai_prices_per_mtok(self) -> tuple[float, float] | None:
        """(input, output) USD per million tokens used to price OpenAI calls."""
        llm = self._section("llm")
        input_price = _positive_float(llm.get("openai_input_usd_per_mtok"), 0.0)
        output_price = _positive_float(llm.get("openai_output_usd_per_mtok"), 0.0)
        if not input_price or not output_price:
            return None
        return input_price, output_price

    @openai_prices_per_mtok.setter
    def openai_prices_per_mtok(self, value: tuple[float, float] | None) -> None:
        llm = self._section("llm")
        if value is None:
            llm.pop("openai_input_usd_per_mtok", None)
            llm.pop("openai_output_usd_per_mtok", None)
        else:
            llm["openai_input_usd_per_mtok"] = float(value[0])
            llm["openai_output_usd_per_mtok"] = float(value[1])
        self.set("llm", llm)

    @property
    def anthropic_api_key(self) -> str | None:
        """Get Anthropic API key from settings or environment.

        Priority: settings > ANTHROPIC_API_KEY env var
        """
        key = self._section("llm").get("anthropic_api_key")
        if key:
            return str(key)
        return os.environ.get("ANTHROPIC_API_KEY")

    @anthropic_api_key.setter
    def anthropic_api_key(self, value: str | None) -> None:
        llm = self._section("llm")
        if value:
            llm["anthropic_api_key"] = value
        else:
            llm.pop("anthropic_api_key", None)
        self.set("llm", llm)

    @property
    def use_web_auth(self) -> bool:
        """Whether to use web auth for Anthropic (default True)."""
        return bool(self._section("llm").get("use_web_auth", True))

    @use_web_auth.setter
    def use_web_auth(self, value: bool) -> None:
        llm = self._section("llm")
        llm["use_web_auth"] = value
        self.set("llm", llm)

    # --- Remote diff sources ---

    @property
    def fetch_timeout_seconds(self) -> float:
        """Timeout for GitHub/GitLab REST requests."""
        remote = self._section("remote")
        return _positive_float(
            remote.get("timeout_seconds"), DEFAULT_FETCH_TIMEOUT_SECONDS
        )

    @fetch_timeout_seconds.setter
    def fetch_timeout_seconds(self, value: float) -> None:
        remote = self._section("remote")
        remote["timeout_seconds"] = float(value)
        self.set("remote", remote)

    @property
    def github_token(self) -> str | None:
        """GitHub API token. Priority: settings > GITHUB_TOKEN env var."""
        token = self._section("remote").get("github_token")
        if token:
            return str(token)
        return os.environ.get("GITHUB_TOKEN")

    @github_token.setter
    def github_token(self, value: str | None) -> None:
        remote = self._section("remote")
        if value:
            remote["github_token"] = value
        else:
            remote.pop("github_token", None)
        self.set("remote", remote)

    @property
    def gitlab_token(self) -> str | None:
        """GitLab API token. Priority: settings > GITLAB_TOKEN env var."""
        token = self._section("remote").get("gitlab_token")
        if token:
            return str(token)
        return os.environ.get("GITLAB_TOKEN")

    @gitlab_token.setter
    def gitlab_token(self, value: str | None) -> None:
        remote = self._section("remote")
        if value:
            remote["gitlab_token"] = value
        else:
            remote.pop("gitlab_token", None)
        self.set("remote", remote)

    @property
    def gitlab_base_url(self) -> str:
        """Base URL of the GitLab instance (default https://gitlab.com)."""
        raw = self._section("remote").get("gitlab_base_url")
        if raw:
            return str(raw).rstrip("/")
        return DEFAULT_GITLAB_BASE_URL

    @gitlab_base_url.setter
    def gitlab_base_url(self, value: str) -> None:
        remote = self._section("remote")
        remote["gitlab_base_url"] = value
        self.set("remote", remote)

    # --- Verification pipeline ---

    @property
    def max_concurrency(self) -> int:
        """Upper bound on in-flight language-model calls per verification."""
        raw = self._section("verify").get("max_concurrency", DEFAULT_MAX_CONCURRENCY)
        try:
            value = int(raw)
        except (TypeError, ValueError):
            return DEFAULT_MAX_CONCURRENCY
        return max(1, value)

    @max_concurrency.setter
    def max_concurrency(self, value: int) -> None:
        verify = self._section("verify")
        verify["max_concurrency"] = max(1, int(value))
        self.set("verify", verify)

    def rule_overrides(self) -> dict[str, bool]:
        """Return explicit per-rule enablement overrides."""
        raw = self._section("verify").get("rules", {})
        if not isinstance(raw, dict):
            return {}
        return {str(rule_id): bool(enabled) for rule_id, enabled in raw.items()}

    def rule_enabled(self, rule_id: str, default: bool) -> bool:
        """Whether a verification rule is enabled, honoring overrides."""
        return self.rule_overrides().get(rule_id, default)

    def set_rule_enabled(self, rule_id: str, value: bool) -> None:
        """Persist an enablement override for a verification rule."""
        verify = self._section("verify")
        rules = verify.get("rules", {})
        if not isinstance(rules, dict):
            rules = {}
        rules[rule_id] = bool(value)
        verify["rules"] = rules
        self.set("verify", verify)


# Global settings instance
settings = Settings()
