"""Centralized path management for FlowGuard.

Follows XDG Base Directory Specification for global files:
- Config: $XDG_CONFIG_HOME/flowguard (default: ~/.config/flowguard)

Workspace artifacts (specs, verification records, metrics) live under
``<workspace>/.flowguard/``.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _xdg_config_home() -> Path:
    """Get XDG_CONFIG_HOME, defaulting to ~/.config."""
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


@dataclass
class FlowguardPaths:
    """Centralized path management following XDG spec."""

    workspace: Path  # Current working directory

    # XDG directories (computed once at init)
    _config_home: Path = field(default_factory=_xdg_config_home)

    # === WORKSPACE PATHS (project-local) ===

    @property
    def workspace_config(self) -> Path:
        """Workspace .flowguard/ directory."""
        return self.workspace / ".flowguard"

    @property
    def specs_dir(self) -> Path:
        """Spec documents: .flowguard/specs/"""
        return self.workspace_config / "specs"

    @property
    def verifications_dir(self) -> Path:
        """Persisted verification records: .flowguard/verifications/"""
        return self.workspace_config / "verifications"

    @property
    def metrics(self) -> Path:
        """LLM call metrics: .flowguard/metrics.jsonl"""
        return self.workspace_config / "metrics.jsonl"

    @property
    def debug_log(self) -> Path:
        """Debug log: .flowguard/debug.log"""
        return self.workspace_config / "debug.log"

    def spec_file(self, spec_id: str) -> Path:
        """Get the markdown file for a spec id."""
        return self.specs_dir / f"{spec_id}.md"

    def verification_file(self, verification_id: str) -> Path:
        """Get the JSON record file for a verification id."""
        return self.verifications_dir / f"{verification_id}.json"

    # === GLOBAL PATHS (XDG compliant) ===

    @property
    def global_config_dir(self) -> Path:
        """Global config: ~/.config/flowguard/"""
        return self._config_home / "flowguard"

    @property
    def global_settings(self) -> Path:
        """Global settings file: ~/.config/flowguard/settings.json"""
        return self.global_config_dir / "settings.json"


# Singleton instance
_paths: FlowguardPaths | None = None


def get_paths(workspace: Path | None = None) -> FlowguardPaths:
    """Get the paths singleton.

    On first call, optionally set the workspace directory.
    Subsequent calls return the same instance.

    Args:
        workspace: The workspace directory. If not provided on first call,
                   defaults to current working directory.

    Returns:
        The FlowguardPaths singleton instance.
    """
    global _paths
    if _paths is None:
        _paths = FlowguardPaths(workspace=workspace or Path.cwd())
    return _paths


def reset_paths() -> None:
    """Reset paths singleton so the next access resolves from the cwd."""
    global _paths
    _paths = None
