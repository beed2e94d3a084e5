"""Configuration management for FlowGuard."""
from __future__ import annotations

from flowguard.config.paths import FlowguardPaths, get_paths, reset_paths
from flowguard.config.settings import Settings, get_settings_path, settings

__all__ = [
    "FlowguardPaths",
    "Settings",
    "get_paths",
    "get_settings_path",
    "reset_paths",
    "settings",
]
