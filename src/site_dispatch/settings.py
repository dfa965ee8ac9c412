"""Process-wide configuration for the command-line scripts.

Library code takes an ``AppConfig`` argument instead of reading from here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from site_dispatch.config.manager import ConfigManager
from site_dispatch.config.schema import AppConfig

_manager: ConfigManager | None = None


def load_settings(
    defaults_path: Path | None = None,
    user_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """Build the shared manager from the YAML files plus ``--set`` overrides."""
    global _manager
    manager = ConfigManager(defaults_path=defaults_path, user_path=user_path)
    config = manager.load(overrides)
    _manager = manager
    return config


def get_config_manager() -> ConfigManager:
    if _manager is None:
        raise RuntimeError("Settings not loaded. Call load_settings() first.")
    return _manager
