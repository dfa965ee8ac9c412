"""Layered site configuration: shipped defaults, a site file, command-line overrides."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import yaml

from site_dispatch.config.schema import AppConfig

logger = logging.getLogger(__name__)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Nested dicts merge key by key; anything else in ``override`` replaces."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def read_yaml(path: Path) -> dict[str, Any]:
    """Mapping stored in ``path``; empty for a missing file or a non-mapping document."""
    if not path.is_file():
        return {}
    with open(path) as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


class ConfigManager:
    """Owns the validated ``AppConfig`` for one process.

    Later layers win: ``defaults_path``, then ``user_path`` (optional), then
    the overrides handed to ``load``.
    """

    def __init__(self, defaults_path: Path | None = None, user_path: Path | None = None) -> None:
        self._defaults_path = defaults_path or Path("config.defaults.yaml")
        self._user_path = user_path or Path("config.yaml")
        self._config: AppConfig | None = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    def load(self, overrides: dict[str, Any] | None = None) -> AppConfig:
        layers = [read_yaml(self._defaults_path), read_yaml(self._user_path), overrides or {}]
        merged: dict[str, Any] = {}
        for layer in layers:
            merged = deep_merge(merged, layer)

        config = AppConfig.model_validate(merged)
        self._config = config
        logger.info(
            "Configuration loaded from %s (strategy=%s, inverters=%d)",
            self._defaults_path, config.strategy.value, len(config.pv.inverters),
        )
        return config

    def to_json(self) -> str:
        return self.config.model_dump_json(indent=2)

    def save_user_config(self, updates: dict[str, Any]) -> AppConfig:
        """Persist ``updates`` into the site file, then reload every layer."""
        content = deep_merge(read_yaml(self._user_path), updates)
        with open(self._user_path, "w") as f:
            yaml.safe_dump(content, f, default_flow_style=False, sort_keys=False)
        return self.load()

    async def save_version(self, db: aiosqlite.Connection, run_id: int | None = None) -> int:
        """Snapshot the active config into ``config_versions``; returns the row id."""
        created_at = datetime.now(timezone.utc).isoformat()
        cursor = await db.execute(
            "INSERT INTO config_versions (config_json, run_id, created_at) VALUES (?, ?, ?)",
            (self.to_json(), run_id, created_at),
        )
        version_id = cursor.lastrowid
        await cursor.close()
        await db.commit()
        logger.info("Config version %d saved for run %s", version_id, run_id)
        return version_id  # type: ignore[return-value]

    @staticmethod
    def parse_override(expr: str) -> dict[str, Any]:
        """``battery.capacity_kwh=100`` -> ``{"battery": {"capacity_kwh": 100}}``.

        The value goes through YAML, so numbers and booleans keep their type.
        """
        key, sep, raw_value = expr.partition("=")
        path = [part for part in key.strip().split(".") if part]
        if not sep or not path:
            raise ValueError(f"Override must look like section.key=value, got {expr!r}")
        value: Any = yaml.safe_load(raw_value)
        for part in reversed(path):
            value = {part: value}
        return value

    @classmethod
    def merge_overrides(cls, exprs: list[str]) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for expr in exprs:
            overrides = deep_merge(overrides, cls.parse_override(expr))
        return overrides
