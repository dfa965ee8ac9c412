"""Fixtures shared by the dispatch, simulation and persistence tests."""

from __future__ import annotations

from pathlib import Path
from typing import AsyncGenerator

import aiosqlite
import pytest
import pytest_asyncio

from site_dispatch.config.manager import ConfigManager
from site_dispatch.config.schema import AppConfig
from site_dispatch.db.engine import open_db
from site_dispatch.db.repository import Repository
from site_dispatch.dispatch.load_state import LoadStateStore


@pytest.fixture
def config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def store(config: AppConfig) -> LoadStateStore:
    """Empty load-on history sized for the default config."""
    return LoadStateStore.for_config(config)


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    """Manager reading throwaway defaults; the site file starts absent."""
    defaults = tmp_path / "config.defaults.yaml"
    defaults.write_text("db:\n  path: ':memory:'\n")
    manager = ConfigManager(defaults_path=defaults, user_path=tmp_path / "config.yaml")
    manager.load()
    return manager


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    async with open_db(tmp_path / "dispatch.db") as conn:
        yield conn


@pytest_asyncio.fixture
async def repo(db: aiosqlite.Connection) -> Repository:
    return Repository(db)
