"""Tests for structured logging setup and context tagging."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from site_dispatch.config.schema import LoggingConfig
from site_dispatch.logging.context import bind_context, clear_context, run_context, slot_context
from site_dispatch.logging.structured import setup_logging, setup_logging_from_config


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    clear_context()


class TestContext:
    def test_bind_and_clear(self) -> None:
        clear_context()
        bind_context(run_id=3)
        assert structlog.contextvars.get_contextvars() == {"run_id": 3}
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_slot_context_restores(self) -> None:
        clear_context()
        bind_context(slot_index=1)
        with slot_context(2, "peak_shaving"):
            assert structlog.contextvars.get_contextvars() == {"slot_index": 2, "strategy": "peak_shaving"}
        assert structlog.contextvars.get_contextvars() == {"slot_index": 1}
        clear_context()

    def test_run_context_nests_slot_context(self) -> None:
        clear_context()
        with run_context(run_strategy="cost_optimisation"):
            with slot_context(0, "cost_optimisation"):
                fields = structlog.contextvars.get_contextvars()
                assert fields["run_strategy"] == "cost_optimisation"
                assert fields["slot_index"] == 0
        assert structlog.contextvars.get_contextvars() == {}


class TestSetup:
    def test_json_file_output_carries_context(self, tmp_path: Path, restore_root_logger: None) -> None:
        log_file = tmp_path / "dispatch.log"
        setup_logging(level="DEBUG", fmt="json", log_file=str(log_file))
        with slot_context(5, "cost_optimisation"):
            logging.getLogger("site_dispatch.test").info("Decided %d slots", 3)
        for handler in logging.getLogger().handlers:
            handler.flush()

        line = log_file.read_text().strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "Decided 3 slots"
        assert record["slot_index"] == 5
        assert record["strategy"] == "cost_optimisation"
        assert record["level"] == "info"

    def test_level_from_config(self, restore_root_logger: None) -> None:
        setup_logging_from_config(LoggingConfig(level="WARNING", format="console"))
        assert logging.getLogger().level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, restore_root_logger: None) -> None:
        setup_logging(level="chatty")
        assert logging.getLogger().level == logging.INFO

    def test_quiet_loggers_raised(self, restore_root_logger: None) -> None:
        setup_logging(level="DEBUG")
        assert logging.getLogger("aiosqlite").level == logging.WARNING
