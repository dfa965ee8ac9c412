"""structlog configuration for simulation runs and the CLI.

stdlib loggers (``logging.getLogger(__name__)`` in every module) and
structlog loggers share one processor chain, so the slot context bound by
the control cycle appears on every record whichever API emitted it.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import Processor

from site_dispatch.config.schema import LoggingConfig

_QUIET_LOGGERS = ("aiosqlite", "asyncio")


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(fmt: str) -> Processor:
    if fmt == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    return structlog.processors.JSONRenderer(sort_keys=True)


def _handlers(formatter: logging.Formatter, log_file: str) -> list[logging.Handler]:
    # stdout carries the simulation summary, so records go to stderr.
    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(formatter)
    handlers: list[logging.Handler] = [stream]
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    return handlers


def setup_logging(level: str = "INFO", fmt: str = "json", log_file: str = "") -> None:
    """Route all logging through structlog.

    Args:
        level: Root log level name. Unknown names fall back to INFO.
        fmt: "json" (one object per line) or "console" (human readable).
        log_file: Also write records to this file when non-empty.
    """
    pre_chain = _pre_chain()
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, _renderer(fmt)],
    )

    root = logging.getLogger()
    root.handlers.clear()
    for handler in _handlers(formatter, log_file):
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_config(config: LoggingConfig) -> None:
    setup_logging(level=config.level, fmt=config.format, log_file=config.file)
