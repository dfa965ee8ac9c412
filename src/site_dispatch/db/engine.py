"""SQLite connections for persisted simulation runs."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from site_dispatch.db.migrations import run_migrations

logger = logging.getLogger(__name__)

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA foreign_keys=ON",
    "PRAGMA busy_timeout=5000",
)


async def init_db(db_path: str | Path) -> aiosqlite.Connection:
    """Connect, apply pragmas and bring the schema up to date.

    ``":memory:"`` gives a throwaway database; any other path has its parent
    directory created. The caller owns the returned connection.
    """
    target = str(db_path)
    if target != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(target)
    conn.row_factory = aiosqlite.Row
    for pragma in _PRAGMAS:
        await conn.execute(pragma)
    await run_migrations(conn)
    logger.info("Database ready at %s", target)
    return conn


@asynccontextmanager
async def open_db(db_path: str | Path) -> AsyncIterator[aiosqlite.Connection]:
    conn = await init_db(db_path)
    try:
        yield conn
    finally:
        await conn.close()
        logger.debug("Database %s closed", db_path)
