"""Versioned schema upgrades."""

from __future__ import annotations

import logging

import aiosqlite

from site_dispatch.db.models import MIGRATIONS, SCHEMA_VERSION

logger = logging.getLogger(__name__)


async def get_schema_version(db: aiosqlite.Connection) -> int:
    """Recorded schema version; 0 for an empty database."""
    try:
        async with db.execute("SELECT version FROM schema_version WHERE id = 1") as cursor:
            row = await cursor.fetchone()
    except aiosqlite.OperationalError:
        return 0
    return row[0] if row else 0


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Apply every step above the recorded version, in order, then commit once."""
    current = await get_schema_version(db)
    pending = [v for v in sorted(MIGRATIONS) if v > current]
    if not pending:
        logger.debug("Schema at version %d, nothing to apply", current)
        return

    for version in pending:
        logger.info("Applying schema step %d", version)
        for statement in MIGRATIONS[version]:
            await db.execute(statement)
    await db.execute(
        "INSERT OR REPLACE INTO schema_version (id, version) VALUES (1, ?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info("Schema upgraded from version %d to %d", current, SCHEMA_VERSION)
