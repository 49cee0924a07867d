"""Database initialization and migrations."""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from odds_ingest.db.models import ODDS_TABLES, SCHEMA_SQL

log = structlog.get_logger()

# Concurrent ingestion runs share one file; wait for a writer instead of failing.
BUSY_TIMEOUT_MS = 5000


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Open the store, enable foreign keys and WAL, and create missing tables."""
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(db_path)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    await db.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
    cursor = await db.execute("PRAGMA journal_mode = WAL")
    (journal_mode,) = await cursor.fetchone()
    await db.executescript(SCHEMA_SQL)
    await db.commit()
    log.info(
        "database_initialized",
        path=db_path,
        journal_mode=journal_mode,
        tables=["games", *ODDS_TABLES],
    )
    return db
