"""Shared test fixtures."""

from __future__ import annotations

import pytest
import aiosqlite
import structlog

from odds_ingest.config import Settings
from odds_ingest.db.models import SCHEMA_SQL
from odds_ingest.db.repository import OddsRepository


@pytest.fixture
def settings() -> Settings:
    return Settings(
        sportsgameodds_api_key="test_key",
        db_path=":memory:",
    )


@pytest.fixture
async def db():
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys = ON")
    await conn.executescript(SCHEMA_SQL)
    await conn.commit()
    yield conn
    await conn.close()


@pytest.fixture
async def repo(db) -> OddsRepository:
    return OddsRepository(db)


@pytest.fixture(autouse=True)
def _reset_logging():
    """configure_logging binds the current stderr; drop it after each test."""
    yield
    structlog.reset_defaults()
