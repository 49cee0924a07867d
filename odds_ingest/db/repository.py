"""Conflict-aware writes of normalized games and odds.

The store owns conflict resolution. Every odds row is written with a single
statement that refuses rows for settled games and resolves duplicates by
``fetched_at``: newest wins in ``odds``, earliest wins in ``open_odds``.
There is no application-level locking; concurrent runs simply race on those
rules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import aiosqlite
import structlog

from odds_ingest.engine.models import (
    SETTLED_STATUSES,
    SPORTSBOOK_COLUMNS,
    GameStatus,
    NormalizedBatch,
    NormalizedGame,
    NormalizedOdd,
)

log = structlog.get_logger()

ODDS_BATCH_SIZE = 100

_GAME_COLUMNS = (
    "id", "sport", "league", "home_team", "away_team", "home_team_name",
    "away_team_name", "game_time", "status", "home_score", "away_score",
)

_ODD_COLUMNS = (
    "event_id", "odd_id", "sportsbook", "market_name", "stat_id", "bet_type_id",
    "player_id", "period_id", "side_id", "book_odds", "close_book_odds", "line",
    "line_key", "score",
) + tuple(
    f"{col}_{kind}" for col in SPORTSBOOK_COLUMNS.values() for kind in ("odds", "link")
) + ("fetched_at",)

_SETTLED_SQL = ", ".join(f"'{s.value}'" for s in SETTLED_STATUSES)

UPSERT_GAMES_SQL = f"""
    INSERT INTO games ({", ".join(_GAME_COLUMNS)}, created_at, updated_at)
    VALUES ({", ".join(":" + c for c in _GAME_COLUMNS)}, :now, :now)
    ON CONFLICT(id) DO UPDATE SET
        {", ".join(f"{c} = excluded.{c}" for c in _GAME_COLUMNS if c != "id")},
        updated_at = excluded.updated_at
    WHERE games.status <> '{GameStatus.FINAL.value}'
"""


def _upsert_odds_sql(table: str, keep: str) -> str:
    """One atomic insert-or-update; ``keep`` picks which fetched_at survives."""
    updates = ", ".join(
        f"{c} = excluded.{c}"
        for c in _ODD_COLUMNS
        if c not in ("event_id", "odd_id", "sportsbook", "line_key")
    )
    return f"""
        INSERT INTO {table} ({", ".join(_ODD_COLUMNS)}, created_at, updated_at)
        SELECT {", ".join(":" + c for c in _ODD_COLUMNS)}, :now, :now
        WHERE NOT EXISTS (
            SELECT 1 FROM games g
            WHERE g.id = :event_id
              AND (g.status IN ({_SETTLED_SQL}) OR g.game_time <= :lock_cutoff)
        )
        ON CONFLICT(event_id, odd_id, sportsbook, line_key) DO UPDATE SET
            {updates}, updated_at = excluded.updated_at
        WHERE excluded.fetched_at {keep} {table}.fetched_at
    """


UPSERT_CURRENT_ODDS_SQL = _upsert_odds_sql("odds", ">")
UPSERT_OPEN_ODDS_SQL = _upsert_odds_sql("open_odds", "<")


@dataclass
class UpsertResult:
    success: bool = True
    rows: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class IngestWriteResult:
    games: UpsertResult = field(default_factory=UpsertResult)
    odds: UpsertResult = field(default_factory=UpsertResult)
    overall_success: bool = True


class OddsRepository:
    def __init__(self, db: aiosqlite.Connection, lock_buffer_minutes: int | None = 10) -> None:
        self._db = db
        self._lock_buffer_minutes = lock_buffer_minutes

    # ── Writes ──────────────────────────────────────────────────────

    async def upsert_games(self, games: list[NormalizedGame]) -> UpsertResult:
        """Bulk upsert keyed on ``id``. Final games are left untouched."""
        result = UpsertResult()
        if not games:
            log.info("games_upsert_empty")
            return result

        now = _now_iso()
        rows = [{**g.as_row(), "now": now} for g in games]
        try:
            cursor = await self._db.executemany(UPSERT_GAMES_SQL, rows)
            await self._db.commit()
        except aiosqlite.Error as exc:
            await self._db.rollback()
            log.error("games_upsert_failed", count=len(rows), error=str(exc))
            result.success = False
            result.errors.append(str(exc))
            return result

        result.rows = cursor.rowcount  # type: ignore[union-attr]
        log.info("games_upserted", count=result.rows, total=len(rows))
        return result

    async def upsert_odds(self, odds: list[NormalizedOdd]) -> UpsertResult:
        """Write odds in batches of ODDS_BATCH_SIZE, one transaction per batch.

        A failing batch is rolled back and recorded; later batches still run.
        """
        result = UpsertResult()
        if not odds:
            log.info("odds_upsert_empty")
            return result

        total_batches = (len(odds) + ODDS_BATCH_SIZE - 1) // ODDS_BATCH_SIZE
        for start in range(0, len(odds), ODDS_BATCH_SIZE):
            batch_no = start // ODDS_BATCH_SIZE + 1
            params = {"now": _now_iso(), "lock_cutoff": self._lock_cutoff()}
            rows = [
                {**odd.as_row(), **params}
                for odd in odds[start:start + ODDS_BATCH_SIZE]
            ]
            try:
                cursor = await self._db.executemany(UPSERT_CURRENT_ODDS_SQL, rows)
                written = cursor.rowcount  # type: ignore[union-attr]
                cursor = await self._db.executemany(UPSERT_OPEN_ODDS_SQL, rows)
                opened = cursor.rowcount  # type: ignore[union-attr]
                await self._db.commit()
            except aiosqlite.Error as exc:
                await self._db.rollback()
                log.error(
                    "odds_batch_failed",
                    batch=batch_no, batches=total_batches, size=len(rows), error=str(exc),
                )
                result.errors.append(f"batch {batch_no}: {exc}")
                continue

            result.rows += written
            log.info(
                "odds_batch_upserted",
                batch=batch_no, batches=total_batches, size=len(rows),
                written=written, opened=opened, skipped=len(rows) - written,
            )

        result.success = not result.errors
        log.info(
            "odds_upsert_complete",
            written=result.rows, total=len(odds), failed_batches=len(result.errors),
        )
        return result

    async def upsert_game_and_odds_data(self, batch: NormalizedBatch) -> IngestWriteResult:
        """Games before odds; odds are skipped entirely if games fail."""
        result = IngestWriteResult()
        result.games = await self.upsert_games(batch.games)
        if not result.games.success:
            log.error("games_upsert_failed_skipping_odds")
            result.overall_success = False
            return result

        result.odds = await self.upsert_odds(batch.odds)
        result.overall_success = result.odds.success
        log.info(
            "ingest_write_complete",
            games=result.games.rows, odds=result.odds.rows, success=result.overall_success,
        )
        return result

    # ── Diagnostics ─────────────────────────────────────────────────

    async def test_connection(self) -> bool:
        try:
            cursor = await self._db.execute("SELECT 1 FROM games LIMIT 1")
            await cursor.fetchall()
        except aiosqlite.Error as exc:
            log.error("database_connection_failed", error=str(exc))
            return False
        return True

    async def get_recent_games(self, limit: int = 5) -> list[aiosqlite.Row]:
        sql = "SELECT * FROM games ORDER BY game_time DESC LIMIT ?"
        cursor = await self._db.execute(sql, (limit,))
        return list(await cursor.fetchall())

    async def get_recent_odds(self, limit: int = 10) -> list[aiosqlite.Row]:
        sql = "SELECT * FROM odds ORDER BY created_at DESC, id DESC LIMIT ?"
        cursor = await self._db.execute(sql, (limit,))
        return list(await cursor.fetchall())

    async def get_event_odds(self, event_id: str, table: str = "odds") -> list[aiosqlite.Row]:
        if table not in ("odds", "open_odds"):
            raise ValueError(f"unknown odds table: {table}")
        sql = f"SELECT * FROM {table} WHERE event_id = ? ORDER BY id"
        cursor = await self._db.execute(sql, (event_id,))
        return list(await cursor.fetchall())

    # ── Maintenance ─────────────────────────────────────────────────

    async def cleanup_old_data(self, days_old: int = 30) -> dict[str, int]:
        """Delete odds and games older than ``days_old`` days (odds first)."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days_old)).isoformat()
        counts: dict[str, int] = {}
        old_games = "SELECT id FROM games WHERE game_time < ?"
        try:
            for table in ("odds", "open_odds"):
                cursor = await self._db.execute(
                    f"DELETE FROM {table} WHERE created_at < ? OR event_id IN ({old_games})",
                    (cutoff, cutoff),
                )
                counts[table] = cursor.rowcount
            cursor = await self._db.execute(
                "DELETE FROM games WHERE game_time < ? "
                "AND id NOT IN (SELECT event_id FROM odds) "
                "AND id NOT IN (SELECT event_id FROM open_odds)",
                (cutoff,),
            )
            counts["games"] = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error:
            await self._db.rollback()
            raise
        log.info("cleanup_complete", cutoff=cutoff, **counts)
        return counts

    # ── Internal ────────────────────────────────────────────────────

    def _lock_cutoff(self) -> str:
        if self._lock_buffer_minutes is None:
            return ""
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=self._lock_buffer_minutes)
        return cutoff.isoformat()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
