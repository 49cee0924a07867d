"""Tests for conflict-aware game and odds writes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import aiosqlite
import pytest

from odds_ingest.db.repository import OddsRepository
from odds_ingest.engine.models import GameStatus, NormalizedBatch, NormalizedGame, NormalizedOdd

T1 = "2025-08-15T12:00:00+00:00"
T2 = "2025-08-15T12:30:00+00:00"
T0 = "2025-08-15T11:30:00+00:00"


def _game(
    game_id: str = "evt1",
    hours_from_now: float = 24,
    status: GameStatus = GameStatus.SCHEDULED,
    **overrides,
) -> NormalizedGame:
    game_time = datetime.now(timezone.utc) + timedelta(hours=hours_from_now)
    fields = {
        "id": game_id,
        "sport": "baseball",
        "league": "MLB",
        "home_team": "new_york_yankees",
        "away_team": "boston_red_sox",
        "home_team_name": "New York Yankees",
        "away_team_name": "Boston Red Sox",
        "game_time": game_time.isoformat(),
        "status": status,
    }
    fields.update(overrides)
    return NormalizedGame(**fields)


def _odd(
    event_id: str = "evt1",
    odd_id: str = "points-home-game-ml-home",
    fetched_at: str = T1,
    book_odds: int = -110,
    **overrides,
) -> NormalizedOdd:
    return NormalizedOdd(
        event_id=event_id,
        odd_id=odd_id,
        market_name="Moneyline",
        bet_type_id="ml",
        book_odds=book_odds,
        fetched_at=fetched_at,
        **overrides,
    )


async def _count(db: aiosqlite.Connection, table: str) -> int:
    cursor = await db.execute(f"SELECT COUNT(*) FROM {table}")
    (n,) = await cursor.fetchone()
    return n


async def _snapshot(db: aiosqlite.Connection) -> dict[str, list[tuple]]:
    tables = {}
    for table in ("odds", "open_odds"):
        cursor = await db.execute(f"SELECT * FROM {table} ORDER BY id")
        tables[table] = [tuple(row) for row in await cursor.fetchall()]
    return tables


# ── Games ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_games_upsert_is_idempotent(repo, db):
    game = _game()
    first = await repo.upsert_games([game])
    second = await repo.upsert_games([game])

    assert first.success and second.success
    assert first.rows == 1
    assert await _count(db, "games") == 1


@pytest.mark.asyncio
async def test_games_upsert_updates_scores(repo, db):
    await repo.upsert_games([_game()])
    await repo.upsert_games([_game(status=GameStatus.LIVE, home_score=2, away_score=1)])

    games = await repo.get_recent_games()
    assert games[0]["status"] == "live"
    assert (games[0]["home_score"], games[0]["away_score"]) == (2, 1)


@pytest.mark.asyncio
async def test_final_game_is_not_overwritten(repo):
    await repo.upsert_games([_game(status=GameStatus.FINAL, home_score=5, away_score=3)])
    result = await repo.upsert_games([_game(status=GameStatus.SCHEDULED)])

    assert result.success
    assert result.rows == 0
    games = await repo.get_recent_games()
    assert games[0]["status"] == "final"
    assert games[0]["home_score"] == 5


@pytest.mark.asyncio
async def test_empty_games_is_noop(repo):
    result = await repo.upsert_games([])
    assert result.success and result.rows == 0


# ── Odds conflict rules ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_current_odds_newest_wins_open_odds_earliest_wins(repo):
    await repo.upsert_games([_game()])
    await repo.upsert_odds([_odd(fetched_at=T1, book_odds=-110)])
    await repo.upsert_odds([_odd(fetched_at=T2, book_odds=-120)])
    await repo.upsert_odds([_odd(fetched_at=T0, book_odds=-100)])

    current = await repo.get_event_odds("evt1")
    opening = await repo.get_event_odds("evt1", table="open_odds")
    assert [(r["book_odds"], r["fetched_at"]) for r in current] == [(-120, T2)]
    assert [(r["book_odds"], r["fetched_at"]) for r in opening] == [(-100, T0)]


@pytest.mark.asyncio
async def test_stale_odds_do_not_replace_current(repo):
    await repo.upsert_games([_game()])
    await repo.upsert_odds([_odd(fetched_at=T2, book_odds=-120)])
    result = await repo.upsert_odds([_odd(fetched_at=T1, book_odds=-110)])

    assert result.success
    assert result.rows == 0
    current = await repo.get_event_odds("evt1")
    assert current[0]["book_odds"] == -120


@pytest.mark.asyncio
async def test_distinct_lines_are_distinct_rows(repo):
    await repo.upsert_games([_game()])
    await repo.upsert_odds([
        _odd(odd_id="points-all-game-ou-over", line=8.5),
        _odd(odd_id="points-all-game-ou-over", line=9.0),
    ])
    assert len(await repo.get_event_odds("evt1")) == 2


@pytest.mark.asyncio
async def test_sportsbook_columns_are_stored(repo):
    await repo.upsert_games([_game()])
    await repo.upsert_odds([
        _odd(sportsbook_odds={"fanduel": (-115.0, "https://fd.example/bet"), "mgm": (-120.0, None)})
    ])
    row = (await repo.get_event_odds("evt1"))[0]
    assert row["fanduel_odds"] == -115.0
    assert row["fanduel_link"] == "https://fd.example/bet"
    assert row["mgm_odds"] == -120.0
    assert row["draftkings_odds"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [GameStatus.FINAL, GameStatus.LIVE])
async def test_odds_for_settled_game_are_immutable(repo, db, status):
    await repo.upsert_games([_game()])
    await repo.upsert_odds([_odd(fetched_at=T1, book_odds=-110)])
    await repo.upsert_games([_game(status=status)])
    before = await _snapshot(db)

    result = await repo.upsert_odds([
        _odd(fetched_at=T2, book_odds=-150),
        _odd(odd_id="points-away-game-ml-away", fetched_at=T2),
    ])

    assert result.success
    assert result.rows == 0
    assert await _snapshot(db) == before


@pytest.mark.asyncio
async def test_odds_rejected_after_lock_buffer(repo, db):
    await repo.upsert_games([_game(hours_from_now=-1)])
    result = await repo.upsert_odds([_odd()])

    assert result.success
    assert result.rows == 0
    assert await _count(db, "odds") == 0
    assert await _count(db, "open_odds") == 0


@pytest.mark.asyncio
async def test_odds_accepted_inside_lock_buffer(repo):
    await repo.upsert_games([_game(hours_from_now=-5 / 60)])
    result = await repo.upsert_odds([_odd()])
    assert result.rows == 1


@pytest.mark.asyncio
async def test_lock_buffer_disabled(db):
    repo = OddsRepository(db, lock_buffer_minutes=None)
    await repo.upsert_games([_game(hours_from_now=-3)])
    result = await repo.upsert_odds([_odd()])
    assert result.rows == 1


# ── Batching ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_failed_batch_is_rolled_back_others_commit(repo, db):
    await repo.upsert_games([_game()])
    odds = [_odd(odd_id=f"odd-{i}") for i in range(250)]
    odds[150] = _odd(event_id="no-such-game", odd_id="odd-150")

    result = await repo.upsert_odds(odds)

    assert result.success is False
    assert result.rows == 150
    assert len(result.errors) == 1
    assert result.errors[0].startswith("batch 2")
    assert await _count(db, "odds") == 150
    assert await _count(db, "open_odds") == 150


@pytest.mark.asyncio
async def test_games_failure_skips_odds(repo, db):
    batch = NormalizedBatch(games=[_game(sport=None)], odds=[_odd()])
    result = await repo.upsert_game_and_odds_data(batch)

    assert result.overall_success is False
    assert result.games.success is False
    assert result.games.errors
    assert result.odds.rows == 0
    assert await _count(db, "odds") == 0


@pytest.mark.asyncio
async def test_game_and_odds_data(repo):
    batch = NormalizedBatch(
        games=[_game("evt1"), _game("evt2")],
        odds=[_odd("evt1"), _odd("evt2"), _odd("evt2", odd_id="points-away-game-ml-away")],
    )
    result = await repo.upsert_game_and_odds_data(batch)

    assert result.overall_success
    assert result.games.rows == 2
    assert result.odds.rows == 3


# ── Diagnostics and maintenance ──────────────────────────────────


@pytest.mark.asyncio
async def test_connection_check(repo):
    assert await repo.test_connection() is True


@pytest.mark.asyncio
async def test_connection_check_without_schema():
    async with aiosqlite.connect(":memory:") as conn:
        assert await OddsRepository(conn).test_connection() is False


@pytest.mark.asyncio
async def test_recent_games_ordered_by_game_time(repo):
    await repo.upsert_games([_game("soon", 1), _game("later", 48), _game("mid", 12)])
    games = await repo.get_recent_games(2)
    assert [g["id"] for g in games] == ["later", "mid"]


@pytest.mark.asyncio
async def test_recent_odds_limited(repo):
    await repo.upsert_games([_game()])
    await repo.upsert_odds([_odd(odd_id=f"odd-{i}") for i in range(15)])
    assert len(await repo.get_recent_odds()) == 10
    assert len(await repo.get_recent_odds(3)) == 3


@pytest.mark.asyncio
async def test_unknown_odds_table_rejected(repo):
    with pytest.raises(ValueError):
        await repo.get_event_odds("evt1", table="games")


@pytest.mark.asyncio
async def test_cleanup_old_data(db):
    repo = OddsRepository(db, lock_buffer_minutes=None)
    await repo.upsert_games([_game("old", hours_from_now=-24 * 40), _game("new")])
    await repo.upsert_odds([_odd("old"), _odd("new")])

    counts = await repo.cleanup_old_data(30)

    assert counts == {"odds": 1, "open_odds": 1, "games": 1}
    assert [g["id"] for g in await repo.get_recent_games()] == ["new"]
    assert len(await repo.get_event_odds("new")) == 1
