"""SQL schema definitions for the odds store."""

from __future__ import annotations

from odds_ingest.engine.models import SPORTSBOOK_COLUMNS

_SPORTSBOOK_COLUMNS_SQL = "".join(
    f"    {col}_odds REAL,\n    {col}_link TEXT,\n" for col in SPORTSBOOK_COLUMNS.values()
)

_ODDS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT NOT NULL REFERENCES games(id),
    odd_id TEXT NOT NULL,
    sportsbook TEXT NOT NULL,
    market_name TEXT NOT NULL,
    stat_id TEXT,
    bet_type_id TEXT,
    player_id TEXT,
    period_id TEXT,
    side_id TEXT,
    book_odds INTEGER,
    close_book_odds REAL,
    line REAL,
    line_key TEXT NOT NULL DEFAULT '',
    score TEXT,
{sportsbooks}    fetched_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(event_id, odd_id, sportsbook, line_key)
);

CREATE INDEX IF NOT EXISTS idx_{table}_event ON {table}(event_id);
CREATE INDEX IF NOT EXISTS idx_{table}_created ON {table}(created_at);
"""

# odds: most recent quote per odds identifier; open_odds: earliest quote.
ODDS_TABLES: tuple[str, ...] = ("odds", "open_odds")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS games (
    id TEXT PRIMARY KEY,
    sport TEXT NOT NULL,
    league TEXT NOT NULL,
    home_team TEXT NOT NULL,
    away_team TEXT NOT NULL,
    home_team_name TEXT NOT NULL,
    away_team_name TEXT NOT NULL,
    game_time TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'scheduled',
    home_score INTEGER,
    away_score INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_games_game_time ON games(game_time);
""" + "".join(
    _ODDS_TABLE_SQL.format(table=table, sportsbooks=_SPORTSBOOK_COLUMNS_SQL)
    for table in ODDS_TABLES
)
