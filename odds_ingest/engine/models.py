"""Normalized row types shared by the normalizer and the store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class GameStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINAL = "final"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"


# Odds for games in these states are never inserted or updated.
SETTLED_STATUSES: tuple[GameStatus, ...] = (GameStatus.LIVE, GameStatus.FINAL)

# Per-sportsbook columns on the odds tables, keyed by provider bookmaker ID.
SPORTSBOOK_COLUMNS: dict[str, str] = {
    "fanduel": "fanduel",
    "draftkings": "draftkings",
    "caesars": "caesars",
    "betmgm": "mgm",
    "espnbet": "espnbet",
    "fanatics": "fanatics",
    "bovada": "bovada",
}


@dataclass
class NormalizedGame:
    id: str
    sport: str
    league: str
    home_team: str
    away_team: str
    home_team_name: str
    away_team_name: str
    game_time: str
    status: GameStatus = GameStatus.SCHEDULED
    home_score: int | None = None
    away_score: int | None = None

    def as_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["status"] = self.status.value
        return row


@dataclass
class NormalizedOdd:
    event_id: str
    odd_id: str
    sportsbook: str = "SportsGameOdds"
    market_name: str = "Unknown Market"
    stat_id: str | None = None
    bet_type_id: str | None = None
    player_id: str | None = None
    period_id: str | None = None
    side_id: str | None = None
    book_odds: int | None = None
    close_book_odds: float | None = None
    line: float | None = None
    score: str | None = None
    fetched_at: str = ""
    # sparse: book column prefix -> (odds, deeplink)
    sportsbook_odds: dict[str, tuple[float | None, str | None]] = field(default_factory=dict)

    def as_row(self) -> dict[str, Any]:
        row = asdict(self)
        row.pop("sportsbook_odds")
        for column in SPORTSBOOK_COLUMNS.values():
            odds, link = self.sportsbook_odds.get(column, (None, None))
            row[f"{column}_odds"] = odds
            row[f"{column}_link"] = link
        row["line_key"] = "" if self.line is None else repr(self.line)
        return row


@dataclass
class NormalizedBatch:
    games: list[NormalizedGame] = field(default_factory=list)
    odds: list[NormalizedOdd] = field(default_factory=list)
