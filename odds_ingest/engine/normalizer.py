"""Normalize SportsGameOdds events into game and odds rows.

Provider payloads name the same field in several places depending on league
and API revision, so every extracted field is described by an ordered tuple of
key paths that are tried in turn (see ``_first``).
"""

from __future__ import annotations

import math
import re
from collections import Counter
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import structlog

from odds_ingest.api.schemas import RawEvent
from odds_ingest.engine.models import (
    SPORTSBOOK_COLUMNS,
    GameStatus,
    NormalizedBatch,
    NormalizedGame,
    NormalizedOdd,
)

log = structlog.get_logger()

UNKNOWN_TEAM = "Unknown Team"
DEFAULT_SPORTSBOOK = "SportsGameOdds"
MAX_ROWS_PER_ODD_ID = 2
ODDS_CLAMP = 9999.99
CENTS = Decimal("0.01")

Path = tuple[str, ...]

TEAM_NAME_PATHS: tuple[Path, ...] = (
    ("names", "long"),
    ("names", "medium"),
    ("names", "short"),
    ("name",),
    ("teamName",),
)
GAME_TIME_PATHS: tuple[Path, ...] = (("status", "startsAt"), ("startTime",))
STATUS_PATHS: tuple[Path, ...] = (("status", "displayShort"), ("status", "status"))

LINE_PATHS: dict[str, tuple[Path, ...]] = {
    "ml": (),
    "sp": (("bookSpread",), ("fairSpread",)),
    "ou": (("bookOverUnder",), ("fairOverUnder",)),
}
ANY_LINE_PATHS: tuple[Path, ...] = (
    ("bookSpread",),
    ("fairSpread",),
    ("bookOverUnder",),
    ("fairOverUnder",),
)

# (attribute, provider key, max length) for free-text odds identifiers
ODD_TEXT_FIELDS: tuple[tuple[str, str, int], ...] = (
    ("stat_id", "statID", 100),
    ("bet_type_id", "betTypeID", 50),
    ("player_id", "playerID", 100),
    ("period_id", "periodID", 50),
    ("side_id", "sideID", 50),
)

LEAGUE_TO_SPORT: dict[str, str] = {
    "MLB": "baseball",
    "NBA": "basketball",
    "WNBA": "basketball",
    "NFL": "football",
    "NCAAF": "football",
    "NCAAB": "basketball",
    "NHL": "hockey",
    "MLS": "soccer",
    "UCL": "soccer",
    "UEFA_CHAMPIONS_LEAGUE": "soccer",
}

SPORT_ID_TO_SPORT: dict[str, str] = {
    "FOOTBALL": "football",
    "BASKETBALL": "basketball",
    "BASEBALL": "baseball",
    "HOCKEY": "hockey",
    "SOCCER": "soccer",
}

STATUS_MAP: dict[str, GameStatus] = {
    "scheduled": GameStatus.SCHEDULED,
    "upcoming": GameStatus.SCHEDULED,
    "live": GameStatus.LIVE,
    "in_progress": GameStatus.LIVE,
    "in progress": GameStatus.LIVE,
    "started": GameStatus.LIVE,
    "final": GameStatus.FINAL,
    "completed": GameStatus.FINAL,
    "ended": GameStatus.FINAL,
    "cancelled": GameStatus.CANCELLED,
    "canceled": GameStatus.CANCELLED,
    "postponed": GameStatus.POSTPONED,
}

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class MalformedEventError(ValueError):
    """Raised when an event is too broken to produce a game row."""


# ── Field access ────────────────────────────────────────────────────


def _dig(obj: Any, path: Path) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _first(obj: Any, paths: tuple[Path, ...]) -> Any:
    """Return the first non-empty value found along ``paths``."""
    for path in paths:
        value = _dig(obj, path)
        if value not in (None, ""):
            return value
    return None


def _object(event: RawEvent, *path: str) -> dict[str, Any]:
    value = _dig(event, path)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedEventError(f"{'.'.join(path)} is {type(value).__name__}, expected object")
    return value


def _truncate(value: Any, max_length: int) -> str | None:
    if value is None or value == "":
        return None
    return str(value)[:max_length]


# ── Conversions ─────────────────────────────────────────────────────


def parse_odds_to_integer(value: Any) -> int | None:
    """'+150' -> 150, '-110' -> -110; anything unparseable -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    match = _LEADING_INT.match(str(value))
    if not match:
        return None
    return int(match.group(1).lstrip("+"))


def american_to_decimal(value: Any) -> float | None:
    """Convert American odds to decimal odds rounded to two places."""
    american = parse_odds_to_integer(value)
    if not american:
        return None
    if american > 0:
        price = american / 100 + 1
    else:
        price = 100 / abs(american) + 1
    # Half-up: -160 -> 1.63, -800 -> 1.13.
    return float(Decimal(str(price)).quantize(CENTS, rounding=ROUND_HALF_UP))


def _parse_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def clamp_odds(value: Any) -> float | None:
    parsed = _parse_float(value)
    if parsed is None:
        return None
    return round(min(max(parsed, -ODDS_CLAMP), ODDS_CLAMP), 2)


def parse_line(value: Any) -> float | None:
    return clamp_odds(value)


def format_team_key(team_name: str | None) -> str:
    if not team_name or team_name == UNKNOWN_TEAM:
        return "unknown"
    key = re.sub(r"\s+", "_", team_name.lower())
    key = re.sub(r"[^a-z0-9_]", "", key)
    return key[:50]


def extract_team_name(team: dict[str, Any] | None) -> str:
    if not team:
        return UNKNOWN_TEAM
    name = _first(team, TEAM_NAME_PATHS)
    return str(name) if name else UNKNOWN_TEAM


def map_league_to_sport(league_id: Any, sport_id: Any = None) -> str:
    sport = LEAGUE_TO_SPORT.get(str(league_id or "").upper())
    if sport:
        return sport
    return SPORT_ID_TO_SPORT.get(str(sport_id or "").upper(), "unknown")


def normalize_status(status: Any) -> GameStatus:
    if not status:
        return GameStatus.SCHEDULED
    return STATUS_MAP.get(str(status).strip().lower(), GameStatus.SCHEDULED)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_date_time(value: Any) -> str:
    """Return an ISO-8601 UTC timestamp; falls back to now."""
    if not value:
        log.warning("game_time_missing")
        return _now_iso()
    try:
        if isinstance(value, (int, float)):
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        else:
            text = str(value).strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
    except (ValueError, TypeError, OverflowError, OSError):
        log.warning("game_time_invalid", value=str(value))
        return _now_iso()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat()


def normalize_score(score: Any) -> int | None:
    if score is None or score == "" or isinstance(score, bool):
        return None
    if isinstance(score, (int, float)):
        return int(score) if math.isfinite(score) else None
    match = _LEADING_INT.match(str(score))
    return int(match.group(1)) if match else None


# ── Normalizer ──────────────────────────────────────────────────────


class DataNormalizer:
    """Turns raw events into rows.

    Tracks how many odds rows were emitted per logical odds identifier across
    a batch; call ``reset_odds_tracking`` before every new batch. Instances
    are not safe to share between overlapping batches.
    """

    def __init__(self) -> None:
        self._processed_odds: Counter[str] = Counter()

    def reset_odds_tracking(self) -> None:
        self._processed_odds.clear()
        log.debug("odds_tracking_reset")

    def normalize_events_batch(self, events: list[RawEvent]) -> NormalizedBatch:
        log.info("normalizing_events", count=len(events))
        batch = NormalizedBatch()

        for event in events:
            try:
                game = self.normalize_game_data(event)
                odds = self.normalize_odds_data(event, game.id)
            except Exception:
                event_id = event.get("eventID") if isinstance(event, dict) else None
                log.exception("event_normalization_failed", event_id=event_id)
                continue
            batch.games.append(game)
            batch.odds.extend(odds)

        log.info("events_normalized", games=len(batch.games), odds=len(batch.odds))
        return batch

    def normalize_game_data(self, event: RawEvent) -> NormalizedGame:
        if not isinstance(event, dict):
            raise MalformedEventError(f"event is {type(event).__name__}, expected object")
        event_id = event.get("eventID")
        if event_id in (None, ""):
            raise MalformedEventError("event has no eventID")

        home = _object(event, "teams", "home")
        away = _object(event, "teams", "away")
        _object(event, "status")

        home_name = extract_team_name(home)
        away_name = extract_team_name(away)
        league = str(event.get("leagueID") or "")

        game = NormalizedGame(
            id=str(event_id),
            sport=map_league_to_sport(league, event.get("sportID")),
            league=league,
            home_team=format_team_key(home_name),
            away_team=format_team_key(away_name),
            home_team_name=home_name,
            away_team_name=away_name,
            game_time=normalize_date_time(_first(event, GAME_TIME_PATHS)),
            status=normalize_status(_first(event, STATUS_PATHS)),
            home_score=normalize_score(home.get("score")),
            away_score=normalize_score(away.get("score")),
        )
        log.debug(
            "game_normalized",
            game_id=game.id, away=game.away_team_name, home=game.home_team_name,
        )
        return game

    def normalize_odds_data(self, event: RawEvent, game_id: str) -> list[NormalizedOdd]:
        odds_map = _object(event, "odds")
        normalized: list[NormalizedOdd] = []
        fetched_at = _now_iso()

        for odd_key, odd in odds_map.items():
            if not isinstance(odd, dict):
                log.warning("odd_entry_skipped", game_id=game_id, odd_key=odd_key)
                continue
            odd_id = str(odd.get("oddID") or odd_key)
            if self._processed_odds[odd_id] >= MAX_ROWS_PER_ODD_ID:
                log.debug("odd_id_cap_reached", game_id=game_id, odd_id=odd_id)
                continue

            normalized.append(self.normalize_odd_entry(odd, game_id, odd_key, fetched_at))
            self._processed_odds[odd_id] += 1

        log.debug("odds_normalized", game_id=game_id, count=len(normalized))
        return normalized

    def normalize_odd_entry(
        self,
        odd: dict[str, Any],
        event_id: str,
        odd_key: str = "",
        fetched_at: str | None = None,
    ) -> NormalizedOdd:
        bet_type = odd.get("betTypeID")
        line_paths = LINE_PATHS.get(str(bet_type), ANY_LINE_PATHS)
        score = odd.get("score")

        entry = NormalizedOdd(
            event_id=event_id,
            odd_id=_truncate(odd.get("oddID") or odd_key, 100) or "",
            sportsbook=DEFAULT_SPORTSBOOK,
            market_name=(_truncate(odd.get("marketName"), 50) or "Unknown Market"),
            book_odds=parse_odds_to_integer(odd.get("bookOdds")),
            close_book_odds=american_to_decimal(odd.get("fairOdds") or odd.get("bookOdds")),
            line=parse_line(_first(odd, line_paths)),
            score=None if score is None else str(score)[:50],
            fetched_at=fetched_at or _now_iso(),
        )
        for attr, source, max_length in ODD_TEXT_FIELDS:
            setattr(entry, attr, _truncate(odd.get(source), max_length))

        by_bookmaker = odd.get("byBookmaker")
        if isinstance(by_bookmaker, dict):
            for bookmaker, column in SPORTSBOOK_COLUMNS.items():
                quote = by_bookmaker.get(bookmaker)
                if isinstance(quote, dict):
                    entry.sportsbook_odds[column] = (
                        clamp_odds(quote.get("odds")),
                        quote.get("deeplink") or None,
                    )
        return entry
