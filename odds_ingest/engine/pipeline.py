"""Ingestion pipeline: fetch -> normalize -> persist, with a structured result."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

import aiosqlite
import structlog

from odds_ingest.api.odds_client import RateLimitError, SportsGameOddsClient
from odds_ingest.api.schemas import RawEvent
from odds_ingest.cache import EventCache
from odds_ingest.db.repository import IngestWriteResult, OddsRepository
from odds_ingest.engine.models import NormalizedBatch
from odds_ingest.engine.normalizer import DataNormalizer

log = structlog.get_logger()


@dataclass
class RunResult:
    success: bool
    events_processed: int = 0
    duration: float = 0.0
    error: str | None = None
    message: str | None = None
    source: str = "api"
    normalized: NormalizedBatch | None = None
    write: IngestWriteResult | None = None


class IngestionPipeline:
    def __init__(
        self,
        client: SportsGameOddsClient,
        repo: OddsRepository | None = None,
        cache: EventCache | None = None,
        test_mode: bool = True,
        verbose: bool = False,
        normalizer_factory: Callable[[], DataNormalizer] = DataNormalizer,
    ) -> None:
        self._client = client
        self._repo = repo
        self._cache = cache
        self._test_mode = test_mode
        self._verbose = verbose
        self._normalizer_factory = normalizer_factory

    async def run(
        self,
        leagues: list[str] | str,
        starts_after: date | str,
        starts_before: date | str,
    ) -> RunResult:
        """Run one ingestion cycle. Never raises; failures come back as RunResult."""
        league_list = [leagues] if isinstance(leagues, str) else list(leagues)
        started = time.monotonic()
        log.info(
            "ingest_run_start",
            leagues=league_list,
            starts_after=str(starts_after),
            starts_before=str(starts_before),
            mode="test" if self._test_mode else "insert",
        )

        try:
            repo = None if self._test_mode else await self._check_store()

            raw_events, source = await self._fetch(league_list, starts_after, starts_before)
            if not raw_events:
                log.warning("ingest_no_events")
                return RunResult(
                    success=True,
                    duration=time.monotonic() - started,
                    message="No events to process",
                    source=source,
                )

            # Fresh normalizer per run; the odds counter must never span runs.
            normalizer = self._normalizer_factory()
            normalizer.reset_odds_tracking()
            normalized = normalizer.normalize_events_batch(raw_events)
            self._log_results(normalized, raw_events)

            write: IngestWriteResult | None = None
            if repo is None:
                log.info("test_mode_insert_skipped")
                success = True
            else:
                write = await repo.upsert_game_and_odds_data(normalized)
                success = write.overall_success
                if success:
                    await self._log_store_summary(repo)
                else:
                    self._log_errors(write)

            duration = time.monotonic() - started
            log.info("ingest_run_complete", success=success, duration=round(duration, 2))
            return RunResult(
                success=success,
                events_processed=len(raw_events),
                duration=duration,
                error=None if success else "database write failed",
                source=source,
                normalized=normalized,
                write=write,
            )
        except Exception as exc:
            duration = time.monotonic() - started
            if self._verbose:
                log.exception("ingest_run_failed", duration=round(duration, 2))
            else:
                log.error("ingest_run_failed", error=str(exc), duration=round(duration, 2))
            return RunResult(success=False, duration=duration, error=str(exc))

    # ── Internal ────────────────────────────────────────────────────

    async def _check_store(self) -> OddsRepository:
        if self._repo is None:
            raise RuntimeError("insert mode requires a repository")
        if not await self._repo.test_connection():
            raise ConnectionError("Database connection failed")
        log.info("database_connection_verified")
        return self._repo

    async def _fetch(
        self, leagues: list[str], starts_after: date | str, starts_before: date | str
    ) -> tuple[list[RawEvent], str]:
        if not leagues:
            raise ValueError("No leagues specified")

        key = EventCache.key(leagues, starts_after, starts_before)
        try:
            if len(leagues) > 1:
                events = await self._client.fetch_multiple_leagues(
                    leagues, starts_after, starts_before
                )
            else:
                events = await self._client.fetch_league(leagues[0], starts_after, starts_before)
        except RateLimitError:
            cached = self._cache.get(key) if self._cache is not None else None
            if cached is None:
                raise
            log.warning("rate_limited_serving_cache", events=len(cached))
            return cached, "cache"

        if self._cache is not None and events:
            self._cache.put(key, events)
        return events, "api"

    def _log_results(self, normalized: NormalizedBatch, raw_events: list[RawEvent]) -> None:
        log.info(
            "processing_summary",
            raw_events=len(raw_events),
            games=len(normalized.games),
            odds=len(normalized.odds),
        )
        if not self._verbose:
            return
        for game in normalized.games[:3]:
            log.info(
                "sample_game",
                game_id=game.id,
                matchup=f"{game.away_team_name} @ {game.home_team_name}",
                game_time=game.game_time,
            )
        for odd in normalized.odds[:5]:
            log.info(
                "sample_odd",
                market=odd.market_name,
                bet_type=odd.bet_type_id,
                side=odd.side_id,
                book_odds=odd.book_odds,
                game_id=odd.event_id,
            )

    @staticmethod
    def _log_errors(write: IngestWriteResult) -> None:
        for error in write.games.errors:
            log.error("games_write_error", error=error)
        for error in write.odds.errors:
            log.error("odds_write_error", error=error)

    @staticmethod
    async def _log_store_summary(repo: OddsRepository) -> None:
        try:
            games = await repo.get_recent_games(3)
            odds = await repo.get_recent_odds(5)
        except aiosqlite.Error as exc:
            log.warning("store_summary_unavailable", error=str(exc))
            return
        log.info(
            "store_summary",
            recent_games=[
                f"{g['away_team_name']} @ {g['home_team_name']} ({g['status']})" for g in games
            ],
            recent_odds=[f"{o['market_name']} - {o['bet_type_id'] or 'N/A'}" for o in odds],
        )
