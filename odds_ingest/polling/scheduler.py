"""APScheduler-based ingestion scheduler."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from odds_ingest.alerts.discord import DiscordAlerter
from odds_ingest.api.odds_client import SportsGameOddsClient
from odds_ingest.cache import EventCache
from odds_ingest.config import Settings
from odds_ingest.db.repository import OddsRepository
from odds_ingest.engine.pipeline import IngestionPipeline, RunResult

log = structlog.get_logger()


class Poller:
    def __init__(
        self,
        settings: Settings,
        client: SportsGameOddsClient,
        repo: OddsRepository,
        cache: EventCache,
        alerter: DiscordAlerter,
    ) -> None:
        self._settings = settings
        self._client = client
        self._repo = repo
        self._cache = cache
        self._alerter = alerter
        self._cycle_count = 0

    async def ingest_cycle(self) -> RunResult:
        """Fetch and store odds for the configured leagues over the lookahead window."""
        self._cycle_count += 1
        today = datetime.now(timezone.utc).date()
        end = today + timedelta(days=self._settings.lookahead_days)
        log.info("ingest_cycle_start", cycle=self._cycle_count, start=str(today), end=str(end))

        # A new pipeline (and normalizer) per cycle; overlapping cycles never share one.
        pipeline = IngestionPipeline(
            self._client, self._repo, cache=self._cache, test_mode=False
        )
        result = await pipeline.run(self._settings.leagues, today, end)

        if result.success:
            log.info(
                "ingest_cycle_done",
                cycle=self._cycle_count,
                events=result.events_processed,
                source=result.source,
            )
        else:
            log.error("ingest_cycle_failed", cycle=self._cycle_count, error=result.error)
            try:
                self._alerter.send_run_failure(result, self._settings.leagues)
            except Exception:
                log.exception("ingest_failure_alert_error")
        return result

    async def cleanup(self) -> None:
        """Drop odds and games older than the retention window."""
        try:
            counts = await self._repo.cleanup_old_data(self._settings.cleanup_days)
            log.info("cleanup_done", **counts)
        except Exception:
            log.exception("cleanup_error")


def create_scheduler(poller: Poller, settings: Settings) -> AsyncIOScheduler:
    """Create and configure the APScheduler instance."""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        poller.ingest_cycle,
        "interval",
        minutes=settings.poll_interval_minutes,
        id="ingest_odds",
        name="Fetch, normalize and store odds",
        next_run_time=datetime.now(timezone.utc),  # run immediately on start
        max_instances=1,
        coalesce=True,
    )

    # Retention cleanup at 09:00 UTC, outside North American game windows
    scheduler.add_job(
        poller.cleanup,
        "cron",
        hour=9,
        minute=0,
        id="cleanup",
        name="Delete old odds and games",
    )

    return scheduler
