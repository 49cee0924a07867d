"""Scheduled ingestion service and shared logging setup."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import structlog

from odds_ingest.alerts.discord import DiscordAlerter
from odds_ingest.api.odds_client import SportsGameOddsClient
from odds_ingest.cache import EventCache
from odds_ingest.config import Settings
from odds_ingest.db.migrations import init_db
from odds_ingest.db.repository import OddsRepository
from odds_ingest.polling.scheduler import Poller, create_scheduler

__version__ = "0.1.0"


def configure_logging(level: str) -> None:
    """Structured logs on stderr; stdout stays free for command output."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    log = structlog.get_logger()

    def handle_shutdown(*_: object) -> None:
        log.info("shutdown_requested")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_shutdown)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler for SIGTERM
            pass


async def run() -> int:
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings.log_level)

    log = structlog.get_logger()
    log.info(
        "starting",
        version=__version__,
        leagues=settings.leagues,
        lookahead_days=settings.lookahead_days,
    )

    db = await init_db(settings.db_path)
    repo = OddsRepository(db, lock_buffer_minutes=settings.odds_lock_buffer_minutes)
    if not await repo.test_connection():
        log.error("store_unavailable", path=settings.db_path)
        await db.close()
        return 1

    client = SportsGameOddsClient(settings)
    poller = Poller(
        settings,
        client,
        repo,
        EventCache(ttl_seconds=settings.cache_ttl_seconds),
        DiscordAlerter(settings),
    )
    scheduler = create_scheduler(poller, settings)

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    scheduler.start()
    log.info("scheduler_started", interval_minutes=settings.poll_interval_minutes)

    try:
        await stop_event.wait()
    finally:
        scheduler.shutdown(wait=False)
        await client.close()
        await db.close()
        log.info("shutdown_complete")
    return 0


def main() -> None:
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
