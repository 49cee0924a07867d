"""Command-line entry points: one-shot ingestion and maintenance tools."""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date, datetime, timedelta, timezone

import aiosqlite
from pydantic import ValidationError

from odds_ingest.api.odds_client import SportsGameOddsClient, resolve_league_id
from odds_ingest.config import SUPPORTED_LEAGUES, Settings
from odds_ingest.db.migrations import init_db
from odds_ingest.db.repository import OddsRepository
from odds_ingest.engine.pipeline import IngestionPipeline
from odds_ingest.main import configure_logging


def parse_leagues(value: str) -> list[str]:
    """'ALL' or a comma-separated list of league codes."""
    if value.strip().upper() == "ALL":
        return list(SUPPORTED_LEAGUES)
    leagues = [lg.strip().upper() for lg in value.split(",") if lg.strip()]
    if not leagues:
        raise argparse.ArgumentTypeError("no leagues given")
    for league in leagues:
        try:
            resolve_league_id(league)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(str(exc)) from None
    return leagues


def _load_settings() -> Settings | None:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return None


async def run_ingest(
    leagues: list[str], start: date, end: date, insert: bool, verbose: bool
) -> int:
    settings = _load_settings()
    if settings is None:
        return 1
    configure_logging("DEBUG" if verbose else settings.log_level)

    db: aiosqlite.Connection | None = None
    repo: OddsRepository | None = None
    if insert:
        try:
            db = await init_db(settings.db_path)
        except (aiosqlite.Error, OSError) as exc:
            print(f"Database error: {exc}", file=sys.stderr)
            return 1
        repo = OddsRepository(db, lock_buffer_minutes=settings.odds_lock_buffer_minutes)

    client = SportsGameOddsClient(settings)
    pipeline = IngestionPipeline(client, repo, test_mode=not insert, verbose=verbose)
    try:
        result = await pipeline.run(leagues, start, end)
    finally:
        await client.close()
        if db is not None:
            await db.close()

    if result.success:
        print(
            f"SUCCESS: {result.events_processed} events processed "
            f"in {result.duration:.2f}s ({'insert' if insert else 'test'} mode)"
        )
        return 0
    print(f"FAILED after {result.duration:.2f}s: {result.error}", file=sys.stderr)
    return 1


async def run_cleanup(days: int | None) -> int:
    settings = _load_settings()
    if settings is None:
        return 1
    configure_logging(settings.log_level)

    db = await init_db(settings.db_path)
    try:
        repo = OddsRepository(db)
        counts = await repo.cleanup_old_data(days if days is not None else settings.cleanup_days)
    finally:
        await db.close()

    print(
        f"Deleted {counts['odds']} odds, {counts['open_odds']} opening odds, "
        f"{counts['games']} games."
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    today = datetime.now(timezone.utc).date()
    parser = argparse.ArgumentParser(
        prog="odds-ingest",
        description="Fetch SportsGameOdds events, normalize them and store games and odds.",
        epilog=(
            "examples:\n"
            "  odds-ingest --test --league ALL\n"
            "  odds-ingest --insert --league MLB,NBA,NFL --start 2025-08-15 --end 2025-08-16\n"
            "  odds-ingest --insert --league MLB --verbose"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--test", "-t", dest="insert", action="store_false",
        help="Normalize and log only, no database writes (default)",
    )
    mode.add_argument(
        "--insert", "-i", dest="insert", action="store_true",
        help="Save games and odds to the database",
    )
    parser.set_defaults(insert=False)
    parser.add_argument(
        "--league", "-l", type=parse_leagues, default=list(SUPPORTED_LEAGUES),
        help="Leagues to fetch: ALL or a comma list such as MLB,NBA,NFL (default: ALL)",
    )
    parser.add_argument(
        "--start", "-s", type=date.fromisoformat, default=today,
        help="Start date YYYY-MM-DD (default: today, UTC)",
    )
    parser.add_argument(
        "--end", "-e", type=date.fromisoformat, default=today + timedelta(days=1),
        help="End date YYYY-MM-DD (default: tomorrow, UTC)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser


def cli(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    sys.exit(asyncio.run(run_ingest(args.league, args.start, args.end, args.insert, args.verbose)))


def tools(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="odds-ingest-tools", description="Odds Ingest maintenance tools")
    sub = parser.add_subparsers(dest="command")

    cl = sub.add_parser("cleanup", help="Delete odds and games older than N days")
    cl.add_argument("--days", type=int, default=None, help="Retention in days (default: CLEANUP_DAYS)")

    args = parser.parse_args(argv)

    if args.command == "cleanup":
        sys.exit(asyncio.run(run_cleanup(args.days)))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    cli()
