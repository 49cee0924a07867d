"""Async client for the SportsGameOdds v2 events API."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any

import httpx
import structlog

from odds_ingest.api.schemas import EventsPage, RawEvent
from odds_ingest.config import Settings

log = structlog.get_logger()

# CLI league code -> provider leagueID
LEAGUE_IDS: dict[str, str] = {
    "MLB": "MLB",
    "NBA": "NBA",
    "NFL": "NFL",
    "MLS": "MLS",
    "NHL": "NHL",
    "NCAAF": "NCAAF",
    "NCAAB": "NCAAB",
    "UCL": "UEFA_CHAMPIONS_LEAGUE",
}


class OddsApiError(Exception):
    """Base error for provider failures."""


class RateLimitError(OddsApiError):
    """Provider answered 429; callers should fall back to stored data."""


class UnsupportedLeagueError(OddsApiError, ValueError):
    pass


def _iso(value: date | str) -> str:
    return value.isoformat() if isinstance(value, date) else str(value)


def resolve_league_id(league: str) -> str:
    try:
        return LEAGUE_IDS[league.strip().upper()]
    except KeyError:
        raise UnsupportedLeagueError(
            f"Unsupported league: {league}. Supported: {', '.join(LEAGUE_IDS)}"
        ) from None


class SportsGameOddsClient:
    MAX_ATTEMPTS = 3
    MAX_PAGES = 100

    def __init__(
        self,
        settings: Settings,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=settings.odds_api_base_url,
            timeout=30.0,
            headers={"X-Api-Key": settings.sportsgameodds_api_key},
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ── Public methods ──────────────────────────────────────────────

    async def fetch_events(
        self, league_id: str, starts_after: date | str, starts_before: date | str
    ) -> list[RawEvent]:
        """Fetch every page of events for ``league_id`` in the date window.

        Stops on a missing cursor, an empty or unsuccessful page, the page
        ceiling or the event ceiling. 5xx (after retries) and 4xx responses
        end pagination early and return what was collected so far; 429
        raises RateLimitError.
        """
        events: list[RawEvent] = []
        cursor: str | None = None

        for page in range(1, self.MAX_PAGES + 1):
            params: dict[str, Any] = {
                "leagueID": league_id,
                "type": "match",
                "startsAfter": _iso(starts_after),
                "startsBefore": _iso(starts_before),
                "limit": self._settings.odds_api_page_limit,
            }
            if cursor:
                params["cursor"] = cursor

            try:
                resp = await self._get_page(params)
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status >= 500:
                    log.error(
                        "events_fetch_aborted_server_error",
                        league=league_id, page=page, status=status, collected=len(events),
                    )
                else:
                    log.warning(
                        "events_fetch_aborted_client_error",
                        league=league_id, page=page, status=status, collected=len(events),
                    )
                break

            body = EventsPage.model_validate(resp.json())
            if not body.success:
                log.warning("events_page_unsuccessful", league=league_id, page=page)
                break
            if not body.data:
                log.info("events_page_empty", league=league_id, page=page)
                break

            events.extend(body.data)
            log.info(
                "events_page_fetched",
                league=league_id, page=page, count=len(body.data), total=len(events),
            )

            if len(events) >= self._settings.odds_api_max_events:
                log.warning(
                    "events_limit_reached",
                    league=league_id, limit=self._settings.odds_api_max_events,
                )
                break

            cursor = body.next_cursor
            if not cursor:
                break
        else:
            log.warning("events_page_limit_reached", league=league_id, pages=self.MAX_PAGES)

        return events

    async def fetch_league(
        self, league: str, starts_after: date | str, starts_before: date | str
    ) -> list[RawEvent]:
        return await self.fetch_events(resolve_league_id(league), starts_after, starts_before)

    async def fetch_multiple_leagues(
        self, leagues: list[str], starts_after: date | str, starts_before: date | str
    ) -> list[RawEvent]:
        """Fetch several leagues with one comma-joined leagueID query."""
        league_ids = ",".join(resolve_league_id(lg) for lg in leagues)
        log.info("fetching_multiple_leagues", leagues=league_ids)
        return await self.fetch_events(league_ids, starts_after, starts_before)

    # ── Internal ────────────────────────────────────────────────────

    async def _get_page(self, params: dict[str, Any]) -> httpx.Response:
        """GET one page, retrying transport failures and 5xx with backoff."""
        for attempt in range(self.MAX_ATTEMPTS):
            try:
                resp = await self._client.get("/events", params=params)
                if resp.status_code >= 500:
                    resp.raise_for_status()
            except (httpx.TransportError, httpx.HTTPStatusError) as exc:
                if attempt == self.MAX_ATTEMPTS - 1:
                    log.error("events_request_failed", attempts=attempt + 1, error=str(exc))
                    raise
                delay = self._settings.odds_api_retry_base_delay * (2 ** attempt)
                log.warning(
                    "events_request_retry", attempt=attempt + 1, delay=delay, error=str(exc)
                )
                await self._sleep(delay)
                continue

            if resp.status_code == 429:
                log.warning("events_rate_limited", league=params.get("leagueID"))
                raise RateLimitError("SportsGameOdds rate limit exceeded (429)")
            resp.raise_for_status()
            return resp

        raise OddsApiError("no request attempted")
