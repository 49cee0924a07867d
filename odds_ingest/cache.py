"""In-memory cache of fetched events, used when the provider rate-limits us."""

from __future__ import annotations

import time
from collections.abc import Callable

from odds_ingest.api.schemas import RawEvent

CacheKey = tuple[tuple[str, ...], str, str]


class EventCache:
    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[CacheKey, tuple[float, list[RawEvent]]] = {}

    @staticmethod
    def key(leagues: list[str], starts_after: object, starts_before: object) -> CacheKey:
        return (tuple(sorted(lg.upper() for lg in leagues)), str(starts_after), str(starts_before))

    def get(self, key: CacheKey) -> list[RawEvent] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, events = entry
        if self._clock() - stored_at > self._ttl:
            del self._entries[key]
            return None
        return list(events)

    def put(self, key: CacheKey, events: list[RawEvent]) -> None:
        self._entries[key] = (self._clock(), list(events))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
