"""Tests for the rate-limit fallback cache."""

from __future__ import annotations

from datetime import date

from odds_ingest.cache import EventCache


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_key_ignores_league_order_and_case():
    a = EventCache.key(["nba", "MLB"], date(2025, 8, 15), date(2025, 8, 16))
    b = EventCache.key(["MLB", "NBA"], "2025-08-15", "2025-08-16")
    assert a == b


def test_get_returns_copy_within_ttl():
    clock = _Clock()
    cache = EventCache(ttl_seconds=300, clock=clock)
    key = EventCache.key(["MLB"], "2025-08-15", "2025-08-16")
    cache.put(key, [{"eventID": "e1"}])

    clock.now += 299
    events = cache.get(key)
    assert events == [{"eventID": "e1"}]

    events.append({"eventID": "e2"})
    assert len(cache.get(key)) == 1


def test_expired_entry_is_evicted():
    clock = _Clock()
    cache = EventCache(ttl_seconds=300, clock=clock)
    key = EventCache.key(["MLB"], "2025-08-15", "2025-08-16")
    cache.put(key, [{"eventID": "e1"}])

    clock.now += 301
    assert cache.get(key) is None
    assert len(cache) == 0


def test_miss_and_clear():
    cache = EventCache()
    key = EventCache.key(["NFL"], "a", "b")
    assert cache.get(key) is None

    cache.put(key, [])
    assert len(cache) == 1
    cache.clear()
    assert len(cache) == 0
