"""Unit tests for llmsforge.cache."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from llmsforge.cache import LRUCache, normalize_url_key

if TYPE_CHECKING:
    from tests.conftest import FakeClock

# ---------------------------------------------------------------------------
# normalize_url_key
# ---------------------------------------------------------------------------


class TestNormalizeUrlKey:
    def test_host_case_and_trailing_slash_collide(self) -> None:
        assert normalize_url_key("HTTPS://X.com/a/") == normalize_url_key("https://x.com/a")

    def test_default_port_dropped(self) -> None:
        assert normalize_url_key("https://example.com:443/docs") == "https://example.com/docs"

    def test_non_default_port_kept(self) -> None:
        assert normalize_url_key("http://example.com:8080/docs/") == "http://example.com:8080/docs"

    def test_query_and_fragment_dropped(self) -> None:
        assert normalize_url_key("https://example.com/docs?page=2#intro") == "https://example.com/docs"

    def test_empty_path_becomes_root(self) -> None:
        assert normalize_url_key("https://example.com") == "https://example.com/"
        assert normalize_url_key("https://example.com/") == "https://example.com/"

    def test_unparseable_falls_back_to_lowercase(self) -> None:
        assert normalize_url_key("  Not A URL/ ") == "not a url"


# ---------------------------------------------------------------------------
# get / set
# ---------------------------------------------------------------------------


def _cache(clock: FakeClock, *, ttl: float = 300.0, max_entries: int = 100) -> LRUCache[str]:
    return LRUCache(ttl=ttl, max_entries=max_entries, clock=clock)


class TestGetSet:
    def test_miss_then_hit(self, clock: FakeClock) -> None:
        cache = _cache(clock)
        assert cache.get("https://example.com/a") is None

        cache.set("https://example.com/a", "value")
        assert cache.get("https://example.com/a") == "value"

        stats = cache.get_stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)

    def test_normalized_keys_share_an_entry(self, clock: FakeClock) -> None:
        cache = _cache(clock)
        cache.set("HTTPS://Example.com/docs/", "value")
        assert cache.get("https://example.com/docs") == "value"

    def test_set_replaces_existing_value(self, clock: FakeClock) -> None:
        cache = _cache(clock, max_entries=2)
        cache.set("https://a.com", "one")
        cache.set("https://a.com", "two")
        assert cache.get("https://a.com") == "two"
        assert cache.get_stats().size == 1
        assert cache.get_stats().evictions == 0

    def test_rejects_zero_capacity(self) -> None:
        with pytest.raises(ValueError):
            LRUCache(max_entries=0)


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


class TestExpiry:
    def test_entry_live_at_exactly_ttl(self, clock: FakeClock) -> None:
        cache = _cache(clock, ttl=300)
        cache.set("https://a.com", "value")
        clock.advance(300)
        assert cache.get("https://a.com") == "value"

    def test_expired_entry_is_a_miss_and_removed(self, clock: FakeClock) -> None:
        cache = _cache(clock, ttl=300)
        cache.set("https://a.com", "value")
        clock.advance(301)

        assert cache.get("https://a.com") is None
        stats = cache.get_stats()
        assert stats.misses == 1
        assert stats.hits == 0
        assert stats.size == 0

    def test_per_entry_ttl_override(self, clock: FakeClock) -> None:
        cache = _cache(clock, ttl=300)
        cache.set("https://a.com", "short", ttl=10)
        clock.advance(11)
        assert cache.get("https://a.com") is None

    def test_ttl_remaining_rounds_up(self, clock: FakeClock) -> None:
        cache = _cache(clock, ttl=300)
        cache.set("https://a.com", "value")
        clock.advance(10.5)
        assert cache.get_ttl_remaining("https://a.com") == 290

    def test_ttl_remaining_absent_or_expired(self, clock: FakeClock) -> None:
        cache = _cache(clock, ttl=300)
        assert cache.get_ttl_remaining("https://a.com") == -1
        cache.set("https://a.com", "value")
        clock.advance(400)
        assert cache.get_ttl_remaining("https://a.com") == -1

    def test_prune_removes_only_expired(self, clock: FakeClock) -> None:
        cache = _cache(clock)
        cache.set("https://a.com", "a", ttl=10)
        cache.set("https://b.com", "b", ttl=100)
        clock.advance(50)

        assert cache.prune() == 1
        assert cache.keys() == ["https://b.com/"]


# ---------------------------------------------------------------------------
# LRU eviction
# ---------------------------------------------------------------------------


class TestEviction:
    def test_least_recently_used_evicted(self, clock: FakeClock) -> None:
        cache = _cache(clock, max_entries=2)
        cache.set("https://a.com", "a")
        cache.set("https://b.com", "b")
        cache.get("https://a.com")  # a becomes most recently used
        cache.set("https://c.com", "c")

        assert cache.get("https://b.com") is None
        assert cache.get("https://a.com") == "a"
        assert cache.get("https://c.com") == "c"
        assert cache.get_stats().evictions == 1

    def test_size_never_exceeds_capacity(self, clock: FakeClock) -> None:
        cache = _cache(clock, max_entries=3)
        for i in range(10):
            cache.set(f"https://site{i}.com", str(i))
            assert cache.get_stats().size <= 3
        assert cache.get_stats().evictions == 7

    def test_expired_entries_dropped_before_live_eviction(self, clock: FakeClock) -> None:
        cache = _cache(clock, max_entries=2)
        cache.set("https://a.com", "a", ttl=10)
        cache.set("https://b.com", "b", ttl=100)
        clock.advance(20)
        cache.set("https://c.com", "c")

        assert cache.keys() == ["https://b.com/", "https://c.com/"]
        assert cache.get_stats().evictions == 0

    def test_has_does_not_reorder_or_count(self, clock: FakeClock) -> None:
        cache = _cache(clock, max_entries=2)
        cache.set("https://a.com", "a")
        cache.set("https://b.com", "b")

        assert cache.has("https://a.com") is True
        cache.set("https://c.com", "c")

        assert cache.has("https://a.com") is False
        stats = cache.get_stats()
        assert (stats.hits, stats.misses) == (0, 0)


# ---------------------------------------------------------------------------
# Misc operations
# ---------------------------------------------------------------------------


class TestMisc:
    def test_delete_and_clear(self, clock: FakeClock) -> None:
        cache = _cache(clock)
        cache.set("https://a.com", "a")
        cache.set("https://b.com", "b")

        assert cache.delete("https://a.com") is True
        assert cache.delete("https://a.com") is False
        cache.clear()
        assert cache.get_stats().size == 0
        assert cache.keys() == []

    def test_stats_are_a_snapshot(self, clock: FakeClock) -> None:
        cache = _cache(clock)
        snapshot = cache.get_stats()
        snapshot.hits = 99
        assert cache.get_stats().hits == 0

    def test_internal_errors_reported_as_absence(self) -> None:
        def broken_clock() -> float:
            raise RuntimeError("clock failure")

        cache: LRUCache[str] = LRUCache(clock=broken_clock)
        cache.set("https://a.com", "a")  # must not raise
        assert cache.get("https://a.com") is None
        assert cache.get_ttl_remaining("https://a.com") == -1

    def test_prune_survives_clock_failure(self, clock: FakeClock) -> None:
        healthy = True

        def flaky_clock() -> float:
            if not healthy:
                raise RuntimeError("clock failure")
            return clock()

        cache: LRUCache[str] = LRUCache(clock=flaky_clock)
        cache.set("https://a.com", "a")
        healthy = False

        assert cache.prune() == 0
        assert cache.keys() == ["https://a.com/"]
        assert cache.get_stats().size == 1
