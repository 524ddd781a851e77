"""Tests for the TTL response cache."""

import pytest

from http_lifecycle.cache.response_cache import ResponseCache
from http_lifecycle.models.request import RequestIdentity


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def identity(url="/data", params=None):
    return RequestIdentity.from_parts("GET", url, params)


@pytest.mark.unit
class TestResponseCache:
    """Test cache reads, expiry and sweeping."""

    def test_hit_within_ttl(self):
        clock = Clock()
        cache = ResponseCache(ttl=10, clock=clock)
        cache.set(identity(), {"v": 1})
        clock.now += 9.9
        assert cache.get(identity()) == {"v": 1}

    def test_miss_at_and_after_ttl(self):
        clock = Clock()
        cache = ResponseCache(ttl=10, sweep_interval=1000, clock=clock)
        cache.set(identity(), {"v": 1})
        clock.now += 10
        assert cache.get(identity()) is None
        assert len(cache) == 0

    def test_expiry_is_enforced_without_a_sweep(self):
        """An expired entry is never returned even if it was not swept yet."""
        clock = Clock()
        cache = ResponseCache(ttl=5, sweep_interval=10_000, clock=clock)
        cache.set(identity("/a"), "a")
        cache.set(identity("/b"), "b")
        clock.now += 6
        assert cache.get(identity("/a")) is None
        # /b was not read, so it is still physically present
        assert len(cache) == 1

    def test_lazy_sweep_runs_after_interval(self):
        clock = Clock()
        cache = ResponseCache(ttl=5, sweep_interval=60, clock=clock)
        cache.set(identity("/a"), "a")
        cache.set(identity("/b"), "b")
        clock.now += 61
        cache.set(identity("/c"), "c")
        assert len(cache) == 1
        assert cache.get(identity("/c")) == "c"

    def test_sweep_returns_removed_count(self):
        clock = Clock()
        cache = ResponseCache(ttl=5, sweep_interval=10_000, clock=clock)
        cache.set(identity("/a"), "a")
        clock.now += 3
        cache.set(identity("/b"), "b")
        clock.now += 3
        assert cache.sweep() == 1
        assert cache.get(identity("/b")) == "b"

    def test_identity_includes_params(self):
        cache = ResponseCache(ttl=10, clock=Clock())
        cache.set(identity(params={"key": "value"}), "x")
        assert cache.get(identity(params={"key": "other"})) is None
        assert cache.get(identity(params={"key": "value"})) == "x"

    def test_disabled_cache_never_stores(self):
        cache = ResponseCache(ttl=10, enabled=False, clock=Clock())
        cache.set(identity(), "x")
        assert cache.get(identity()) is None
        assert len(cache) == 0

    def test_set_replaces_and_restarts_ttl(self):
        clock = Clock()
        cache = ResponseCache(ttl=10, clock=clock)
        cache.set(identity(), "old")
        clock.now += 8
        cache.set(identity(), "new")
        clock.now += 8
        assert cache.get(identity()) == "new"

    def test_invalidate_and_clear(self):
        cache = ResponseCache(ttl=10, clock=Clock())
        cache.set(identity("/a"), "a")
        cache.set(identity("/b"), "b")
        assert cache.invalidate(identity("/a")) is True
        assert cache.invalidate(identity("/a")) is False
        assert cache.clear() == 1
        assert len(cache) == 0

    def test_max_entries_evicts_oldest(self):
        clock = Clock()
        cache = ResponseCache(ttl=100, max_entries=2, clock=clock)
        cache.set(identity("/a"), "a")
        clock.now += 1
        cache.set(identity("/b"), "b")
        clock.now += 1
        cache.set(identity("/c"), "c")
        assert cache.get(identity("/a")) is None
        assert cache.get(identity("/b")) == "b"
        assert cache.get(identity("/c")) == "c"

    def test_stats_count_hits_and_misses(self):
        cache = ResponseCache(ttl=10, clock=Clock())
        cache.get(identity())
        cache.set(identity(), "x")
        cache.get(identity())
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1
        assert stats["enabled"] is True
