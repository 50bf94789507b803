"""
Unit tests for TtlCache.
"""

import pytest

from verum_index import TtlCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TtlCache(default_ttl=30, clock=clock)


class TestExpiry:
    """Entries live for their TTL only."""

    def test_hit_before_expiry(self, cache, clock):
        """A fresh entry is returned."""
        cache.set("feed:global", ["item"])
        clock.now += 29.9

        assert cache.get("feed:global") == ["item"]
        assert "feed:global" in cache

    def test_miss_at_expiry(self, cache, clock):
        """An entry is gone once its TTL has elapsed."""
        cache.set("feed:global", ["item"])
        clock.now += 30

        assert cache.get("feed:global") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self, cache, clock):
        """An explicit TTL overrides the default."""
        cache.set("short", 1, ttl=5)
        cache.set("long", 2)
        clock.now += 10

        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_purge_expired(self, cache, clock):
        """Purging drops only expired entries."""
        cache.set("a", 1, ttl=5)
        cache.set("b", 2, ttl=50)
        clock.now += 10

        assert cache.purge_expired() == 1
        assert len(cache) == 1


class TestInvalidation:
    """Explicit removal."""

    def test_invalidate_single_key(self, cache):
        """invalidate reports whether the key existed."""
        cache.set("profile:x", {})

        assert cache.invalidate("profile:x") is True
        assert cache.invalidate("profile:x") is False

    def test_invalidate_prefix(self, cache):
        """Only keys with the prefix are removed."""
        cache.set("feed:global", 1)
        cache.set("feed:user:x", 2)
        cache.set("profile:x", 3)

        assert cache.invalidate_prefix("feed:") == 2
        assert cache.get("profile:x") == 3

    def test_clear(self, cache):
        """clear empties the cache."""
        cache.set("a", 1)
        cache.clear()

        assert len(cache) == 0


class TestDisabled:
    """A disabled cache never stores."""

    def test_disabled_cache_always_misses(self, clock):
        """set is a no-op when disabled."""
        cache = TtlCache(enabled=False, clock=clock)
        cache.set("a", 1)

        assert cache.get("a") is None
        assert len(cache) == 0
