"""Tests for the processed-message memory."""

import pytest

from mailguard.dedup import DedupCache, MemoryStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestDedupCache:
    """Test the seen/forget/reset cycle."""

    def test_seen_twice(self):
        cache = DedupCache()
        assert (cache.seen("id1"), cache.seen("id1")) == (False, True)

    def test_reset(self):
        cache = DedupCache()
        cache.seen("id1")
        cache.reset()
        assert cache.seen("id1") is False

    def test_forget_single_id(self):
        cache = DedupCache()
        cache.seen("id1")
        cache.seen("id2")
        cache.forget("id1")
        assert cache.seen("id1") is False
        assert cache.seen("id2") is True


class TestMemoryStore:
    """Test expiration and capacity."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    def test_entries_expire(self, clock):
        store = MemoryStore(expiration=60, clock=clock)
        store.set("a", "seen")
        clock.now += 61
        assert store.get("a") is None

    def test_reads_extend_expiry(self, clock):
        store = MemoryStore(expiration=60, clock=clock)
        store.set("a", "seen")
        clock.now += 50
        assert store.get("a") == "seen"
        clock.now += 50
        assert store.get("a") == "seen"

    def test_capacity_drops_least_recently_used(self, clock):
        store = MemoryStore(capacity=2, clock=clock)
        store.set("a", "1")
        store.set("b", "2")
        store.get("a")
        store.set("c", "3")

        assert store.get("b") is None
        assert store.get("a") == "1"
        assert store.get("c") == "3"
        assert len(store) == 2

    def test_compaction_drops_all_expired_entries(self, clock):
        store = MemoryStore(capacity=2, expiration=60, clock=clock)
        store.set("a", "1")
        store.set("b", "2")
        clock.now += 61
        store.set("c", "3")

        assert len(store) == 1
        assert store.get("c") == "3"

    def test_evict(self, clock):
        store = MemoryStore(clock=clock)
        store.set("a", "1")
        store.evict("a")
        store.evict("missing")
        assert store.get("a") is None

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            MemoryStore(capacity=0)

    def test_cache_uses_injected_store(self, clock):
        store = MemoryStore(expiration=10, clock=clock)
        cache = DedupCache(store)
        cache.seen("id1")
        clock.now += 11
        assert cache.seen("id1") is False
