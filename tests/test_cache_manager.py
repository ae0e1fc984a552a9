"""
Tests for the cache manager and its backing stores.

Run with: pytest tests/test_cache_manager.py -v
"""

import sys
import threading
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from depscope.cache import CacheManager, JsonFileStore, MemoryStore
from depscope.errors import ConfigurationError


class FakeClock:
    """Manually advanced time source (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float):
        self.now += ms / 1000


class FailingStore:
    def get(self, key):
        raise OSError("disk gone")

    def set(self, key, record):
        raise OSError("disk gone")

    def delete(self, key):
        raise OSError("disk gone")


class TestLRU:
    def test_least_recently_used_is_evicted(self):
        cache = CacheManager(max_size=2)
        cache.set("key1", "v1")
        cache.set("key2", "v2")
        cache.set("key3", "v3")

        assert cache.get("key1") is None
        assert cache.get("key2") == "v2"
        assert cache.get("key3") == "v3"
        assert cache.stats()["evictions"] == 1

    def test_get_refreshes_recency(self):
        cache = CacheManager(max_size=2)
        cache.set("key1", "v1")
        cache.set("key2", "v2")
        cache.get("key1")
        cache.set("key3", "v3")

        assert cache.has("key1")
        assert not cache.has("key2")
        assert cache.keys() == ["key1", "key3"]

    def test_overwrite_does_not_evict(self):
        cache = CacheManager(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)

        assert len(cache) == 2
        assert cache.get("a") == 10
        assert cache.stats()["evictions"] == 0

    def test_shrinking_max_size_evicts(self):
        cache = CacheManager(max_size=5)
        for i in range(5):
            cache.set(f"k{i}", i)

        cache.update_options(max_size=2)

        assert cache.keys() == ["k3", "k4"]
        assert cache.stats()["evictions"] == 3


class TestStats:
    def test_hit_rate(self):
        cache = CacheManager()
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("missing")

        stats = cache.stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["hit_rate"] == pytest.approx(2 / 3)

    def test_hit_rate_is_zero_without_requests(self):
        assert CacheManager().stats()["hit_rate"] == 0.0

    def test_reset_stats_keeps_entries(self):
        cache = CacheManager()
        cache.set("a", 1)
        cache.get("a")
        cache.reset_stats()

        assert cache.stats()["hits"] == 0
        assert cache.get("a") == 1

    def test_weight_is_summed(self):
        cache = CacheManager()
        cache.set("a", 1, weight=3)
        cache.set("b", 2)
        assert cache.stats()["weight"] == 4

    def test_clear_resets_everything(self):
        cache = CacheManager()
        cache.set("a", 1)
        cache.get("a")
        cache.clear()

        stats = cache.stats()
        assert stats["size"] == 0
        assert stats["hits"] == 0


class TestExpiry:
    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = CacheManager(ttl=1000, clock=clock)
        cache.set("a", 1)

        clock.advance_ms(500)
        assert cache.get("a") == 1

        clock.advance_ms(600)
        assert cache.get("a") is None
        assert cache.stats()["expirations"] == 1

    def test_per_entry_ttl_overrides_default(self):
        clock = FakeClock()
        cache = CacheManager(ttl=0, clock=clock)
        cache.set("short", 1, ttl=100)
        cache.set("forever", 2)

        clock.advance_ms(10_000_000)
        assert cache.get("short") is None
        assert cache.get("forever") == 2

    def test_cleanup_removes_expired(self):
        clock = FakeClock()
        # Long purge interval so only cleanup() removes anything
        cache = CacheManager(ttl=100, purge_interval_ms=10**9, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        clock.advance_ms(200)
        cache.set("c", 3)

        assert cache.cleanup() == 2
        assert cache.keys() == ["c"]

    def test_purge_is_bounded(self):
        clock = FakeClock()
        cache = CacheManager(ttl=100, purge_interval_ms=50, purge_batch=2, clock=clock)
        for i in range(5):
            cache.set(f"k{i}", i)

        clock.advance_ms(200)
        cache.get("unrelated")

        # One purge pass removes at most purge_batch entries
        assert len(cache) == 3

    def test_purge_finds_per_entry_ttl_without_default_ttl(self):
        clock = FakeClock()
        cache = CacheManager(ttl=0, purge_interval_ms=50, clock=clock)
        cache.set("short", 1, ttl=100)
        cache.set("short", 2, ttl=100)
        cache.set("forever", 3)

        clock.advance_ms(200)
        cache.get("forever")

        assert cache.keys() == ["forever"]
        assert cache.stats()["expirations"] == 1

    def test_overwrite_without_ttl_never_expires(self):
        clock = FakeClock()
        cache = CacheManager(ttl=0, purge_interval_ms=50, clock=clock)
        cache.set("a", 1, ttl=100)
        cache.set("a", 2)

        clock.advance_ms(10_000)
        cache.get("other")

        assert cache.get("a") == 2
        assert cache.stats()["expirations"] == 0


class TestStaleEntries:
    def test_rejected_entry_is_a_miss(self):
        cache = CacheManager()
        cache.set("file:a.py", {"fingerprint": "old", "result": 1})

        value = cache.get("file:a.py", validate=lambda v: v["fingerprint"] == "new")

        assert value is None
        stats = cache.stats()
        assert stats["hits"] == 0
        assert stats["misses"] == 1
        assert stats["stale"] == 1
        assert "file:a.py" not in cache

    def test_accepted_entry_is_a_hit(self):
        cache = CacheManager()
        cache.set("file:a.py", {"fingerprint": "same", "result": 1})

        value = cache.get("file:a.py", validate=lambda v: v["fingerprint"] == "same")

        assert value == {"fingerprint": "same", "result": 1}
        assert cache.stats()["hits"] == 1

    def test_rejected_entry_is_dropped_from_store(self):
        store = MemoryStore()
        cache = CacheManager(store=store)
        cache.set("k", {"fingerprint": "old"})

        assert cache.get("k", validate=lambda v: False) is None
        assert store.get("k") is None


class TestCopies:
    def test_caller_mutation_is_not_visible(self):
        cache = CacheManager()
        value = {"items": [1, 2]}
        cache.set("a", value)
        value["items"].append(3)

        assert cache.get("a") == {"items": [1, 2]}

    def test_readers_get_private_copies(self):
        cache = CacheManager()
        cache.set("a", {"items": [1]})
        first = cache.get("a")
        first["items"].append(2)

        assert cache.get("a") == {"items": [1]}


class TestDisabled:
    def test_disabled_cache_always_misses(self):
        cache = CacheManager(enabled=False)
        cache.set("a", 1)

        assert cache.get("a") is None
        assert not cache.has("a")
        assert cache.stats()["misses"] == 0


class TestValidation:
    @pytest.mark.parametrize("max_size", [0, -1, "10"])
    def test_invalid_max_size(self, max_size):
        with pytest.raises(ConfigurationError):
            CacheManager(max_size=max_size)

    def test_negative_ttl(self):
        with pytest.raises(ConfigurationError):
            CacheManager(ttl=-5)


class TestInvalidation:
    def test_invalidate_files_matches_key_suffix(self):
        cache = CacheManager()
        cache.set("file:src/a.py", 1)
        cache.set("file:src/b.py", 2)
        cache.set("src/a.py", 3)

        removed = cache.invalidate_files(["src/a.py"])

        assert removed == 2
        assert cache.keys() == ["file:src/b.py"]

    def test_delete(self):
        cache = CacheManager()
        cache.set("a", 1)
        assert cache.delete("a") is True
        assert cache.delete("a") is False


class TestBackingStore:
    def test_store_hit_is_readmitted(self):
        store = MemoryStore()
        CacheManager(store=store).set("a", {"x": 1})

        fresh = CacheManager(store=store)
        assert fresh.get("a") == {"x": 1}
        assert "a" in fresh.keys()
        assert fresh.stats()["hits"] == 1

    def test_expired_store_record_is_a_miss(self):
        clock = FakeClock()
        store = MemoryStore()
        CacheManager(ttl=100, store=store, clock=clock).set("a", 1)

        clock.advance_ms(500)
        fresh = CacheManager(ttl=100, store=store, clock=clock)
        assert fresh.get("a") is None
        assert store.get("a") is None

    def test_store_failures_degrade_to_miss(self):
        cache = CacheManager(store=FailingStore())
        cache.set("a", 1)

        assert cache.get("a") == 1  # memory still works
        assert cache.get("b") is None
        assert cache.stats()["store_errors"] >= 2

    def test_json_file_store_round_trip(self, tmp_path):
        store = JsonFileStore(tmp_path / "cache")
        CacheManager(store=store).set("file:src/app.py", {"symbols": ["main"]})

        fresh = CacheManager(store=JsonFileStore(tmp_path / "cache"))
        assert fresh.get("file:src/app.py") == {"symbols": ["main"]}

        store.clear()
        assert list((tmp_path / "cache").iterdir()) == []


class TestConcurrency:
    def test_parallel_writers_respect_capacity(self):
        cache = CacheManager(max_size=50)

        def worker(n):
            for i in range(200):
                cache.set(f"{n}-{i}", i)
                cache.get(f"{n}-{i // 2}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stats = cache.stats()
        assert stats["size"] == 50
        assert stats["evictions"] == 8 * 200 - 50
