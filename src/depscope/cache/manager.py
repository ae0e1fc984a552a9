"""
Cache Manager - bounded memoization of expensive per-file analysis.

Features:
- True LRU eviction over an entry-count cap
- Per-cache and per-entry TTL (milliseconds)
- Bounded proactive purge of expired entries
- Hit/miss/eviction accounting
- Copy-on-write and copy-on-read, so callers never share a mutable value
- Optional pluggable backing store for cross-run persistence

All reads and writes of the index go through one lock; workers in the
project analyzer's pool share a single CacheManager.
"""

import copy
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from depscope.cache.store import CacheStore
from depscope.errors import ConfigurationError
from depscope.utils.logger import logger

DEFAULT_MAX_SIZE = 100
DEFAULT_TTL_MS = 3_600_000  # 1 hour
DEFAULT_PURGE_INTERVAL_MS = 60_000
DEFAULT_PURGE_BATCH = 100


@dataclass
class CacheEntry:
    """Cache entry with metadata. Times come from the manager's clock (seconds)."""
    key: str
    value: Any
    created_at: float
    last_accessed: float
    weight: int = 1
    ttl_ms: Optional[float] = None  # None: use the manager's ttl
    access_count: int = 0


def _validate_options(max_size: Any, ttl: Any) -> None:
    if isinstance(max_size, bool) or not isinstance(max_size, int) or max_size < 1:
        raise ConfigurationError(f"max_size must be a positive integer, got {max_size!r}")
    if ttl is not None and (isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl < 0):
        raise ConfigurationError(f"ttl must be a non-negative number of milliseconds, got {ttl!r}")


class CacheManager:
    """
    Thread-safe LRU cache with TTL and statistics.

    Usage:
        cache = CacheManager(max_size=500, ttl=10 * 60 * 1000)
        cache.set("file:src/app.py", payload)

        payload = cache.get("file:src/app.py")  # None on miss
        cache.stats()  # {"hits": 1, "misses": 0, "hit_rate": 1.0, ...}

    With ``enabled=False`` every ``get`` misses and ``set`` does nothing, so
    callers can switch caching off without touching call sites.
    """

    def __init__(
        self,
        enabled: bool = True,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl: Optional[float] = DEFAULT_TTL_MS,
        store: Optional[CacheStore] = None,
        purge_interval_ms: Optional[float] = None,
        purge_batch: int = DEFAULT_PURGE_BATCH,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            enabled: When False the cache is a no-op
            max_size: Maximum number of entries (>= 1)
            ttl: Entry lifetime in milliseconds; 0 or None disables expiry
            store: Optional backing store for persistence across runs
            purge_interval_ms: Minimum time between proactive purges
            purge_batch: Maximum expired entries removed per purge
            clock: Time source in seconds (injectable for tests)
        """
        _validate_options(max_size, ttl)
        if purge_batch < 1:
            raise ConfigurationError(f"purge_batch must be >= 1, got {purge_batch!r}")

        self.enabled = enabled
        self.max_size = max_size
        self.ttl = ttl or 0
        self.store = store
        self.purge_interval_ms = (
            purge_interval_ms if purge_interval_ms is not None
            else min(self.ttl, DEFAULT_PURGE_INTERVAL_MS) if self.ttl else DEFAULT_PURGE_INTERVAL_MS
        )
        self.purge_batch = purge_batch
        self._clock = clock

        # Recency order: first item is the least recently used
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        # Number of entries with their own ttl
        self._own_ttl_count = 0
        self._lock = threading.RLock()
        self._last_purge = clock()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._store_errors = 0
        self._stale = 0

    # =========================================================================
    # CORE OPERATIONS
    # =========================================================================

    def get(
        self,
        key: str,
        default: Any = None,
        validate: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """
        Get a copy of the cached value.

        Args:
            key: Cache key
            default: Returned on a miss
            validate: Checked against the stored value (do not mutate it). A
                rejected entry is dropped and the lookup counts as a miss.

        Returns:
            A private copy of the value, or ``default``
        """
        if not self.enabled:
            return default

        with self._lock:
            now = self._clock()
            self._maybe_purge(now)

            entry = self._entries.get(key)
            if entry is not None and self._is_expired(entry, now):
                self._remove(key)
                self._expirations += 1
                logger.cache_event("expired", key)
                entry = None

            if entry is None:
                entry = self._load_from_store(key, now)

            if entry is not None and validate is not None and not validate(entry.value):
                self._remove(key)
                self._store_call("delete", key)
                self._stale += 1
                logger.cache_event("stale", key)
                entry = None

            if entry is None:
                self._misses += 1
                return default

            self._entries.move_to_end(key)
            entry.last_accessed = now
            entry.access_count += 1
            self._hits += 1
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl: Optional[float] = None, weight: int = 1) -> None:
        """
        Store a copy of ``value``.

        Args:
            key: Cache key
            value: Value to cache (copied; later mutation by the caller is not seen)
            ttl: Per-entry lifetime in milliseconds, overriding the cache ttl
            weight: Size weight of the entry (reported in stats)
        """
        if not self.enabled:
            return
        if ttl is not None and ttl < 0:
            raise ConfigurationError(f"ttl must be non-negative, got {ttl!r}")

        stored = copy.deepcopy(value)
        with self._lock:
            now = self._clock()
            self._maybe_purge(now)

            entry = CacheEntry(
                key=key,
                value=stored,
                created_at=now,
                last_accessed=now,
                weight=weight,
                ttl_ms=ttl,
            )
            self._admit(entry)
            self._write_to_store(entry)
            logger.cache_event("set", key)

    def has(self, key: str) -> bool:
        """Check for a live entry. Does not touch recency or statistics."""
        if not self.enabled:
            return False

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                return not self._is_expired(entry, self._clock())
            if self.store is None:
                return False
            record = self._store_call("get", key)
            return record is not None and not self._record_expired(record, self._clock())

    def delete(self, key: str) -> bool:
        """Remove an entry. Returns True if it was present in memory."""
        with self._lock:
            existed = self._remove(key)
            self._store_call("delete", key)
            return existed

    def clear(self) -> None:
        """Drop every entry (including the backing store's) and reset statistics."""
        with self._lock:
            self._entries.clear()
            self._own_ttl_count = 0
            self._reset_counters()
            if self.store is not None and hasattr(self.store, "clear"):
                self._store_call("clear")
        logger.info("cache", "Cleared all cache entries")

    def reset_stats(self) -> None:
        with self._lock:
            self._reset_counters()

    def stats(self) -> Dict[str, Any]:
        """Cache statistics. ``hit_rate`` is 0.0 until the first request."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "enabled": self.enabled,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total > 0 else 0.0,
                "size": len(self._entries),
                "max_size": self.max_size,
                "weight": sum(e.weight for e in self._entries.values()),
                "evictions": self._evictions,
                "expirations": self._expirations,
                "stale": self._stale,
                "store_errors": self._store_errors,
            }

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def cleanup(self) -> int:
        """Remove every expired entry now. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for key in expired:
                self._remove(key)
            self._expirations += len(expired)
            self._last_purge = now
            return len(expired)

    def invalidate_files(self, file_paths: Iterable[str]) -> int:
        """
        Drop entries keyed by the given files.

        A key matches a path when it equals the path or ends with ``":<path>"``
        (e.g. ``file:src/app.py``).
        """
        paths = [str(p) for p in file_paths]
        with self._lock:
            doomed = [
                key for key in self._entries
                if any(key == p or key.endswith(f":{p}") for p in paths)
            ]
            for key in doomed:
                self._remove(key)
                self._store_call("delete", key)
        if doomed:
            logger.debug("cache", f"Invalidated {len(doomed)} entries")
        return len(doomed)

    def update_options(
        self,
        max_size: Optional[int] = None,
        ttl: Optional[float] = None,
        enabled: Optional[bool] = None,
    ) -> None:
        """Change limits in place; shrinking ``max_size`` evicts LRU entries."""
        new_max = self.max_size if max_size is None else max_size
        new_ttl = self.ttl if ttl is None else ttl
        _validate_options(new_max, new_ttl)

        with self._lock:
            self.max_size = new_max
            self.ttl = new_ttl or 0
            if enabled is not None:
                self.enabled = enabled
            while len(self._entries) > self.max_size:
                self._evict_lru()

    def entry_info(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return {
                "created_at": entry.created_at,
                "last_accessed": entry.last_accessed,
                "weight": entry.weight,
                "ttl_ms": entry.ttl_ms if entry.ttl_ms is not None else self.ttl,
                "access_count": entry.access_count,
            }

    def keys(self) -> List[str]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    # =========================================================================
    # INTERNALS (caller holds the lock)
    # =========================================================================

    def _effective_ttl(self, ttl_ms: Optional[float]) -> float:
        return self.ttl if ttl_ms is None else ttl_ms

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        ttl = self._effective_ttl(entry.ttl_ms)
        return bool(ttl) and (now - entry.created_at) * 1000 > ttl

    def _record_expired(self, record: Dict[str, Any], now: float) -> bool:
        ttl = self._effective_ttl(record.get("ttl_ms"))
        return bool(ttl) and (now - record.get("created_at", 0)) * 1000 > ttl

    def _admit(self, entry: CacheEntry) -> None:
        if entry.ttl_ms:
            self._own_ttl_count += 1

        old = self._entries.get(entry.key)
        if old is not None:
            if old.ttl_ms:
                self._own_ttl_count -= 1
            self._entries[entry.key] = entry
            self._entries.move_to_end(entry.key)
            return

        while len(self._entries) >= self.max_size:
            self._evict_lru()
        self._entries[entry.key] = entry

    def _evict_lru(self) -> None:
        key, entry = self._entries.popitem(last=False)
        if entry.ttl_ms:
            self._own_ttl_count -= 1
        self._evictions += 1
        logger.cache_event("evicted", key)

    def _remove(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        if entry.ttl_ms:
            self._own_ttl_count -= 1
        return True

    def _maybe_purge(self, now: float) -> None:
        """Drop up to ``purge_batch`` expired entries, at most once per interval."""
        if not self.ttl and not self._own_ttl_count:
            return
        if (now - self._last_purge) * 1000 < self.purge_interval_ms:
            return

        self._last_purge = now
        removed = 0
        for key in list(self._entries.keys()):
            if removed >= self.purge_batch:
                break
            if self._is_expired(self._entries[key], now):
                self._remove(key)
                removed += 1
        if removed:
            self._expirations += removed
            logger.debug("cache", f"Purged {removed} expired entries")

    # === BACKING STORE ===

    def _store_call(self, operation: str, *args: Any) -> Any:
        """Call the backing store; failures are logged and treated as a miss."""
        if self.store is None:
            return None
        try:
            return getattr(self.store, operation)(*args)
        except Exception as e:
            self._store_errors += 1
            logger.store_error(operation, args[0] if args else "*", e)
            return None

    def _load_from_store(self, key: str, now: float) -> Optional[CacheEntry]:
        record = self._store_call("get", key)
        if not isinstance(record, dict) or "value" not in record:
            return None
        if self._record_expired(record, now):
            self._store_call("delete", key)
            self._expirations += 1
            return None

        entry = CacheEntry(
            key=key,
            value=record["value"],
            created_at=record.get("created_at", now),
            last_accessed=now,
            weight=record.get("weight", 1),
            ttl_ms=record.get("ttl_ms"),
        )
        self._admit(entry)
        logger.cache_event("loaded", key)
        return entry

    def _write_to_store(self, entry: CacheEntry) -> None:
        if self.store is None:
            return
        self._store_call("set", entry.key, {
            "value": entry.value,
            "created_at": entry.created_at,
            "ttl_ms": entry.ttl_ms,
            "weight": entry.weight,
        })
