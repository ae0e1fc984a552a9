"""
Cache module - bounded per-file result cache with pluggable persistence.
"""

from depscope.cache.manager import CacheEntry, CacheManager
from depscope.cache.store import CacheStore, JsonFileStore, MemoryStore

__all__ = [
    "CacheEntry",
    "CacheManager",
    "CacheStore",
    "JsonFileStore",
    "MemoryStore",
]
