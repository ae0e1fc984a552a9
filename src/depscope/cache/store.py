"""
Backing stores for the cache manager.

A store persists cache records across runs. Records are plain dicts
(``{"value": ..., "created_at": ..., "ttl_ms": ..., "weight": ...}``) so a
JSON store can hold them. Stores are allowed to fail: the cache manager
treats any exception as a miss.
"""

import hashlib
import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable


@runtime_checkable
class CacheStore(Protocol):
    """Persistence interface used by CacheManager."""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the stored record or None."""
        ...

    def set(self, key: str, record: Dict[str, Any]) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """Dict-backed store. Useful for tests and for sharing records between managers."""

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(key)
            return json.loads(json.dumps(record)) if record is not None else None

    def set(self, key: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._records[key] = json.loads(json.dumps(record))

    def delete(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


class JsonFileStore:
    """
    One JSON file per key under ``cache_dir``.

    File names are the md5 of the key, so any key is filesystem safe. Writes
    go to a temp file first and are renamed into place.
    """

    SUFFIX = ".cache.json"

    def __init__(self, cache_dir: Union[str, Path] = ".depscope_cache"):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(exist_ok=True, parents=True)

    def _get_cache_path(self, key: str) -> Path:
        key_hash = hashlib.md5(key.encode()).hexdigest()
        return self.cache_dir / f"{key_hash}{self.SUFFIX}"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        cache_path = self._get_cache_path(key)
        if not cache_path.exists():
            return None

        with open(cache_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        # md5 collisions are not worth a second lookup, but never return another key's value
        if data.get("key") != key:
            return None
        return data.get("record")

    def set(self, key: str, record: Dict[str, Any]) -> None:
        cache_path = self._get_cache_path(key)
        tmp_path = cache_path.parent / f"{cache_path.name}.{os.getpid()}.{threading.get_ident()}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump({"key": key, "record": record}, f)
        tmp_path.replace(cache_path)

    def delete(self, key: str) -> None:
        cache_path = self._get_cache_path(key)
        if cache_path.exists():
            cache_path.unlink()

    def clear(self) -> None:
        for path in self.cache_dir.glob(f"*{self.SUFFIX}"):
            path.unlink()
