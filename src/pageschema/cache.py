"""
In-process result cache with TTL expiry and least-recently-used eviction.

The memory tier is a cachetools TLRUCache keyed by cache key; each entry
carries its own deadline. Entries can optionally be mirrored to JSON files
so results survive restarts.
"""
from __future__ import annotations
import copy
import json
import logging
import math
import os
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from cachetools import TLRUCache

from .config import CacheConfig

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass
class CacheEntry:
    key: str
    value: Any
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


def _entry_deadline(key: str, entry: CacheEntry, now: float) -> float:
    # cachetools drops an item once now >= deadline; an entry stays live at expires_at
    return math.nextafter(entry.expires_at, math.inf)


class _EntryStore(TLRUCache):
    """TLRUCache that reports every entry it drops on its own."""

    def __init__(self, maxsize: int, timer: Callable[[], float],
                 on_evict: Callable[[CacheEntry], None], on_expire: Callable[[CacheEntry], None]):
        super().__init__(maxsize, ttu=_entry_deadline, timer=timer)
        self._on_evict = on_evict
        self._on_expire = on_expire

    def popitem(self) -> Tuple[str, CacheEntry]:
        key, entry = super().popitem()
        self._on_evict(entry)
        return key, entry

    def expire(self, time: Optional[float] = None) -> List[Tuple[str, CacheEntry]]:
        expired = super().expire(time)
        for _, entry in expired:
            self._on_expire(entry)
        return expired


class ResultCache:
    def __init__(self, max_size: int = 100, ttl: float = 3600.0, storage: str = "memory",
                 cache_dir: Optional[str] = None, reusable_types: Optional[Iterable[str]] = None,
                 clock: Callable[[], float] = time.time):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl = ttl
        self.storage = storage
        self.cache_dir = cache_dir
        self.reusable_types = frozenset(reusable_types if reusable_types is not None else CacheConfig().reusable_types)
        self._clock = clock
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

        if self.storage == "file":
            if not self.cache_dir:
                raise ValueError("cache_dir is required for file storage")
            os.makedirs(self.cache_dir, exist_ok=True)

        self._entries = self._new_store()

    @classmethod
    def from_config(cls, cfg: CacheConfig, clock: Callable[[], float] = time.time) -> "ResultCache":
        return cls(
            max_size=cfg.max_size,
            ttl=cfg.ttl,
            storage=cfg.storage,
            cache_dir=cfg.cache_dir,
            reusable_types=cfg.reusable_types,
            clock=clock,
        )

    def get(self, key: str) -> Optional[Any]:
        """Return a copy of the cached value, or None on a miss."""
        with self._lock:
            now = self._clock()
            self._entries.expire(now)
            entry = self._entries.get(key)

            if entry is None and self.storage == "file":
                entry = self._load_file(key)
                if entry is not None:
                    if entry.is_expired(now):
                        self._unlink(self._file_path(key))
                        self._expirations += 1
                        entry = None
                    else:
                        self._entries[key] = entry

            if entry is None:
                self._misses += 1
                return None

            self._hits += 1
            return copy.deepcopy(entry.value)

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            now = self._clock()
            entry = CacheEntry(
                key=key,
                value=copy.deepcopy(value),
                created_at=now,
                expires_at=now + (self.ttl if ttl is None else ttl),
            )
            self._entries[key] = entry
            if self.storage == "file":
                self._write_file(entry)

    def delete(self, key: str) -> bool:
        with self._lock:
            self._entries.expire(self._clock())
            existed = key in self._entries
            if existed:
                del self._entries[key]
            if self.storage == "file":
                self._unlink(self._file_path(key))
            return existed

    def clear(self) -> None:
        with self._lock:
            # A fresh store; MutableMapping.clear would report each entry as evicted
            self._entries = self._new_store()
            if self.storage == "file":
                for name in os.listdir(self.cache_dir):
                    if name.endswith(".json"):
                        self._unlink(os.path.join(self.cache_dir, name))

    def clean_expired(self) -> int:
        """Drop every expired entry now instead of waiting for the next access."""
        with self._lock:
            return len(self._entries.expire(self._clock()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 4) if total else 0.0,
                "size": len(self._entries),
                "max_size": self.max_size,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "storage": self.storage,
            }

    def should_cache(self, schema: Optional[Dict[str, Any]]) -> bool:
        """Only results of broadly reusable types are worth keeping."""
        if not isinstance(schema, dict):
            return False
        schema_type = schema.get("@type")
        if isinstance(schema_type, list):
            return any(t in self.reusable_types for t in schema_type)
        return schema_type in self.reusable_types

    # ------------------ internals (caller holds the lock) ------------------

    def _new_store(self) -> _EntryStore:
        return _EntryStore(self.max_size, timer=self._clock, on_evict=self._evicted, on_expire=self._expired)

    def _evicted(self, entry: CacheEntry) -> None:
        logger.debug("Evicting cache entry %s", entry.key)
        self._evictions += 1
        if self.storage == "file":
            self._unlink(self._file_path(entry.key))

    def _expired(self, entry: CacheEntry) -> None:
        self._expirations += 1
        if self.storage == "file":
            self._unlink(self._file_path(entry.key))

    def _file_path(self, key: str) -> str:
        return os.path.join(self.cache_dir, f"{_SAFE_KEY.sub('_', key)}.json")

    def _write_file(self, entry: CacheEntry) -> None:
        payload = {
            "key": entry.key,
            "value": entry.value,
            "created_at": entry.created_at,
            "expires_at": entry.expires_at,
        }
        try:
            with open(self._file_path(entry.key), "w", encoding="utf-8") as fh:
                json.dump(payload, fh)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not write cache file for %s: %s", entry.key, e)

    def _load_file(self, key: str) -> Optional[CacheEntry]:
        path = self._file_path(key)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                payload = json.load(fh)
            return CacheEntry(
                key=payload["key"],
                value=payload["value"],
                created_at=float(payload["created_at"]),
                expires_at=float(payload["expires_at"]),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable cache file %s: %s", path, e)
            self._unlink(path)
            return None

    @staticmethod
    def _unlink(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove cache file %s: %s", path, e)
