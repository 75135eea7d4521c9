"""
Result and geocode cache.

The crawler only needs get/set/delete with a per-key TTL. Cache is the
abstract interface; MemoryCache is the in-process default, which drops
expired entries lazily and sweeps them once it grows past a size threshold.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..constants import MEMORY_CACHE_CLEANUP_THRESHOLD

logger = logging.getLogger(__name__)


class Cache(ABC):
    """Async key/value store with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value for ``ttl_seconds``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key if present."""


@dataclass
class CacheEntry:
    """A single cache entry with metadata."""
    key: str
    value: Any
    created_at: float
    expires_at: float
    hit_count: int = 0

    def is_expired(self, now: float) -> bool:
        """Check if this entry has expired."""
        return now >= self.expires_at


class MemoryCache(Cache):
    """
    In-process TTL cache.

    Not shared between processes; values are stored by reference, so callers
    should store plain data (dicts, lists) rather than live objects.
    """

    def __init__(
        self,
        cleanup_threshold: int = MEMORY_CACHE_CLEANUP_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cleanup_threshold = cleanup_threshold
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._misses += 1
            return None

        entry.hit_count += 1
        self._hits += 1
        return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + ttl_seconds,
        )
        if len(self._entries) > self.cleanup_threshold:
            self.cleanup()

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def cleanup(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Cache cleanup removed {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def get_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total else 0.0,
        }
