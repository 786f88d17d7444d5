"""
In-process TTL cache for insights responses.

Provides:
- TTL-based expiration with a bounded number of entries
- Deterministic keys built from request parameters
- Statistics tracking

Disabled when the TTL is 0 (the default). Only real upstream data is cached;
callers never store simulated records here.

Usage:
    from adsperf.cache import InsightsCache

    cache = InsightsCache(ttl_seconds=60)
    key = cache.build_key("insights", "act_1", "account", "2024-03-01", "2024-03-07")
    records = await cache.get_or_set(key, factory)
"""
import asyncio
import hashlib
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple

from adsperf.config import CacheConfig, config
from adsperf.observability import get_logger

logger = get_logger(__name__)


@dataclass
class CacheStats:
    """Cache statistics for monitoring."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "evictions": self.evictions,
            "invalidations": self.invalidations,
            "hit_rate_percent": round(self.hit_rate, 2),
        }

    def reset(self) -> None:
        """Reset all counters."""
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.evictions = 0
        self.invalidations = 0


class InsightsCache:
    """
    Bounded TTL cache shared by concurrent requests.

    Entries expire ttl_seconds after being set; when full, the oldest entry
    is evicted.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        settings: Optional[CacheConfig] = None,
    ):
        settings = settings or config.cache
        self.ttl_seconds = settings.ttl_seconds if ttl_seconds is None else ttl_seconds
        self.max_entries = max_entries or settings.max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._stats = CacheStats()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        if not self.enabled:
            return None

        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self._stats.misses += 1
                return None

            self._stats.hits += 1
            return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a value; returns False when the cache is disabled."""
        if not self.enabled:
            return False

        ttl = ttl or self.ttl_seconds
        async with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (self._clock() + ttl, value)
            self._stats.sets += 1

            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self._stats.evictions += 1
        return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._stats.invalidations += 1
            return True

    async def clear(self) -> int:
        """Drop every entry; returns how many were dropped."""
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._stats.invalidations += count

        if count:
            logger.debug(f"Cleared {count} cached insights entries")
        return count

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Get from cache, or compute and set if missing.

        Exceptions from factory propagate and nothing is stored.
        """
        value = await self.get(key)
        if value is not None:
            return value

        value = await factory()
        await self.set(key, value, ttl)
        return value

    @staticmethod
    def build_key(prefix: str, *parts: Any) -> str:
        """Build cache key from request parameters."""
        key_str = ":".join([prefix] + [str(part) for part in parts if part is not None])

        # Hash if too long
        if len(key_str) > 200:
            hash_suffix = hashlib.md5(key_str.encode()).hexdigest()[:12]
            key_str = f"{prefix}:{hash_suffix}"

        return key_str

    def get_stats(self) -> dict:
        """Get cache statistics."""
        return {
            "enabled": self.enabled,
            "entries": len(self._entries),
            "ttl_seconds": self.ttl_seconds,
            **self._stats.to_dict(),
        }

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self._stats.reset()
