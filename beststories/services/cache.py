"""
CacheManager - Async-compatible in-memory cache with per-entry TTL.

Features:
- Lazy expiry: entries are checked when read, never swept in the background
- Optional size bound with eviction of the oldest entry
- get_or_populate for read-through caching that skips empty results
- Optional single-flight coalescing of concurrent misses
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from beststories.services.deduplicator import RequestDeduplicator

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    data: T
    timestamp: datetime
    ttl: timedelta

    @property
    def expires_at(self) -> datetime:
        return self.timestamp + self.ttl

    def is_expired(self, now: datetime) -> bool:
        """Check if entry is past its TTL."""
        return now >= self.expires_at


@dataclass
class CacheResult(Generic[T]):
    """Result from cache lookup."""

    data: T
    expires_at: datetime


def _is_present(value: Any) -> bool:
    """Default cache predicate: store anything that is not None or empty."""
    if value is None:
        return False
    if isinstance(value, (list, tuple, dict, set, str)):
        return len(value) > 0
    return True


class CacheManager:
    """
    Async-compatible cache manager with lazily expiring TTL entries.

    Usage:
        cache = CacheManager(name="items", default_ttl=timedelta(minutes=10))

        item = await cache.get_or_populate(
            "item:42",
            lambda: client.fetch_item(42),
        )

    A failed or empty fetch is returned to the caller but never stored,
    so a transient outage is not cached.
    """

    def __init__(
        self,
        name: str = "cache",
        max_size: int | None = None,
        default_ttl: timedelta = timedelta(minutes=5),
        deduplicator: RequestDeduplicator | None = None,
        clock: Callable[[], datetime] = datetime.now,
        debug: bool = False,
    ):
        self._memory: dict[str, CacheEntry[Any]] = {}
        self.name = name
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._deduplicator = deduplicator
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = CacheStats()

    async def get(self, key: str) -> CacheResult[Any] | None:
        """
        Get value from cache.

        Returns CacheResult if found and not expired, None otherwise.
        """
        async with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {key}")
                return None

            if entry.is_expired(self._clock()):
                del self._memory[key]
                self._stats.misses += 1
                self._log(f"EXPIRED: {key}")
                return None

            self._stats.hits += 1
            self._log(f"HIT: {key}")
            return CacheResult(data=entry.data, expires_at=entry.expires_at)

    async def set(self, key: str, data: Any, ttl: timedelta | None = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            data: Data to cache
            ttl: Time to live (uses default if not specified)
        """
        ttl = ttl or self._default_ttl
        entry = CacheEntry(data=data, timestamp=self._clock(), ttl=ttl)

        async with self._lock:
            if (
                self._max_size is not None
                and len(self._memory) >= self._max_size
                and key not in self._memory
            ):
                self._evict_oldest()

            self._memory[key] = entry
            self._log(f"SET: {key} (TTL: {ttl.total_seconds()}s)")

    async def get_or_populate(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        ttl: timedelta | None = None,
        should_cache: Callable[[T], bool] = _is_present,
    ) -> T:
        """
        Return the live entry for key, or fetch, maybe store, and return.

        Args:
            key: Cache key
            fetch_fn: Async function producing the value on a miss
            ttl: Time to live for a stored value
            should_cache: Predicate deciding whether a fetched value is stored
        """
        cached = await self.get(key)
        if cached is not None:
            return cached.data

        async def populate() -> T:
            value = await fetch_fn()
            if should_cache(value):
                await self.set(key, value, ttl)
            else:
                self._log(f"SKIP: {key} (empty result not cached)")
            return value

        if self._deduplicator is not None:
            return await self._deduplicator.dedupe(f"{self.name}:{key}", populate)
        return await populate()

    async def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        async with self._lock:
            if key in self._memory:
                del self._memory[key]
                self._log(f"DELETE: {key}")
                return True
            return False

    async def clear(self) -> None:
        """Clear all cache entries."""
        async with self._lock:
            count = len(self._memory)
            self._memory.clear()
            self._log(f"CLEAR: {count} entries removed")

    async def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        async with self._lock:
            now = self._clock()
            expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
            for key in expired_keys:
                del self._memory[key]

            if expired_keys:
                self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")

            return len(expired_keys)

    def _evict_oldest(self) -> None:
        """Evict the oldest entry. Caller holds the lock."""
        if not self._memory:
            return

        oldest_key = min(
            self._memory.keys(),
            key=lambda k: self._memory[k].timestamp,
        )
        del self._memory[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key}")

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheManager:{self.name}] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int | None = None

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
