"""In-memory TTL caches for PhishLens.

Two caches are built on this module: aggregated results keyed by hostname,
and domain registration lookups keyed by hostname.

Expiry is lazy: a stale entry is only dropped when somebody reads it. With a
capacity set, the entry inserted first goes first. Reads never move an entry,
so this is insertion-order eviction, not LRU.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from .constants import (
    DOMAIN_AGE_CACHE_TTL_SECONDS,
    RESULT_CACHE_MAX_ENTRIES,
    RESULT_CACHE_TTL_SECONDS,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry:
    """A stored value plus when it was written and its own TTL, if any."""

    value: Any
    timestamp: float
    ttl_seconds: Optional[int] = None

    def expired(self, now: float, default_ttl: int) -> bool:
        lifetime = default_ttl if self.ttl_seconds is None else self.ttl_seconds
        return now - self.timestamp >= lifetime


class CacheManager:
    """
    Bounded, namespaced TTL map guarded by a re-entrant lock.

    Usage:
        results = CacheManager(ttl_seconds=3600, namespace="result", max_entries=200)
        results.set("naverr.com", verdict)
        verdict = results.get("naverr.com")

        age = await CacheManager(namespace="domain_age").get_or_fetch("naverr.com", lookup)
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        namespace: str = "",
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.namespace = namespace
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def _scoped(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def get(self, key: str) -> Optional[Any]:
        """Value stored under key, or None when absent or stale."""
        scoped = self._scoped(key)
        with self._lock:
            entry = self._entries.get(scoped)
            if entry is None:
                return None
            if entry.expired(self._clock(), self.ttl_seconds):
                del self._entries[scoped]
                logger.debug("Cache entry %s expired", scoped)
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store value; ttl_seconds overrides the cache-wide TTL for this entry.

        Re-setting a key keeps its place in the eviction order.
        """
        scoped = self._scoped(key)
        with self._lock:
            self._entries[scoped] = CacheEntry(value, self._clock(), ttl_seconds)
            if self.max_entries is None:
                return
            while len(self._entries) > self.max_entries:
                oldest = next(iter(self._entries))
                self._entries.pop(oldest)
                logger.debug("Evicted cache entry %s", oldest)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(self._scoped(key), None)

    def clear(self) -> None:
        """Drop every entry belonging to this namespace."""
        with self._lock:
            if not self.namespace:
                self._entries.clear()
                return
            prefix = f"{self.namespace}:"
            for scoped in [k for k in self._entries if k.startswith(prefix)]:
                self._entries.pop(scoped)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get_or_set(
        self,
        key: str,
        factory: Callable[[], T],
        ttl_seconds: Optional[int] = None,
    ) -> T:
        """Return the cached value, computing and storing it on a miss."""
        hit = self.get(key)
        if hit is not None:
            return hit
        fresh = factory()
        self.set(key, fresh, ttl_seconds)
        return fresh

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        ttl_seconds: Optional[int] = None,
    ) -> Any:
        """Async get_or_set. A None result is handed back but not stored."""
        hit = self.get(key)
        if hit is not None:
            return hit
        fresh = await fetcher()
        if fresh is not None:
            self.set(key, fresh, ttl_seconds)
        return fresh

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "namespace": self.namespace,
                "ttl_seconds": self.ttl_seconds,
                "max_entries": self.max_entries,
                "entries": len(self._entries),
            }


def create_result_cache(
    ttl_seconds: int = RESULT_CACHE_TTL_SECONDS,
    max_entries: int = RESULT_CACHE_MAX_ENTRIES,
) -> CacheManager:
    """Cache for aggregated analysis results, one per hostname."""
    return CacheManager(ttl_seconds, namespace="result", max_entries=max_entries)


def create_domain_age_cache(ttl_seconds: int = DOMAIN_AGE_CACHE_TTL_SECONDS) -> CacheManager:
    """Cache for registration-date lookups; unbounded, one day by default."""
    return CacheManager(ttl_seconds, namespace="domain_age")
