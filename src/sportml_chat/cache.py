"""
sportml-chat: In-memory response cache with TTL expiry and bounded size.

Caches provider replies keyed by the normalized user message, so repeated
questions are answered without calling any provider.

Features:
- Key normalization (trim + case-fold)
- TTL-based expiration, enforced on lookup
- Evict-oldest-N when the entry ceiling is exceeded
- Hit/miss/eviction statistics

The cache is an optimization only: the orchestrator behaves identically
(apart from latency) when no cache is configured.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


def normalize_message(message: str) -> str:
    """Cache key for a message: surrounding whitespace stripped, case-folded."""
    return message.strip().casefold()


@dataclass
class CacheEntry:
    """One cached reply."""

    key: str
    value: str
    created_at: float


@dataclass
class CacheStats:
    """Cache performance statistics."""

    total_queries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    expirations: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as a fraction (0.0 to 1.0)."""
        if self.total_queries == 0:
            return 0.0
        return self.cache_hits / self.total_queries


class ResponseCache:
    """Normalized-message → reply cache.

    Lookup strategy:
    1. Normalize the message (trim + case-fold)
    2. Return the stored reply if it is younger than the TTL
    3. Otherwise drop the stale entry and report a miss

    Example::

        cache = ResponseCache(ttl_seconds=900, max_entries=100, evict_count=20)

        reply = cache.get("Who won the 2022 World Cup?")
        if reply is None:
            reply = await call_provider(...)
            cache.put("Who won the 2022 World Cup?", reply)
    """

    def __init__(
        self,
        ttl_seconds: float = 900.0,
        max_entries: int = 100,
        evict_count: int = 20,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: Time-to-live for entries in seconds.
            max_entries: Maximum entries before eviction kicks in.
            evict_count: How many of the oldest entries to drop once the
                ceiling is exceeded.
            clock: Time source, injectable for tests.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.evict_count = max(evict_count, 1)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def get(self, message: str) -> str | None:
        """Look up a cached reply for a message.

        Returns:
            The reply if a fresh entry exists, else None.
        """
        key = normalize_message(message)
        with self._lock:
            self.stats.total_queries += 1
            entry = self._entries.get(key)

            if entry is None:
                self.stats.cache_misses += 1
                return None

            if self._clock() - entry.created_at >= self.ttl_seconds:
                del self._entries[key]
                self.stats.expirations += 1
                self.stats.cache_misses += 1
                return None

            self.stats.cache_hits += 1
            return entry.value

    def put(self, message: str, reply: str) -> None:
        """Store (or overwrite) the reply for a message."""
        key = normalize_message(message)
        with self._lock:
            # Re-insert so dict order tracks creation time
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(key=key, value=reply, created_at=self._clock())

            if len(self._entries) > self.max_entries:
                self._evict()

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, message: object) -> bool:
        return isinstance(message, str) and normalize_message(message) in self._entries

    def get_stats(self) -> dict[str, Any]:
        """Get cache performance statistics."""
        with self._lock:
            return {
                "total_queries": self.stats.total_queries,
                "cache_hits": self.stats.cache_hits,
                "cache_misses": self.stats.cache_misses,
                "hit_rate": round(self.stats.hit_rate, 3),
                "expirations": self.stats.expirations,
                "evictions": self.stats.evictions,
                "total_entries": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
            }

    def _evict(self) -> None:
        """Drop the oldest-created entries (caller must hold lock)."""
        oldest = sorted(self._entries.values(), key=lambda e: e.created_at)
        victims = oldest[: min(self.evict_count, len(oldest) - 1)]
        for entry in victims:
            del self._entries[entry.key]
        self.stats.evictions += len(victims)
        logger.debug(f"Cache evicted {len(victims)} oldest entries")
