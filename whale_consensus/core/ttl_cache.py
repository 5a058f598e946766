"""
TTL Cache

Bounded in-memory cache for enrichment lookups (token info, market data,
social data). Entries expire by age; when full, the oldest entry is evicted.

Usage:
    cache = TTLCache(ttl=900, max_entries=2000, name="market")
    hit = cache.get(mint)
    if hit is None:
        cache.set(mint, await fetch(mint))
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("whale_consensus.cache")


@dataclass
class CacheEntry:
    value: Any
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class TTLCache:
    def __init__(
        self,
        ttl: float,
        max_entries: int = 2000,
        name: str = "cache",
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl
        self.max_entries = max(1, max_entries)
        self.name = name
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        entry = self._cache.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def get(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None
        if entry.is_expired(self._clock()):
            del self._cache[key]
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        logger.debug("%s cache HIT: %s", self.name, key[:16])
        return entry.value

    def set(self, key: str, value: Any, custom_ttl: float | None = None) -> None:
        now = self._clock()
        if key not in self._cache and len(self._cache) >= self.max_entries:
            self.cleanup_expired()
            if len(self._cache) >= self.max_entries:
                oldest = min(self._cache, key=lambda k: self._cache[k].timestamp)
                del self._cache[oldest]
                self._stats["evictions"] += 1
        self._cache[key] = CacheEntry(value=value, timestamp=now, ttl=custom_ttl or self.ttl)

    def invalidate(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [k for k, v in self._cache.items() if v.is_expired(now)]
        for k in expired:
            del self._cache[k]
        if expired:
            logger.debug("%s cache: cleaned up %d expired entries", self.name, len(expired))
        return len(expired)

    def get_stats(self) -> dict:
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0
        return {
            "name": self.name,
            "entries": len(self._cache),
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "evictions": self._stats["evictions"],
            "hit_rate_pct": round(hit_rate, 1),
        }
