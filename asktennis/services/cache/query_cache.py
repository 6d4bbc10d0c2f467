"""
Process-wide cache for resolved statistical queries.

Entries are keyed by a canonical fingerprint of the query type and its
normalized arguments. The cache is a bounded LRU with a TTL and is emptied
by the sync engine whenever new data lands in the store.

Every invalidate_all() starts a new generation. A reader that captured the
generation before reading the store passes it to put(), and the write is
dropped if a sync invalidated the cache in between.

When the sync runs in another process, the reader reports the store's
newest sync stamp through observe_data_version(); a moved stamp empties
the cache the same way.

Usage:
    cache = QueryCache(max_entries=500, ttl_seconds=600)
    key = fingerprint("tournament_winner", tournament="wimbledon", year=2019)
    generation = cache.generation
    entry = cache.get(key) or cache.put(key, payload, generation=generation)
"""
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from asktennis.core.logging import get_logger
from asktennis.core.metrics import (
    query_cache_invalidations_total,
    query_cache_size,
    record_cache_lookup,
)

logger = get_logger(__name__)

_UNSEEN = object()


def fingerprint(query_type: str, **args) -> str:
    """
    Build the canonical cache key for a query.

    Arguments are sorted by name and None values are dropped, so the key
    does not depend on keyword order or on omitted optionals.

    Examples:
        >>> fingerprint("head_to_head", player_b="roger federer", player_a="novak djokovic")
        'head_to_head:player_a=novak djokovic|player_b=roger federer'
        >>> fingerprint("grand_slams", year=2019, tour=None)
        'grand_slams:year=2019'
    """
    parts = [f"{name}={args[name]}" for name in sorted(args) if args[name] is not None]
    return f"{query_type}:{'|'.join(parts)}"


@dataclass
class CacheEntry:
    fingerprint: str
    result: Any
    computed_at: datetime
    expires_at: float
    hit_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class _Counters:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    invalidations: int = 0


class QueryCache:
    """
    Thread-safe LRU + TTL cache of query results.

    Args:
        max_entries: Upper bound on live entries; the least recently used is evicted
        ttl_seconds: Lifetime of an entry
        clock: Monotonic clock in seconds (injectable for tests)
    """

    def __init__(
        self,
        max_entries: int = 500,
        ttl_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._counters = _Counters()
        self._generation = 0
        self._data_version: Any = _UNSEEN

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for a fingerprint, refreshing its recency."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self._clock()):
                del self._entries[key]
                entry = None

            if entry is None:
                self._counters.misses += 1
                record_cache_lookup(hit=False)
                query_cache_size.set(len(self._entries))
                return None

            self._entries.move_to_end(key)
            entry.hit_count += 1
            self._counters.hits += 1
            record_cache_lookup(hit=True)
            return entry

    def put(self, key: str, result: Any, generation: Optional[int] = None) -> CacheEntry:
        """
        Store a result, replacing any entry for the same fingerprint.

        If generation is given and the cache has been invalidated since it
        was read, the entry is returned to the caller but not stored.
        """
        with self._lock:
            entry = CacheEntry(
                fingerprint=key,
                result=result,
                computed_at=datetime.utcnow(),
                expires_at=self._clock() + self.ttl_seconds,
            )
            if generation is not None and generation != self._generation:
                logger.debug(f"Dropped stale query cache write {key}")
                return entry

            self._entries[key] = entry
            self._entries.move_to_end(key)

            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._counters.evictions += 1
                logger.debug(f"Evicted query cache entry {evicted}")

            query_cache_size.set(len(self._entries))
            return entry

    def invalidate(self, key: str) -> bool:
        """Drop one fingerprint. Returns True if an entry was removed."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            query_cache_size.set(len(self._entries))
            return removed

    def invalidate_all(self) -> int:
        """Drop every entry. Returns the number removed."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            self._generation += 1
            self._counters.invalidations += 1
            query_cache_invalidations_total.inc()
            query_cache_size.set(0)

        logger.info(f"Query cache invalidated ({removed} entries)")
        return removed

    def observe_data_version(self, version: Any) -> bool:
        """
        Record the store's data version (newest successful sync time).

        The first observation only records it. Any later change empties the
        cache. Returns True if the cache was invalidated.
        """
        with self._lock:
            previous = self._data_version
            if previous == version:
                return False
            self._data_version = version
            if previous is _UNSEEN:
                return False
            self.invalidate_all()

        logger.info(f"Store data version moved from {previous} to {version}")
        return True

    def stats(self) -> Dict[str, Any]:
        """Snapshot of size, keys and counters. Expired entries are purged first."""
        with self._lock:
            self._purge_expired()
            return {
                "size": len(self._entries),
                "keys": list(self._entries.keys()),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._counters.hits,
                "misses": self._counters.misses,
                "evictions": self._counters.evictions,
                "invalidations": self._counters.invalidations,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self):
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            query_cache_size.set(len(self._entries))
