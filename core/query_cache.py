"""
Time-boxed, size-bounded cache for layer query results.

Each entry holds the client-filtered features for one (layer, bounding box, page, limit)
query. Entries expire after a fixed TTL and are replaced, never mutated, by a fresh
fetch. Capacity is bounded: inserting past `max_entries` evicts the least recently
used entry.

All access happens on the event loop thread, so no locking is needed.

Classes:
    QueryCacheEntry: One cached query result
    QueryCache: TTL + LRU mapping from cache key to entry

Functions:
    make_cache_key: Composite key for a layer page query
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Hashable, Optional, Sequence, Tuple

from geometry.types import BoundingBox, Feature
from utils.logger import get_logger

logger = get_logger(__name__)

CacheKey = Tuple[str, Tuple[float, float, float, float], int, int]


def make_cache_key(layer_id: str, bbox: BoundingBox, page: int, limit: int) -> CacheKey:
    return (layer_id, bbox.cache_key(), page, limit)


@dataclass(frozen=True)
class QueryCacheEntry:
    key: Hashable
    features: Tuple[Feature, ...]
    fetched_at: float
    expires_at: float
    total_count: Optional[int] = None
    has_more: bool = False
    query_method: str = ''

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class QueryCache:
    """
    TTL + LRU cache of query results.

    Parameters:
    -----------
    ttl_seconds : float
        Lifetime of an entry (default: 300, i.e. 5 minutes)
    max_entries : int
        Capacity before least-recently-used eviction (default: 256)
    clock : Callable[[], float]
        Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: 'OrderedDict[Hashable, QueryCacheEntry]' = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[QueryCacheEntry]:
        """Return the live entry for `key`, dropping it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.misses += 1
            logger.debug(f"Cache entry expired: {key}")
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return entry

    def put(
        self,
        key: Hashable,
        features: Sequence[Feature],
        total_count: Optional[int] = None,
        has_more: bool = False,
        query_method: str = ''
    ) -> QueryCacheEntry:
        """Store a fresh entry under `key`, replacing any previous one."""
        now = self._clock()
        entry = QueryCacheEntry(
            key=key,
            features=tuple(features),
            fetched_at=now,
            expires_at=now + self.ttl_seconds,
            total_count=total_count,
            has_more=has_more,
            query_method=query_method
        )

        self._entries.pop(key, None)
        self._entries[key] = entry

        while len(self._entries) > self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug(f"Cache full ({self.max_entries}), evicted {evicted_key}")

        return entry

    def clear(self) -> None:
        self._entries.clear()
