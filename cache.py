"""
Per-process query cache sitting in front of the lifecycle read paths.

Entries are memoised for a short, view-specific TTL and are removed either by
explicit invalidation or lazily when a late ``get`` finds them expired. There
is no background sweep and no size bound: each process holds its own copy,
so the cache is only ever an optimisation and never a consistency mechanism.
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

from cachetools import TLRUCache
from fastapi import Request

logger = logging.getLogger(__name__)

# Shared / listable views.
SHARED_VIEW_TTL = 5.0
# Single-entity and by-owner views.
OWNER_VIEW_TTL = 10.0


class CacheKeys:
    """Builders for every logical cache key the application uses."""

    @staticmethod
    def all_listings() -> str:
        return "all_listings"

    @staticmethod
    def business_listings(owner_id: str) -> str:
        return f"business_listings_{owner_id}"

    @staticmethod
    def listing(listing_id: str) -> str:
        return f"listing_{listing_id}"

    @staticmethod
    def listing_requests(listing_id: str) -> str:
        return f"listing_requests_{listing_id}"

    @staticmethod
    def business_requests(owner_id: str) -> str:
        return f"business_requests_{owner_id}"

    @staticmethod
    def shelter_requests(requester_id: str) -> str:
        return f"shelter_requests_{requester_id}"

    @staticmethod
    def unread_count(user_id: str) -> str:
        return f"unread_count_{user_id}"


class QueryCache(ABC):
    """Key/value store with per-entry expiry."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the live value for ``key`` or None on a miss."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` until ``now + ttl`` seconds, replacing any entry."""

    @abstractmethod
    def invalidate(self, key: str) -> None:
        """Drop ``key`` if present."""


def _expires_at(key, entry, now):
    # Keep the entry live through its expiry instant (now <= expiry is a hit).
    _, ttl = entry
    return math.nextafter(now + ttl, math.inf)


class InMemoryQueryCache(QueryCache):
    """Unbounded in-process cache backed by a cachetools ``TLRUCache``."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries = TLRUCache(maxsize=math.inf, ttu=_expires_at, timer=clock)

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._entries.expire()
            return None
        value, _ = entry
        return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        self._entries[key] = (value, ttl)

    def invalidate(self, key: str) -> None:
        try:
            del self._entries[key]
        except KeyError:
            pass

    def __len__(self) -> int:
        return len(self._entries)


class NullQueryCache(QueryCache):
    """Cache that never stores anything; every read goes to storage."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl: float) -> None:
        pass

    def invalidate(self, key: str) -> None:
        pass


class CacheInvalidator:
    """Applies the stale-key sets reported by mutating operations."""

    def __init__(self, cache: QueryCache):
        self.cache = cache

    def apply(self, keys: Iterable[str]) -> None:
        keys = sorted(set(keys))
        for key in keys:
            self.cache.invalidate(key)
        if keys:
            logger.debug("Invalidated cache keys: %s", ", ".join(keys))


def build_query_cache(enabled: bool) -> QueryCache:
    return InMemoryQueryCache() if enabled else NullQueryCache()


def get_query_cache(request: Request) -> QueryCache:
    """FastAPI dependency returning the cache installed on the app."""
    return request.app.state.query_cache
