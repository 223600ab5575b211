"""Shared in-memory response cache for the HTTP layer.

Holds serialized route responses keyed by route and query parameters so
that several dashboard widgets polling the same endpoint share one upstream
request per TTL window. Async-safe via asyncio.Lock.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

from oitrader.logging import get_logger

logger = get_logger(__name__)


def make_key(route: str, **params: Any) -> str:
    """Build a cache key from a route name and its parameters.

    Parameters are sorted so keyword order does not matter; None values are
    dropped so an omitted parameter and an explicit None share a key.
    """
    parts = [f"{k}={v}" for k, v in sorted(params.items()) if v is not None]
    return "|".join([route, *parts])


class ResponseCache:
    """TTL cache with last-write-wins semantics.

    Expiry is checked against the injected clock on read, and every write
    sweeps out expired entries.

    Args:
        ttl_seconds: Entry lifetime in seconds. Zero disables caching.
        clock: Time source returning seconds; defaults to time.time.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = asyncio.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    async def get(self, key: str) -> Any | None:
        """Return the cached value for key, or None if missing or expired."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at >= self._ttl:
                del self._entries[key]
                return None
            return value

    async def set(self, key: str, value: Any) -> None:
        """Store value under key, replacing any previous entry.

        Expired entries are evicted on every write, so the map holds at most
        the keys written within one TTL window.
        """
        if self._ttl <= 0:
            return
        async with self._lock:
            now = self._clock()
            self._evict_expired(now)
            self._entries[key] = (value, now)

    def _evict_expired(self, now: float) -> None:
        expired = [k for k, (_, stored_at) in self._entries.items() if now - stored_at >= self._ttl]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.debug("cache_evicted", entries=len(expired), remaining=len(self._entries))

    async def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or every entry when key is None."""
        async with self._lock:
            if key is None:
                count = len(self._entries)
                self._entries.clear()
                logger.debug("cache_cleared", entries=count)
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
