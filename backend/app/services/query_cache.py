"""Bounded in-process cache for station query results."""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from typing import Callable, Generic, TypeVar

from app.core.metrics import record_cache_event

V = TypeVar("V")

_CACHE_NAME = "station_query"


class QueryCache(Generic[V]):
    """
    TTL cache with a fixed capacity.

    Entries expire ``ttl_seconds`` after insertion. When the capacity is
    exceeded the oldest inserted entry is evicted; reads do not refresh an
    entry's position.
    """

    def __init__(
        self,
        max_entries: int = 20,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._max_entries = max_entries
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[V, float]] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @property
    def max_entries(self) -> int:
        return self._max_entries

    async def get(self, key: str) -> V | None:
        """Return the cached value, or None when missing or expired."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                record_cache_event(_CACHE_NAME, "miss")
                return None
            value, inserted_at = entry
            if self._clock() - inserted_at >= self._ttl_seconds:
                del self._entries[key]
                record_cache_event(_CACHE_NAME, "expired")
                return None
            record_cache_event(_CACHE_NAME, "hit")
            return value

    async def put(self, key: str, value: V) -> None:
        async with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (value, self._clock())
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                record_cache_event(_CACHE_NAME, "evicted")

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()


__all__ = ["QueryCache"]
