"""
Valkey-backed JSON cache for Timetables API documents.

Each document is kept under two keys: ``<key>`` with the fresh TTL and
``<key>:stale`` with a longer TTL, which the endpoints fall back to when the
upstream API fails. When Valkey errors, a circuit breaker stops talking to
it for a short while and an in-process store answers instead, so a Valkey
outage degrades caching but never fails a request.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

import valkey.asyncio as valkey

from app.core.config import get_settings
from app.core.metrics import record_cache_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

STALE_SUFFIX = ":stale"
LOCK_SUFFIX = ":lock"


def stale_key(key: str) -> str:
    return f"{key}{STALE_SUFFIX}"


def _positive_or_none(seconds: float | None) -> float | None:
    return seconds if seconds is not None and seconds > 0 else None


class CircuitBreaker:
    """Skips Valkey calls for ``reset_after`` seconds after a failure."""

    def __init__(
        self,
        reset_after: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if reset_after < 0:
            raise ValueError("reset_after must be >= 0")
        self._reset_after = reset_after
        self._clock = clock
        self._open_until = 0.0

    @property
    def is_open(self) -> bool:
        return self._clock() < self._open_until

    def trip(self) -> None:
        self._open_until = self._clock() + self._reset_after

    def reset(self) -> None:
        self._open_until = 0.0

    async def call(
        self, operation: Callable[[], Awaitable[T]], description: str
    ) -> T | None:
        """Run ``operation`` unless open; any failure trips the breaker.

        Returns None when the call was skipped or failed.
        """
        if self.is_open:
            return None
        try:
            result = await operation()
        except Exception as exc:
            logger.warning("Valkey %s failed, bypassing it for %.1fs: %s",
                           description, self._reset_after, exc)
            self.trip()
            return None
        self.reset()
        return result


class LocalStore:
    """In-process key/value store with per-entry expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, tuple[str, float | None]] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: str, ttl_seconds: float | None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._entries[key] = (value, expires_at)

    def delete(self, *keys: str) -> None:
        for key in keys:
            self._entries.pop(key, None)

    def prune(self) -> None:
        now = self._clock()
        expired = [
            key
            for key, (_, expires_at) in self._entries.items()
            if expires_at is not None and expires_at <= now
        ]
        self.delete(*expired)


class CacheService:
    """JSON document cache with a Valkey primary and an in-process fallback."""

    def __init__(
        self,
        client: valkey.Valkey,
        *,
        default_ttl_seconds: int | None = None,
        breaker_reset_seconds: float | None = None,
    ) -> None:
        settings = get_settings()
        if default_ttl_seconds is None:
            default_ttl_seconds = settings.valkey_cache_ttl_seconds
        if breaker_reset_seconds is None:
            breaker_reset_seconds = settings.cache_circuit_breaker_timeout_seconds
        if default_ttl_seconds < 0:
            raise ValueError("default_ttl_seconds must be >= 0")

        self._client = client
        self._default_ttl = default_ttl_seconds
        self._breaker = CircuitBreaker(breaker_reset_seconds)
        self._local = LocalStore()

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def get_json(self, key: str) -> Any | None:
        """Fresh copy of a document, or None."""
        return await self._read(key, "json")

    async def get_stale_json(self, key: str) -> Any | None:
        """Long-lived fallback copy of a document, or None."""
        return await self._read(stale_key(key), "stale")

    async def set_json(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
        stale_ttl_seconds: int | None = None,
    ) -> None:
        """Store a document; ``ttl_seconds`` defaults to the Valkey cache TTL.

        A stale copy is written only when ``stale_ttl_seconds`` is positive.
        """
        encoded = json.dumps(value)
        ttl = _positive_or_none(self._default_ttl if ttl_seconds is None else ttl_seconds)
        stale_ttl = _positive_or_none(stale_ttl_seconds)

        writes = [(key, ttl)]
        if stale_ttl is not None:
            writes.append((stale_key(key), stale_ttl))
        for target, target_ttl in writes:
            await self._write(target, encoded, target_ttl)
            self._local.set(target, encoded, target_ttl)
        self._local.prune()

    async def delete(self, key: str, *, remove_stale: bool = False) -> None:
        keys = [key, stale_key(key)] if remove_stale else [key]
        await self._breaker.call(lambda: self._client.delete(*keys), "delete")
        self._local.delete(*keys)

    @asynccontextmanager
    async def single_flight(
        self,
        key: str,
        ttl_seconds: int,
        wait_timeout: float,
        retry_delay: float,
    ) -> AsyncIterator[None]:
        """Hold ``<key>:lock`` while refreshing so one worker hits upstream.

        Raises:
            TimeoutError: if another holder keeps the lock past ``wait_timeout``.
        """
        if self._breaker.is_open:
            yield
            return

        lock_key = f"{key}{LOCK_SUFFIX}"
        acquired = await self._acquire(lock_key, ttl_seconds, wait_timeout, retry_delay)
        if not acquired:
            raise TimeoutError(f"Timed out while acquiring cache lock for key '{key}'.")
        try:
            yield
        finally:
            try:
                await self._client.delete(lock_key)
            except Exception:
                logger.debug("Failed to release cache lock %s", lock_key)

    async def _acquire(
        self, lock_key: str, ttl_seconds: int, wait_timeout: float, retry_delay: float
    ) -> bool:
        deadline = time.monotonic() + wait_timeout
        while time.monotonic() < deadline:
            try:
                if await self._client.set(
                    lock_key, "1", nx=True, ex=max(1, int(ttl_seconds))
                ):
                    return True
            except Exception:
                # Valkey went away: refresh without the lock.
                return True
            await asyncio.sleep(retry_delay)
        return False

    async def _read(self, key: str, kind: str) -> Any | None:
        payload = await self._breaker.call(lambda: self._client.get(key), "get")
        if payload is None:
            payload = self._local.get(key)
            record_cache_event(kind, "miss" if payload is None else "local_hit")
        else:
            record_cache_event(kind, "hit")
        return None if payload is None else json.loads(payload)

    async def _write(self, key: str, payload: str, ttl_seconds: float | None) -> None:
        if ttl_seconds:
            operation = lambda: self._client.set(key, payload, ex=int(ttl_seconds))  # noqa: E731
        else:
            operation = lambda: self._client.set(key, payload)  # noqa: E731
        await self._breaker.call(operation, "set")


@lru_cache
def get_valkey_client() -> valkey.Valkey:
    """Return a shared Valkey client instance."""
    settings = get_settings()
    return valkey.from_url(
        settings.valkey_url,
        encoding="utf-8",
        decode_responses=True,
    )


@lru_cache
def get_cache_service() -> CacheService:
    """Shared cache service; breaker state and the local store live per process."""
    return CacheService(get_valkey_client())


__all__ = [
    "CacheService",
    "CircuitBreaker",
    "LocalStore",
    "get_cache_service",
    "get_valkey_client",
    "stale_key",
]
