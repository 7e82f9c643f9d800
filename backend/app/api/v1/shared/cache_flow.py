"""Cache lookup and refresh flow shared by the timetable endpoints."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from fastapi import HTTPException, status

from app.core.config import Settings
from app.core.metrics import observe_cache_refresh, record_cache_event
from app.services.cache import CacheService
from app.services.timetable_errors import TimetableServiceError

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[dict[str, Any]]]


@dataclass
class CacheResult:
    """Document plus the cache status it was served with."""

    data: dict[str, Any]
    status: str = "miss"

    @property
    def headers(self) -> dict[str, str]:
        return {"X-Cache-Status": self.status}


async def _stale_or_raise(
    cache: CacheService,
    cache_key: str,
    cache_name: str,
    exc: Exception,
    status_code: int,
) -> CacheResult:
    stale_payload = await cache.get_stale_json(cache_key)
    if stale_payload is not None:
        record_cache_event(cache_name, "stale_return")
        logger.warning("Serving stale %s for %s: %s", cache_name, cache_key, exc)
        return CacheResult(data=stale_payload, status="stale")
    raise HTTPException(status_code=status_code, detail=str(exc)) from exc


async def fetch_with_cache(
    cache: CacheService,
    cache_key: str,
    cache_name: str,
    fetch: Fetcher,
    settings: Settings,
    *,
    ttl_seconds: int,
    stale_ttl_seconds: int,
) -> CacheResult:
    """Serve a document from cache, refreshing it under a single-flight lock.

    Upstream failures and lock timeouts fall back to the stale copy; without
    one they surface as 502 and 503 respectively.
    """
    cached_payload = await cache.get_json(cache_key)
    if cached_payload is not None:
        record_cache_event(cache_name, "hit")
        return CacheResult(data=cached_payload, status="hit")

    record_cache_event(cache_name, "miss")
    try:
        async with cache.single_flight(
            cache_key,
            ttl_seconds=settings.cache_singleflight_lock_ttl_seconds,
            wait_timeout=settings.cache_singleflight_lock_wait_seconds,
            retry_delay=settings.cache_singleflight_retry_delay_seconds,
        ):
            cached_payload = await cache.get_json(cache_key)
            if cached_payload is not None:
                record_cache_event(cache_name, "refresh_skip_hit")
                return CacheResult(data=cached_payload, status="hit")

            start = time.perf_counter()
            try:
                fresh_data = await fetch()
            except TimetableServiceError:
                record_cache_event(cache_name, "refresh_error")
                raise
            observe_cache_refresh(cache_name, time.perf_counter() - start)

            await cache.set_json(
                cache_key,
                fresh_data,
                ttl_seconds=ttl_seconds,
                stale_ttl_seconds=stale_ttl_seconds,
            )
            record_cache_event(cache_name, "refresh_success")
            return CacheResult(data=fresh_data, status="miss")
    except TimeoutError as exc:
        record_cache_event(cache_name, "lock_timeout")
        return await _stale_or_raise(
            cache, cache_key, cache_name, exc, status.HTTP_503_SERVICE_UNAVAILABLE
        )
    except TimetableServiceError as exc:
        return await _stale_or_raise(
            cache, cache_key, cache_name, exc, status.HTTP_502_BAD_GATEWAY
        )


__all__ = ["CacheResult", "fetch_with_cache"]
