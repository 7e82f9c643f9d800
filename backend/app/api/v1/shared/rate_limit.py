"""Per-client request limits shared by every v1 router.

Clients are keyed by remote address. Counters live in the storage named by
``RATE_LIMIT_STORAGE_URI`` so several workers can share one budget through
Valkey; an unreachable storage degrades to per-process memory counters.
"""

from __future__ import annotations

import logging

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

_limiter: Limiter | None = None


def default_limits(settings: Settings) -> list[str]:
    return [
        f"{settings.rate_limit_requests_per_minute}/minute",
        f"{settings.rate_limit_requests_per_hour}/hour",
        f"{settings.rate_limit_requests_per_day}/day",
    ]


def build_limiter(settings: Settings) -> Limiter:
    limits = default_limits(settings)
    if not settings.rate_limit_enabled:
        return Limiter(key_func=get_remote_address, default_limits=limits, enabled=False)

    try:
        return Limiter(
            key_func=get_remote_address,
            default_limits=limits,
            storage_uri=settings.rate_limit_storage_uri,
        )
    except Exception:
        logger.warning(
            "Cannot use rate limit storage %s, counting in memory instead",
            settings.rate_limit_storage_uri,
            exc_info=True,
        )
        return Limiter(key_func=get_remote_address, default_limits=limits)


def get_limiter() -> Limiter:
    """Process-wide limiter, built from settings on first use."""
    global _limiter
    if _limiter is None:
        _limiter = build_limiter(get_settings())
    return _limiter


limiter = get_limiter()
