"""Shared cache header utilities for API endpoints.

This module provides utilities for setting HTTP cache headers consistently
across all endpoints.
"""

from fastapi import Response

from app.api.v1.shared.cache_flow import CacheResult


def set_cache_header(
    response: Response,
    ttl_seconds: int | float,
    *,
    public: bool = True,
) -> None:
    """Set Cache-Control header on a response.

    Args:
        response: The FastAPI Response object.
        ttl_seconds: Time-to-live in seconds.
        public: Whether the cache is public (vs private).
    """
    visibility = "public" if public else "private"
    response.headers["Cache-Control"] = f"{visibility}, max-age={int(ttl_seconds)}"


def apply_cache_result_headers(
    response: Response, result: CacheResult, ttl_seconds: int
) -> None:
    """Copy the cache status onto the response; stale documents are not re-cacheable."""
    response.headers.update(result.headers)
    if result.status == "stale":
        response.headers["Cache-Control"] = "no-cache"
    else:
        set_cache_header(response, ttl_seconds)
