"""Shared constants for API endpoints.

Rate limits applied per endpoint type, on top of the limiter's global
defaults.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimit:
    """Rate limit configuration for endpoints."""

    value: str
    """The rate limit string (e.g., '60/minute')."""


RATE_LIMIT_STATIONS = RateLimit("120/minute")
"""Station lookups are answered from memory."""

RATE_LIMIT_TIMETABLE = RateLimit("60/minute")
"""Timetable endpoints may hit the upstream API."""

RATE_LIMIT_BOARD = RateLimit("30/minute")
"""The departure board fans out to three upstream documents."""
