"""Shared utilities for API v1 endpoints.

This package provides common utilities, constants, and helpers used across
multiple endpoint modules.
"""

from app.api.v1.shared.cache_headers import (
    apply_cache_result_headers,
    set_cache_header,
)
from app.api.v1.shared.constants import (
    RATE_LIMIT_BOARD,
    RATE_LIMIT_STATIONS,
    RATE_LIMIT_TIMETABLE,
    RateLimit,
)
from app.api.v1.shared.dependencies import (
    get_station_query_service,
    get_timetable_client,
)
from app.api.v1.shared.errors import (
    departure_not_found,
    invalid_query,
    no_station_nearby,
    station_not_found,
    stations_unavailable,
)

__all__ = [
    # Rate limiting
    "RateLimit",
    "RATE_LIMIT_STATIONS",
    "RATE_LIMIT_TIMETABLE",
    "RATE_LIMIT_BOARD",
    # Cache headers
    "set_cache_header",
    "apply_cache_result_headers",
    # Error handling
    "departure_not_found",
    "invalid_query",
    "no_station_nearby",
    "station_not_found",
    "stations_unavailable",
    # Dependencies
    "get_station_query_service",
    "get_timetable_client",
]
