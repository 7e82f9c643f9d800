"""Station lookup exception definitions."""

from __future__ import annotations


class UpstreamUnavailableError(Exception):
    """Raised when the station directory cannot be fetched and no snapshot is usable."""


class StationNotFoundError(Exception):
    """Raised when a station cannot be resolved by identifier."""


class InvalidQueryError(Exception):
    """Raised for station queries that mix present and missing geo parameters."""


class MalformedRecordError(Exception):
    """Raised by the mapper for a single unusable station record."""


__all__ = [
    "UpstreamUnavailableError",
    "StationNotFoundError",
    "InvalidQueryError",
    "MalformedRecordError",
]
