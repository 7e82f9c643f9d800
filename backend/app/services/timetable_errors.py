"""Timetables API exception definitions."""

from __future__ import annotations


class TimetableServiceError(Exception):
    """Generic wrapper for Timetables API failures."""


class TimetableParseError(TimetableServiceError):
    """Raised when the Timetables API returns XML that cannot be parsed."""


__all__ = ["TimetableServiceError", "TimetableParseError"]
