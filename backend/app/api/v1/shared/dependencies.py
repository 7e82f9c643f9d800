"""
Shared dependency injection functions for API endpoints.
"""

from fastapi import Request

from app.services.station_query import StationQueryService
from app.services.timetable_client import TimetableClient


def get_station_query_service(request: Request) -> StationQueryService:
    """Return the process-wide StationQueryService created at startup."""
    return request.app.state.station_service


def get_timetable_client() -> TimetableClient:
    """Create a TimetableClient bound to the current settings."""
    return TimetableClient()
