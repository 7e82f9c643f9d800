"""Shared error handling utilities for API endpoints.

This module provides standardized error response functions for the
station lookup failure modes.
"""

from fastapi import HTTPException, status


def station_not_found(station_id: str) -> HTTPException:
    """Create a standardized HTTP 404 exception for stations.

    Args:
        station_id: The station ID that was not found.

    Returns:
        An HTTPException with 404 status and detail message.
    """
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Station '{station_id}' not found",
    )


def invalid_query(message: str) -> HTTPException:
    """Create an HTTP 400 exception for a malformed station query."""
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def stations_unavailable(message: str) -> HTTPException:
    """Create an HTTP 503 exception when no station data can be served.

    Args:
        message: Description of the upstream failure.

    Returns:
        An HTTPException with 503 status and detail message.
    """
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Station data unavailable: {message}",
    )


def departure_not_found(eva: str, stop_id: str) -> HTTPException:
    """Create an HTTP 404 exception for a departure missing from the board."""
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Departure '{stop_id}' not found at station {eva}",
    )


def no_station_nearby(radius_m: float) -> HTTPException:
    """Create an HTTP 404 exception when a location has no station in range."""
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"No station within {radius_m:.0f} m",
    )
