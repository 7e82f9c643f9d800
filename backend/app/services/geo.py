"""Distance helpers for station lookups.

Two flavours: a cheap equirectangular approximation used to discard
far-away candidates, and the exact great-circle (Haversine) distance used
for the final filter and ordering. Both return meters.
"""

from __future__ import annotations

import math

EARTH_RADIUS_METERS = 6_371_000.0
KM_PER_DEGREE_LATITUDE = 111.0


def approximate_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Planar distance on an equirectangular projection around the mean latitude."""
    mean_lat = math.radians((lat1 + lat2) / 2)
    dx = math.radians(lon2 - lon1) * math.cos(mean_lat)
    dy = math.radians(lat2 - lat1)
    return EARTH_RADIUS_METERS * math.hypot(dx, dy)


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(a), math.sqrt(1 - a))


__all__ = [
    "EARTH_RADIUS_METERS",
    "KM_PER_DEGREE_LATITUDE",
    "approximate_distance_m",
    "haversine_m",
]
