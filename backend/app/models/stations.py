from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.services.station_dto import StationMatch, StationRecord


class Station(BaseModel):
    """Station directory record, passed through with all upstream fields."""

    model_config = ConfigDict(extra="allow")

    number: int = Field(..., description="Station number in the DB station directory.")
    name: str
    distance: float | None = Field(
        None, description="Distance in metres from the query point (geo queries only)."
    )

    @classmethod
    def from_record(cls, record: StationRecord) -> "Station":
        return cls.model_validate(dict(record.payload))

    @classmethod
    def from_match(cls, match: StationMatch) -> "Station":
        payload = dict(match.station.payload)
        if match.distance_m is not None:
            payload["distance"] = match.distance_m
        return cls.model_validate(payload)


def stations_by_id(matches: tuple[StationMatch, ...]) -> dict[str, Station]:
    """Ordered mapping of station id to station, in result order."""
    return {match.station.id: Station.from_match(match) for match in matches}


def pebble_entry(match: StationMatch) -> tuple[str, float, int]:
    """Compact [name, km, main EVA number] triple for small-screen clients."""
    distance_km = math.floor((match.distance_m or 0.0) / 10 + 0.5) / 100
    return (match.station.name, distance_km, match.station.main_eva.number)


class StationIndexStats(BaseModel):
    snapshot_loaded: bool
    snapshot_captured_at: float | None = None
    stations: int | None = None
    indexed_stations: int | None = None
    index_cells: int | None = None
    index_built_at: float | None = None
    cached_queries: int = 0


class HealthResponse(BaseModel):
    status: str = Field(..., description="'ok' once station data is loaded, else 'degraded'.")
    stations: StationIndexStats

    @classmethod
    def from_stats(cls, stats: dict[str, Any]) -> "HealthResponse":
        parsed = StationIndexStats.model_validate(stats)
        return cls(status="ok" if parsed.snapshot_loaded else "degraded", stations=parsed)
