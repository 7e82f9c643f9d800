"""Data transfer objects for the station lookup subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class Coordinate:
    """WGS84 position in decimal degrees."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class EvaNumber:
    """EVA (timetable) number attached to a station."""

    number: int
    coordinate: Coordinate | None
    is_main: bool = False


@dataclass(frozen=True)
class StationRecord:
    """Station as published by the StaDa station directory."""

    id: str
    name: str
    eva_numbers: tuple[EvaNumber, ...]
    federal_state: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def main_eva(self) -> EvaNumber:
        for eva in self.eva_numbers:
            if eva.is_main:
                return eva
        return self.eva_numbers[0]

    @property
    def coordinate(self) -> Coordinate | None:
        """Main EVA position, else the first EVA number that has one."""
        main = self.main_eva
        if main.coordinate is not None:
            return main.coordinate
        for eva in self.eva_numbers:
            if eva.coordinate is not None:
                return eva.coordinate
        return None


@dataclass(frozen=True)
class StationSnapshot:
    """Immutable point-in-time copy of the full station dataset."""

    stations: tuple[StationRecord, ...]
    captured_at: float
    skipped_records: int = 0

    def age_seconds(self, now: float) -> float:
        return now - self.captured_at


@dataclass(frozen=True)
class StationMatch:
    """A station returned by a query, with its distance for geographic queries."""

    station: StationRecord
    distance_m: float | None = None


__all__ = [
    "Coordinate",
    "EvaNumber",
    "StationRecord",
    "StationSnapshot",
    "StationMatch",
]
