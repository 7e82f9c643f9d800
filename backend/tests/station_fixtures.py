"""Builders and fakes for station directory tests."""

from __future__ import annotations

import asyncio
from typing import Any


def raw_station(
    number: int,
    name: str,
    latitude: float | None,
    longitude: float | None,
    *,
    federal_state: str | None = "Berlin",
    eva: int | None = None,
) -> dict[str, Any]:
    """A StaDa station object with one main EVA number."""
    eva_entry: dict[str, Any] = {"number": eva or 8000000 + number, "isMain": True}
    if latitude is not None and longitude is not None:
        eva_entry["geographicCoordinates"] = {
            "type": "Point",
            "coordinates": [longitude, latitude],
        }
    record: dict[str, Any] = {
        "number": number,
        "name": name,
        "evaNumbers": [eva_entry],
    }
    if federal_state is not None:
        record["federalState"] = federal_state
    return record


def station_payload(*stations: dict[str, Any]) -> dict[str, Any]:
    return {"offset": 0, "limit": 10000, "total": len(stations), "result": list(stations)}


# A and B are ~1.3 km apart in Berlin, C is in Munich
STATION_A = raw_station(1, "Alpha", 52.52, 13.40, federal_state="Berlin")
STATION_B = raw_station(2, "Beta", 52.53, 13.41, federal_state="Berlin")
STATION_C = raw_station(3, "Gamma", 48.13, 11.58, federal_state="Bavaria")


class FakeStationDataClient:
    """Stand-in for StationDataClient returning a canned payload or error."""

    def __init__(
        self,
        payload: Any = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.payload = payload
        self.error = error
        self.delay = delay
        self.calls = 0

    async def fetch_stations(self) -> Any:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


class ManualClock:
    """Settable clock for TTL tests."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
