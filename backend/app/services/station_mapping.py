"""Pure mapping utilities for StaDa station payloads."""

from __future__ import annotations

import logging
import math
from typing import Any

from app.services.station_dto import (
    Coordinate,
    EvaNumber,
    StationRecord,
    StationSnapshot,
)
from app.services.station_errors import MalformedRecordError

logger = logging.getLogger(__name__)


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def map_coordinate(raw: Any) -> Coordinate | None:
    """Map a GeoJSON point (``{"coordinates": [lon, lat]}``) to a Coordinate.

    Returns None for anything missing, malformed or out of range.
    """
    if not isinstance(raw, dict):
        return None
    coordinates = raw.get("coordinates")
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) < 2:
        return None
    longitude = _as_float(coordinates[0])
    latitude = _as_float(coordinates[1])
    if latitude is None or longitude is None:
        return None
    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        return None
    return Coordinate(latitude=latitude, longitude=longitude)


def map_eva_number(raw: Any) -> EvaNumber:
    if not isinstance(raw, dict):
        raise MalformedRecordError("EVA entry is not an object.")
    try:
        number = int(raw["number"])
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedRecordError("EVA entry without a numeric number.") from exc
    return EvaNumber(
        number=number,
        coordinate=map_coordinate(raw.get("geographicCoordinates")),
        is_main=bool(raw.get("isMain")),
    )


def map_station(raw: Any) -> StationRecord:
    """Map a raw StaDa station object to a StationRecord.

    Raises:
        MalformedRecordError: if the record has no identifier, no name or no
            usable EVA number.
    """
    if not isinstance(raw, dict):
        raise MalformedRecordError("Station entry is not an object.")

    number = raw.get("number")
    if number is None or isinstance(number, (bool, dict, list)):
        raise MalformedRecordError("Station without a number.")
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise MalformedRecordError(f"Station {number} without a name.")

    eva_numbers: list[EvaNumber] = []
    for item in raw.get("evaNumbers") or []:
        try:
            eva_numbers.append(map_eva_number(item))
        except MalformedRecordError:
            continue
    if not eva_numbers:
        raise MalformedRecordError(f"Station {number} has no EVA numbers.")

    federal_state = raw.get("federalState")
    return StationRecord(
        id=str(number),
        name=name,
        eva_numbers=tuple(eva_numbers),
        federal_state=federal_state if isinstance(federal_state, str) else None,
        payload=raw,
    )


def extract_station_list(payload: Any) -> list[Any]:
    """Return the list of raw stations from a StaDa response body."""
    if isinstance(payload, dict):
        result = payload.get("result")
        return result if isinstance(result, list) else []
    if isinstance(payload, list):
        return payload
    return []


def map_snapshot(payload: Any, captured_at: float) -> StationSnapshot:
    """Map a StaDa response body to an immutable snapshot.

    Malformed records and duplicate identifiers are skipped one by one; they
    never fail the whole snapshot.
    """
    stations: list[StationRecord] = []
    seen: set[str] = set()
    skipped = 0
    for raw in extract_station_list(payload):
        try:
            station = map_station(raw)
        except MalformedRecordError as exc:
            logger.debug("Skipping malformed station record: %s", exc)
            skipped += 1
            continue
        if station.id in seen:
            skipped += 1
            continue
        seen.add(station.id)
        stations.append(station)

    return StationSnapshot(
        stations=tuple(stations),
        captured_at=captured_at,
        skipped_records=skipped,
    )


__all__ = [
    "extract_station_list",
    "map_coordinate",
    "map_eva_number",
    "map_station",
    "map_snapshot",
]
