"""
Departure board assembly.

Combines the planned timetables of two consecutive hours with the full
change feed of a station. Stop and message objects keep the attribute
names of the Timetables API.
"""

from __future__ import annotations

from typing import Any


def as_list(value: Any) -> list[Any]:
    """Repeated XML children arrive as a list, a single one as a plain value."""
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    return [value]


def _timetable(document: Any) -> dict[str, Any]:
    if isinstance(document, dict):
        timetable = document.get("timetable")
        if isinstance(timetable, dict):
            return timetable
    return {}


def build_station_board(
    eva_number: str,
    date: str,
    hour: str,
    current_plan: Any,
    next_plan: Any,
    changes: Any,
) -> dict[str, Any]:
    """Merge two hourly plans and the change feed into one departure board.

    Stops are keyed by their id, so a stop listed in both hours appears
    once with its later-hour version; stops without an id are dropped. A
    stop with a matching entry in the change feed gets it attached under
    ``"change"``.
    """
    stops_by_id: dict[str, dict[str, Any]] = {}
    for plan in (current_plan, next_plan):
        for stop in as_list(_timetable(plan).get("s")):
            if isinstance(stop, dict) and stop.get("id") is not None:
                stops_by_id[str(stop["id"])] = stop

    changes_by_id = {
        str(change.get("id")): change
        for change in as_list(_timetable(changes).get("s"))
        if isinstance(change, dict) and change.get("id") is not None
    }

    stops = []
    for stop_id, stop in stops_by_id.items():
        change = changes_by_id.get(stop_id)
        stops.append({**stop, "change": change} if change is not None else dict(stop))

    return {
        "stationInfo": {
            "evaNumber": eva_number,
            "currentDate": date,
            "currentTime": hour,
        },
        "station": _timetable(current_plan).get("station"),
        "stops": stops,
        "messages": as_list(_timetable(changes).get("m")),
    }


__all__ = ["as_list", "build_station_board"]
