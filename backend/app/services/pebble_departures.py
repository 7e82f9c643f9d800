"""
Compact departure rows for Pebble watch clients.

Rows are derived from a departure board (see ``timetable_board``): only
departures are kept, cancelled ones and buses are dropped, and each row is
a short array so it fits the watch's message size.
"""

from __future__ import annotations

from typing import Any

CANCELLED = "c"
EXCLUDED_CATEGORIES = frozenset({"bus"})

# [stop_id, category, line, destination, time, platform]
DepartureRow = list[Any]


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _departure_events(stop: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    return _as_dict(stop.get("dp")), _as_dict(_as_dict(stop.get("change")).get("dp"))


def format_clock(timestamp: Any) -> str | None:
    """``YYMMDDHHmm`` to ``HH:mm``."""
    if not isinstance(timestamp, str) or len(timestamp) != 10 or not timestamp.isdigit():
        return None
    return f"{timestamp[6:8]}:{timestamp[8:10]}"


def _path(planned: dict[str, Any], changed: dict[str, Any]) -> list[str]:
    path = changed.get("cpth") or planned.get("ppth") or ""
    return [name for name in str(path).split("|") if name]


def line_name(stop: dict[str, Any]) -> str:
    trip = _as_dict(stop.get("tl"))
    planned, _ = _departure_events(stop)
    category = str(trip.get("c") or "")
    number = planned.get("l") or trip.get("n") or ""
    return f"{category} {number}".strip()


def is_listed_departure(stop: dict[str, Any]) -> bool:
    planned, changed = _departure_events(stop)
    if not planned:
        return False
    if CANCELLED in (changed.get("cs"), planned.get("cs")):
        return False
    category = str(_as_dict(stop.get("tl")).get("c") or "")
    return category.casefold() not in EXCLUDED_CATEGORIES


def _effective(
    planned: dict[str, Any], changed: dict[str, Any], planned_key: str, changed_key: str
) -> Any:
    return changed.get(changed_key) or planned.get(planned_key)


def departure_rows(board: dict[str, Any]) -> list[DepartureRow]:
    """Departures of a board as compact rows, ordered by actual time."""
    listed = [
        stop
        for stop in board.get("stops", [])
        if isinstance(stop, dict) and is_listed_departure(stop)
    ]
    listed.sort(key=lambda stop: _effective(*_departure_events(stop), "pt", "ct") or "")

    rows: list[DepartureRow] = []
    for stop in listed:
        planned, changed = _departure_events(stop)
        path = _path(planned, changed)
        rows.append(
            [
                stop.get("id"),
                _as_dict(stop.get("tl")).get("c"),
                line_name(stop),
                path[-1] if path else None,
                format_clock(_effective(planned, changed, "pt", "ct")),
                _effective(planned, changed, "pp", "cp"),
            ]
        )
    return rows


def departure_detail(board: dict[str, Any], stop_id: str) -> dict[str, Any] | None:
    """Line, times, platform and remaining stops of one departure, or None."""
    for stop in board.get("stops", []):
        if not isinstance(stop, dict) or stop.get("id") != stop_id:
            continue
        planned, changed = _departure_events(stop)
        if not planned:
            return None
        path = _path(planned, changed)
        return {
            "lineName": line_name(stop),
            "destination": path[-1] if path else None,
            "timeSchedule": format_clock(planned.get("pt")),
            "timeDelayed": format_clock(_effective(planned, changed, "pt", "ct")),
            "platform": _effective(planned, changed, "pp", "cp"),
            "type": _as_dict(stop.get("tl")).get("c"),
            "stops": path,
        }
    return None


__all__ = [
    "departure_detail",
    "departure_rows",
    "format_clock",
    "is_listed_departure",
    "line_name",
]
