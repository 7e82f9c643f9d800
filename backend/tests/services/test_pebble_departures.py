"""Tests for compact Pebble departure rows."""

import pytest

from app.services.pebble_departures import (
    departure_detail,
    departure_rows,
    format_clock,
    line_name,
)

ICE = {
    "id": "ice",
    "tl": {"c": "ICE", "n": "123"},
    "dp": {"pt": "2410201230", "pp": "7", "ppth": "Spandau|Hamburg Hbf"},
    "change": {"id": "ice", "dp": {"ct": "2410201235", "cp": "8"}},
}
S_BAHN = {
    "id": "s1",
    "tl": {"c": "S", "n": "9"},
    "dp": {"pt": "2410201215", "pp": "15", "l": "1", "ppth": "Friedrichstr.|Oranienburg"},
}
BUS = {"id": "bus", "tl": {"c": "Bus", "n": "4"}, "dp": {"pt": "2410201210", "ppth": "Zoo"}}
CANCELLED = {
    "id": "re",
    "tl": {"c": "RE", "n": "5"},
    "dp": {"pt": "2410201220", "ppth": "Cottbus"},
    "change": {"id": "re", "dp": {"cs": "c"}},
}
ARRIVAL_ONLY = {"id": "arr", "tl": {"c": "RB"}, "ar": {"pt": "2410201240"}}


def _board(*stops):
    return {"stops": list(stops)}


@pytest.mark.parametrize(
    "timestamp, expected",
    [("2410201205", "12:05"), ("", None), (None, None), ("24102012", None)],
)
def test_format_clock(timestamp, expected):
    assert format_clock(timestamp) == expected


def test_line_name_prefers_line_over_trip_number():
    assert line_name(S_BAHN) == "S 1"
    assert line_name(ICE) == "ICE 123"


def test_rows_keep_listed_departures_in_actual_time_order():
    rows = departure_rows(_board(ICE, BUS, CANCELLED, ARRIVAL_ONLY, S_BAHN))

    assert rows == [
        ["s1", "S", "S 1", "Oranienburg", "12:15", "15"],
        ["ice", "ICE", "ICE 123", "Hamburg Hbf", "12:35", "8"],
    ]


def test_changed_path_replaces_destination():
    stop = {**S_BAHN, "change": {"id": "s1", "dp": {"cpth": "Friedrichstr.|Gesundbrunnen"}}}

    assert departure_rows(_board(stop))[0][3] == "Gesundbrunnen"


def test_detail_of_delayed_departure():
    assert departure_detail(_board(S_BAHN, ICE), "ice") == {
        "lineName": "ICE 123",
        "destination": "Hamburg Hbf",
        "timeSchedule": "12:30",
        "timeDelayed": "12:35",
        "platform": "8",
        "type": "ICE",
        "stops": ["Spandau", "Hamburg Hbf"],
    }


def test_detail_of_unknown_or_arrival_only_stop_is_none():
    board = _board(ICE, ARRIVAL_ONLY)

    assert departure_detail(board, "missing") is None
    assert departure_detail(board, "arr") is None
