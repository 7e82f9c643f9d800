"""Tests for departure board assembly."""

from app.services.timetable_board import as_list, build_station_board


def _plan(*stops, station="Berlin Hbf"):
    return {"timetable": {"station": station, "s": list(stops)}}


def test_as_list():
    assert as_list(None) == []
    assert as_list("") == []
    assert as_list({"id": "1"}) == [{"id": "1"}]
    assert as_list([1, 2]) == [1, 2]


def test_merges_both_hours_and_attaches_changes():
    current = _plan({"id": "a", "dp": {"pt": "2410201215"}}, {"id": "b"})
    following = _plan({"id": "b", "dp": {"pt": "2410201305"}}, {"id": "c"})
    changes = {
        "timetable": {
            "s": {"id": "b", "dp": {"ct": "2410201310"}},
            "m": {"id": "m1", "t": "h"},
        }
    }

    board = build_station_board("8011160", "241020", "12", current, following, changes)

    assert board["stationInfo"] == {
        "evaNumber": "8011160",
        "currentDate": "241020",
        "currentTime": "12",
    }
    assert board["station"] == "Berlin Hbf"
    assert [stop["id"] for stop in board["stops"]] == ["a", "b", "c"]
    stop_b = board["stops"][1]
    assert stop_b["dp"] == {"pt": "2410201305"}
    assert stop_b["change"] == {"id": "b", "dp": {"ct": "2410201310"}}
    assert "change" not in board["stops"][0]
    assert board["messages"] == [{"id": "m1", "t": "h"}]


def test_empty_documents_produce_an_empty_board():
    board = build_station_board(
        "1", "241020", "12", {"timetable": ""}, {"timetable": ""}, {"timetable": ""}
    )

    assert board["station"] is None
    assert board["stops"] == []
    assert board["messages"] == []


def test_input_documents_are_not_mutated():
    stop = {"id": "a"}
    changes = {"timetable": {"s": {"id": "a", "ar": {"ct": "1"}}}}

    build_station_board("1", "241020", "12", _plan(stop), _plan(), changes)

    assert stop == {"id": "a"}


def test_stops_without_id_are_dropped():
    current = _plan(
        {"dp": {"pt": "2410201215"}}, {"id": "a"}, {"dp": {"pt": "2410201220"}}
    )
    changes = {"timetable": {"s": [{"dp": {"cs": "c"}}, {"id": "a", "dp": {"ct": "1"}}]}}

    board = build_station_board("1", "241020", "12", current, _plan(), changes)

    assert [stop["id"] for stop in board["stops"]] == ["a"]
    assert board["stops"][0]["change"] == {"id": "a", "dp": {"ct": "1"}}
