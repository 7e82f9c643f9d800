"""Endpoint tests for the compact Pebble endpoints."""

import pytest

import app.api.v1.endpoints.timetables as timetables_module


def test_nearby_stations_are_compact_triples(api_client):
    response = api_client.get(
        "/api/v1/pebble/stations", params={"lat": 52.52, "lon": 13.40}
    )

    assert response.status_code == 200
    body = response.json()
    assert [entry[0] for entry in body] == ["Alpha", "Beta"]
    assert body[0] == ["Alpha", 0.0, 8000001]
    name, distance_km, eva = body[1]
    assert eva == 8000002
    assert 1.2 < distance_km < 1.4
    assert round(distance_km, 2) == distance_km


def test_default_radius_excludes_distant_stations(api_client):
    response = api_client.get(
        "/api/v1/pebble/stations", params={"lat": 48.13, "lon": 11.58}
    )
    assert [entry[0] for entry in response.json()] == ["Gamma"]


def test_explicit_radius(api_client):
    response = api_client.get(
        "/api/v1/pebble/stations", params={"lat": 52.52, "lon": 13.40, "radius": 100}
    )
    assert [entry[0] for entry in response.json()] == ["Alpha"]


def test_missing_coordinates_return_400(api_client):
    response = api_client.get("/api/v1/pebble/stations", params={"lat": 52.52})

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing lat or lon parameter."


DEPARTING_PLAN = {
    "timetable": {
        "station": "Alpha",
        "s": [
            {
                "id": "s1",
                "tl": {"c": "S", "n": "9"},
                "dp": {"pt": "2410201215", "pp": "2", "l": "1", "ppth": "Beta|Gamma"},
            },
            {"id": "bus", "tl": {"c": "Bus"}, "dp": {"pt": "2410201220", "ppth": "Zoo"}},
        ],
    }
}
S1_ROW = ["s1", "S", "S 1", "Gamma", "12:15", "2"]


@pytest.fixture
def alpha_board(fake_timetables, monkeypatch):
    monkeypatch.setattr(timetables_module, "current_plan_slot", lambda: ("241020", "12"))
    fake_timetables.documents["/plan/8000001/241020/12"] = DEPARTING_PLAN
    return fake_timetables


def test_current_departures_are_compact_rows(api_client, alpha_board):
    response = api_client.get("/api/v1/pebble/current/8000001")

    assert response.status_code == 200
    assert response.json() == [S1_ROW]
    assert sorted(alpha_board.calls) == [
        "/fchg/8000001",
        "/plan/8000001/241020/12",
        "/plan/8000001/241020/13",
    ]


def test_current_location_uses_nearest_station(api_client, alpha_board):
    response = api_client.get(
        "/api/v1/pebble/currentLocation", params={"lat": 52.52, "lon": 13.40}
    )

    assert response.status_code == 200
    assert response.json() == {
        "station": ["Alpha", 0.0, 8000001],
        "departures": [S1_ROW],
    }


def test_current_location_without_nearby_station_returns_404(api_client, alpha_board):
    response = api_client.get(
        "/api/v1/pebble/currentLocation", params={"lat": 10.0, "lon": 10.0}
    )

    assert response.status_code == 404
    assert alpha_board.calls == []


def test_current_location_requires_coordinates(api_client):
    response = api_client.get("/api/v1/pebble/currentLocation", params={"lon": 13.4})

    assert response.status_code == 400


def test_moreinfo_returns_departure_details(api_client, alpha_board):
    response = api_client.get("/api/v1/pebble/moreinfo/8000001/s1")

    assert response.status_code == 200
    body = response.json()
    assert body["lineName"] == "S 1"
    assert body["stops"] == ["Beta", "Gamma"]
    assert body["timeSchedule"] == body["timeDelayed"] == "12:15"


def test_moreinfo_unknown_departure_returns_404(api_client, alpha_board):
    response = api_client.get("/api/v1/pebble/moreinfo/8000001/nope")

    assert response.status_code == 404
