from prometheus_client import CONTENT_TYPE_LATEST


def test_metrics_endpoint_returns_200(api_client):
    """Test that /metrics endpoint is accessible and returns 200."""
    response = api_client.get("/metrics")
    assert response.status_code == 200


def test_metrics_content_type(api_client):
    """Test that /metrics returns Prometheus content type."""
    response = api_client.get("/metrics")
    assert response.headers["content-type"] == CONTENT_TYPE_LATEST


def test_metrics_contains_station_metrics(api_client):
    """Station queries show up in the exported metrics."""
    api_client.get("/api/v1/stations", params={"searchstring": "A*"})

    body = api_client.get("/metrics").text

    assert "tramlines_station_queries_total" in body
    assert "tramlines_station_snapshot_events_total" in body
    assert "tramlines_upstream_requests" in body
