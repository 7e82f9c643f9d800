from __future__ import annotations

from prometheus_client import Counter, Histogram

CACHE_EVENTS = Counter(
    "tramlines_cache_events_total",
    "Cache operations recorded by Tramlines.",
    labelnames=("cache", "event"),
)
CACHE_REFRESH_LATENCY = Histogram(
    "tramlines_cache_refresh_seconds",
    "Latency of cache refresh operations.",
    labelnames=("cache",),
)
UPSTREAM_REQUESTS = Counter(
    "tramlines_upstream_requests_total",
    "Outbound Deutsche Bahn API requests.",
    labelnames=("endpoint", "result"),
)
UPSTREAM_REQUEST_LATENCY = Histogram(
    "tramlines_upstream_request_seconds",
    "Latency of outbound Deutsche Bahn API requests.",
    labelnames=("endpoint",),
)
STATION_SNAPSHOT_EVENTS = Counter(
    "tramlines_station_snapshot_events_total",
    "Station snapshot lifecycle events (refresh, disk load, stale serve).",
    labelnames=("event",),
)
STATION_INDEX_BUILD_LATENCY = Histogram(
    "tramlines_station_index_build_seconds",
    "Time spent building the station grid index.",
)
STATION_QUERIES = Counter(
    "tramlines_station_queries_total",
    "Station queries resolved, by resolution path.",
    labelnames=("path",),
)


def record_cache_event(cache: str, event: str) -> None:
    """Increment a cache event counter."""
    CACHE_EVENTS.labels(cache=cache, event=event).inc()


def observe_cache_refresh(cache: str, duration_seconds: float) -> None:
    """Record cache refresh latency."""
    CACHE_REFRESH_LATENCY.labels(cache=cache).observe(duration_seconds)


def observe_upstream_request(
    endpoint: str, result: str, duration_seconds: float
) -> None:
    """Record upstream request result and latency."""
    UPSTREAM_REQUESTS.labels(endpoint=endpoint, result=result).inc()
    UPSTREAM_REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration_seconds)


def record_snapshot_event(event: str) -> None:
    """Increment a station snapshot lifecycle counter."""
    STATION_SNAPSHOT_EVENTS.labels(event=event).inc()


def observe_index_build(duration_seconds: float) -> None:
    """Record grid index build latency."""
    STATION_INDEX_BUILD_LATENCY.observe(duration_seconds)


def record_station_query(path: str) -> None:
    """Count a station query by the path that resolved it (geo, filter, cache)."""
    STATION_QUERIES.labels(path=path).inc()
