"""
Station query resolution.

StationQueryService answers three kinds of questions against the current
station snapshot: stations within a radius of a point, stations whose name
matches wildcard patterns, and stations in given federal states. Results
are cached per normalized query for a few minutes.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

from app.core.config import Settings
from app.core.metrics import (
    observe_index_build,
    record_snapshot_event,
    record_station_query,
)
from app.core.telemetry import get_tracer
from app.services.geo import approximate_distance_m, haversine_m
from app.services.query_cache import QueryCache
from app.services.spatial_index import (
    GridIndex,
    GridIndexFileStore,
    build_grid_index,
    find_candidates,
)
from app.services.station_data_client import StationDataClient
from app.services.station_dto import StationMatch, StationRecord, StationSnapshot
from app.services.station_errors import InvalidQueryError
from app.services.station_store import StationStore

logger = logging.getLogger(__name__)

QueryResult = tuple[StationMatch, ...]


def normalize_name(value: str) -> str:
    """NFC form, so an umlaut is one character for the ``?`` wildcard."""
    return unicodedata.normalize("NFC", value)


def compile_wildcard(pattern: str) -> re.Pattern[str]:
    """Compile a ``*``/``?`` wildcard into a case-insensitive regex.

    ``*`` matches any sequence (including none), ``?`` exactly one
    character; everything else is literal. Use with ``match`` so the
    pattern is anchored at the start of the name only: ``Berlin*`` and
    ``Berlin`` both match "Berlin Hbf", ``*Hbf`` matches "Potsdam Hbf".
    """
    parts: list[str] = []
    for char in normalize_name(pattern):
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class StationQuery:
    """Normalized station query."""

    latitude: float | None = None
    longitude: float | None = None
    radius_m: float | None = None
    patterns: tuple[str, ...] = ()
    federal_states: tuple[str, ...] = ()
    limit: int | None = None

    @classmethod
    def from_params(
        cls,
        *,
        lat: float | None = None,
        lon: float | None = None,
        radius: float | None = None,
        limit: int | None = None,
        searchstring: str | None = None,
        federal_states: Iterable[str] | None = None,
    ) -> "StationQuery":
        """Build a query from raw request parameters.

        Raises:
            InvalidQueryError: if only some of lat/lon/radius are given, or a
                given one is out of range.
        """
        geo = {"lat": lat, "lon": lon, "radius": radius}
        missing = [name for name, value in geo.items() if value is None]
        if missing and len(missing) < len(geo):
            raise InvalidQueryError(
                "Geographic queries need lat, lon and radius; missing: "
                + ", ".join(missing)
                + "."
            )
        if not missing:
            if not all(math.isfinite(value) for value in (lat, lon, radius)):
                raise InvalidQueryError("lat, lon and radius must be finite numbers.")
            if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
                raise InvalidQueryError("lat/lon are outside the valid WGS84 range.")
            if radius < 0:
                raise InvalidQueryError("radius must not be negative.")

        patterns = tuple(
            part.strip() for part in (searchstring or "").split(",") if part.strip()
        )
        states = tuple(
            state.strip() for state in (federal_states or ()) if state and state.strip()
        )
        return cls(
            latitude=lat,
            longitude=lon,
            radius_m=radius,
            patterns=patterns,
            federal_states=states,
            limit=limit,
        )

    @property
    def is_geographic(self) -> bool:
        return (
            self.latitude is not None
            and self.longitude is not None
            and self.radius_m is not None
        )

    def cache_key(self) -> str:
        """Canonical signature; equivalent queries share one cache entry."""
        limit_part = str(self.limit) if self.limit and self.limit > 0 else "all"
        if self.is_geographic:
            return (
                f"stations:geo:{self.latitude:.5f}:{self.longitude:.5f}:"
                f"{self.radius_m:.1f}:{limit_part}"
            )
        # Patterns keep their case: IGNORECASE does not fold "ß" to "ss", so
        # casefolded keys could merge queries with different answers.
        pattern_part = "|".join(sorted({normalize_name(p) for p in self.patterns})) or "*"
        state_part = "|".join(sorted({s.casefold() for s in self.federal_states})) or "*"
        return f"stations:filter:{pattern_part}:{state_part}:{limit_part}"


@dataclass(frozen=True)
class _IndexedSnapshot:
    snapshot: StationSnapshot
    index: GridIndex
    by_id: dict[str, StationRecord]


def _apply_limit(items: Sequence[Any], limit: int | None) -> Sequence[Any]:
    if limit is not None and limit > 0:
        return items[:limit]
    return items


class StationQueryService:
    """Resolves station queries against the current snapshot and grid index."""

    def __init__(
        self,
        store: StationStore,
        index_store: GridIndexFileStore,
        query_cache: QueryCache[QueryResult],
        *,
        cell_size: float = 0.1,
        boundary_margin: float = 0.1,
        max_candidates: int = 200,
        distance_buffer: float = 1.1,
    ) -> None:
        self._store = store
        self._index_store = index_store
        self._query_cache = query_cache
        self._cell_size = cell_size
        self._boundary_margin = boundary_margin
        self._max_candidates = max_candidates
        self._distance_buffer = distance_buffer

        self._state: _IndexedSnapshot | None = None
        self._index_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls, settings: Settings, client: StationDataClient | None = None
    ) -> "StationQueryService":
        cache_dir = Path(settings.station_cache_dir)
        store = StationStore(
            client or StationDataClient(settings),
            cache_dir,
            settings.station_snapshot_ttl_seconds,
            serve_stale_on_failure=settings.station_serve_stale_on_failure,
            refresh_retry_seconds=settings.station_refresh_retry_seconds,
        )
        return cls(
            store,
            GridIndexFileStore(cache_dir, settings.station_snapshot_ttl_seconds),
            QueryCache(
                max_entries=settings.station_query_cache_max_entries,
                ttl_seconds=settings.station_query_cache_ttl_seconds,
            ),
            cell_size=settings.station_grid_cell_size_degrees,
            boundary_margin=settings.station_grid_boundary_margin,
            max_candidates=settings.station_grid_max_candidates,
            distance_buffer=settings.station_approx_distance_buffer,
        )

    @property
    def store(self) -> StationStore:
        return self._store

    @property
    def query_cache(self) -> QueryCache[QueryResult]:
        return self._query_cache

    async def query(self, query: StationQuery) -> QueryResult:
        """Resolve a query, consulting the query cache first.

        Raises:
            UpstreamUnavailableError: if no station snapshot can be obtained.
        """
        key = query.cache_key()
        cached = await self._query_cache.get(key)
        if cached is not None:
            record_station_query("cache")
            logger.debug("Station query cache hit for %s", key)
            return cached

        state = await self._current_state()
        path = "geo" if query.is_geographic else "filter"
        with get_tracer().start_as_current_span("stations.query") as span:
            span.set_attribute("stations.query.path", path)
            if query.is_geographic:
                matches = self._resolve_geographic(state, query)
            else:
                matches = self._resolve_filtered(state, query)
            span.set_attribute("stations.query.results", len(matches))

        record_station_query(path)
        # Results computed from a snapshot that was swapped out meanwhile are not cached.
        if self._state is state:
            await self._query_cache.put(key, matches)
        return matches

    async def get_station(self, station_id: str) -> StationRecord:
        """Look up a single station. Raises StationNotFoundError."""
        return await self._store.get_by_id(station_id)

    async def warm_up(self) -> None:
        """Load or fetch the snapshot and index ahead of the first request."""
        await self._current_state()

    def stats(self) -> dict[str, Any]:
        state = self._state
        if state is None:
            return {"snapshot_loaded": False, "cached_queries": len(self._query_cache)}
        return {
            "snapshot_loaded": True,
            "snapshot_captured_at": state.snapshot.captured_at,
            "stations": len(state.snapshot.stations),
            "indexed_stations": state.index.station_count,
            "index_cells": state.index.cell_count,
            "index_built_at": state.index.built_at,
            "cached_queries": len(self._query_cache),
        }

    async def _current_state(self) -> _IndexedSnapshot:
        snapshot = await self._store.ensure_fresh()
        state = self._state
        if state is not None and state.snapshot is snapshot:
            return state

        async with self._index_lock:
            state = self._state
            if state is not None and state.snapshot is snapshot:
                return state
            index = await self._load_or_build_index(snapshot)
            state = _IndexedSnapshot(
                snapshot=snapshot,
                index=index,
                by_id={station.id: station for station in snapshot.stations},
            )
            self._state = state
            await self._query_cache.clear()
            return state

    async def _load_or_build_index(self, snapshot: StationSnapshot) -> GridIndex:
        index = await asyncio.to_thread(self._index_store.load, snapshot.captured_at)
        if index is not None and index.cell_size == self._cell_size:
            record_snapshot_event("index_disk_load")
            logger.info(
                "Loaded station index with %d cells from %s",
                index.cell_count,
                self._index_store.path,
            )
            return index

        start = time.perf_counter()
        index = await asyncio.to_thread(
            build_grid_index, snapshot, self._cell_size, self._boundary_margin
        )
        duration = time.perf_counter() - start
        observe_index_build(duration)
        logger.info(
            "Built station index in %.3fs: %d stations in %d cells",
            duration,
            index.station_count,
            index.cell_count,
        )

        try:
            await asyncio.to_thread(self._index_store.save, index)
        except OSError as exc:
            record_snapshot_event("index_persist_failed")
            logger.warning("Failed to persist station index: %s", exc)
        return index

    def _resolve_geographic(
        self, state: _IndexedSnapshot, query: StationQuery
    ) -> QueryResult:
        lat, lon, radius_m = query.latitude, query.longitude, query.radius_m
        approx_limit = radius_m * self._distance_buffer
        candidates = find_candidates(
            state.index, lat, lon, radius_m / 1000, self._max_candidates
        )

        seen: set[str] = set()
        matches: list[StationMatch] = []
        for station_id in candidates:
            if station_id in seen:
                continue
            seen.add(station_id)
            coordinate = state.index.coordinates.get(station_id)
            station = state.by_id.get(station_id)
            if coordinate is None or station is None:
                continue
            station_lat, station_lon = coordinate
            if approximate_distance_m(lat, lon, station_lat, station_lon) > approx_limit:
                continue
            distance = haversine_m(lat, lon, station_lat, station_lon)
            if distance > radius_m:
                continue
            matches.append(StationMatch(station=station, distance_m=distance))

        matches.sort(key=lambda match: match.distance_m)
        return tuple(_apply_limit(matches, query.limit))

    def _resolve_filtered(
        self, state: _IndexedSnapshot, query: StationQuery
    ) -> QueryResult:
        stations: Sequence[StationRecord] = state.snapshot.stations
        if query.federal_states:
            wanted = {state_name.casefold() for state_name in query.federal_states}
            stations = [
                station
                for station in stations
                if station.federal_state is not None
                and station.federal_state.casefold() in wanted
            ]
        if query.patterns:
            compiled = [compile_wildcard(pattern) for pattern in query.patterns]
            stations = [
                station
                for station in stations
                if any(regex.match(normalize_name(station.name)) for regex in compiled)
            ]
        return tuple(
            StationMatch(station=station)
            for station in _apply_limit(stations, query.limit)
        )


__all__ = [
    "QueryResult",
    "StationQuery",
    "StationQueryService",
    "compile_wildcard",
    "normalize_name",
]
