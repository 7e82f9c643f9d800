"""
Grid bucket index over station coordinates.

The plane is cut into square cells of ``cell_size`` degrees. Each station id
is stored in the bucket of its cell and, when it lies within
``margin * cell_size`` of a cell edge, in the neighbouring bucket across
that edge as well. Queries walk concentric rings of cells around the query
cell and return an over-inclusive, unsorted candidate list; callers apply
the exact distance filter.

The index is plain data (``GridIndex``) so it can be written to disk and
read back without rebuilding; all behaviour lives in module functions.
"""

from __future__ import annotations

import logging
import math
import time
from collections import defaultdict
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping

from app.services.file_cache import read_json_document, write_json_document
from app.services.geo import KM_PER_DEGREE_LATITUDE
from app.services.station_dto import StationSnapshot

logger = logging.getLogger(__name__)

CellKey = tuple[int, int]

INDEX_FILENAME = "stations_index.json"
DEFAULT_CELL_SIZE = 0.1
DEFAULT_BOUNDARY_MARGIN = 0.1
DEFAULT_MAX_CANDIDATES = 200

# Keeps ring counts finite close to the poles where cos(lat) tends to zero.
_MIN_LONGITUDE_SCALE = 0.01


@dataclass(frozen=True)
class GridIndex:
    """Serializable grid index derived from one station snapshot."""

    cell_size: float
    buckets: Mapping[CellKey, tuple[str, ...]]
    coordinates: Mapping[str, tuple[float, float]]
    built_at: float
    snapshot_captured_at: float

    @property
    def station_count(self) -> int:
        return len(self.coordinates)

    @property
    def cell_count(self) -> int:
        return len(self.buckets)

    @cached_property
    def bounds(self) -> tuple[int, int, int, int] | None:
        """(min_lat_cell, max_lat_cell, min_lon_cell, max_lon_cell) of occupied cells."""
        if not self.buckets:
            return None
        lat_cells = [key[0] for key in self.buckets]
        lon_cells = [key[1] for key in self.buckets]
        return min(lat_cells), max(lat_cells), min(lon_cells), max(lon_cells)


def cell_key(latitude: float, longitude: float, cell_size: float) -> CellKey:
    return math.floor(latitude / cell_size), math.floor(longitude / cell_size)


def _edge_steps(offset: float, cell_size: float, band: float) -> list[int]:
    steps = [0]
    if offset < band:
        steps.append(-1)
    if cell_size - offset < band:
        steps.append(1)
    return steps


def cells_for_point(
    latitude: float, longitude: float, cell_size: float, margin: float
) -> list[CellKey]:
    """Primary cell of a point plus the neighbours whose edge it hugs."""
    lat_cell, lon_cell = cell_key(latitude, longitude, cell_size)
    band = margin * cell_size
    lat_steps = _edge_steps(latitude - lat_cell * cell_size, cell_size, band)
    lon_steps = _edge_steps(longitude - lon_cell * cell_size, cell_size, band)
    return [
        (lat_cell + lat_step, lon_cell + lon_step)
        for lat_step in lat_steps
        for lon_step in lon_steps
    ]


def build_grid_index(
    snapshot: StationSnapshot,
    cell_size: float = DEFAULT_CELL_SIZE,
    margin: float = DEFAULT_BOUNDARY_MARGIN,
    built_at: float | None = None,
) -> GridIndex:
    """Build a grid index for every station with a resolvable coordinate."""
    if cell_size <= 0:
        raise ValueError("cell_size must be > 0")

    buckets: dict[CellKey, list[str]] = defaultdict(list)
    coordinates: dict[str, tuple[float, float]] = {}
    for station in snapshot.stations:
        coordinate = station.coordinate
        if coordinate is None:
            continue
        coordinates[station.id] = (coordinate.latitude, coordinate.longitude)
        for key in cells_for_point(
            coordinate.latitude, coordinate.longitude, cell_size, margin
        ):
            buckets[key].append(station.id)

    return GridIndex(
        cell_size=cell_size,
        buckets={key: tuple(ids) for key, ids in buckets.items()},
        coordinates=coordinates,
        built_at=time.time() if built_at is None else built_at,
        snapshot_captured_at=snapshot.captured_at,
    )


def rings_needed(radius_km: float, cell_size: float, latitude: float) -> int:
    """Number of rings around the home cell that cover ``radius_km``.

    Cells are narrower in longitude than in latitude away from the equator,
    so the ring count is derived from the longitudinal cell width.
    """
    if radius_km <= 0:
        return 0
    scale = max(math.cos(math.radians(latitude)), _MIN_LONGITUDE_SCALE)
    return math.ceil(radius_km / (cell_size * KM_PER_DEGREE_LATITUDE * scale))


def ring_cells(home: CellKey, ring: int) -> Iterator[CellKey]:
    """Cells at Chebyshev distance ``ring`` from ``home``."""
    home_lat, home_lon = home
    if ring == 0:
        yield home
        return
    for step in range(-ring, ring + 1):
        yield home_lat - ring, home_lon + step
        yield home_lat + ring, home_lon + step
    for step in range(-ring + 1, ring):
        yield home_lat + step, home_lon - ring
        yield home_lat + step, home_lon + ring


def _max_useful_ring(index: GridIndex, home: CellKey) -> int:
    bounds = index.bounds
    if bounds is None:
        return 0
    min_lat, max_lat, min_lon, max_lon = bounds
    return max(
        abs(home[0] - min_lat),
        abs(home[0] - max_lat),
        abs(home[1] - min_lon),
        abs(home[1] - max_lon),
    )


def find_candidates(
    index: GridIndex,
    latitude: float,
    longitude: float,
    radius_km: float,
    max_candidates: int = DEFAULT_MAX_CANDIDATES,
) -> list[str]:
    """Collect station ids from rings of cells around the query point.

    Expansion stops once the rings cover ``radius_km`` or, after completing
    a ring, once ``max_candidates`` ids have been gathered. The result is
    unsorted and may contain duplicates from boundary-margin insertion.
    """
    home = cell_key(latitude, longitude, index.cell_size)
    last_ring = min(
        rings_needed(radius_km, index.cell_size, latitude),
        _max_useful_ring(index, home),
    )

    candidates: list[str] = []
    for ring in range(last_ring + 1):
        for key in ring_cells(home, ring):
            bucket = index.buckets.get(key)
            if bucket:
                candidates.extend(bucket)
        if len(candidates) >= max_candidates:
            break
    return candidates


def grid_index_to_document(index: GridIndex) -> dict[str, Any]:
    return {
        "built_at": index.built_at,
        "snapshot_captured_at": index.snapshot_captured_at,
        "cell_size": index.cell_size,
        "buckets": {
            f"{lat_cell},{lon_cell}": list(ids)
            for (lat_cell, lon_cell), ids in index.buckets.items()
        },
        "coordinates": {
            station_id: [lat, lon] for station_id, (lat, lon) in index.coordinates.items()
        },
    }


def grid_index_from_document(document: Any) -> GridIndex:
    """Reconstitute a GridIndex from its JSON document.

    Raises:
        ValueError: if the document does not have the expected shape.
    """
    if not isinstance(document, dict):
        raise ValueError("Index document must be an object.")
    try:
        buckets: dict[CellKey, tuple[str, ...]] = {}
        for raw_key, ids in document["buckets"].items():
            lat_part, lon_part = raw_key.split(",")
            buckets[(int(lat_part), int(lon_part))] = tuple(str(item) for item in ids)
        coordinates = {
            str(station_id): (float(pair[0]), float(pair[1]))
            for station_id, pair in document["coordinates"].items()
        }
        cell_size = float(document["cell_size"])
        built_at = float(document["built_at"])
        snapshot_captured_at = float(document["snapshot_captured_at"])
    except (KeyError, TypeError, AttributeError, IndexError) as exc:
        raise ValueError(f"Malformed index document: {exc}") from exc

    if cell_size <= 0:
        raise ValueError("Index document has a non-positive cell size.")
    return GridIndex(
        cell_size=cell_size,
        buckets=buckets,
        coordinates=coordinates,
        built_at=built_at,
        snapshot_captured_at=snapshot_captured_at,
    )


class GridIndexFileStore:
    """Persists grid indexes next to the station snapshot."""

    def __init__(
        self,
        cache_dir: Path,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = Path(cache_dir) / INDEX_FILENAME
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def save(self, index: GridIndex) -> None:
        """Write the index to disk. Raises OSError on failure."""
        write_json_document(self._path, grid_index_to_document(index))

    def load(self, snapshot_captured_at: float | None = None) -> GridIndex | None:
        """Load the persisted index if it is recent and matches the snapshot.

        Returns None when the file is missing, malformed, older than the TTL,
        or was built from a different snapshot than ``snapshot_captured_at``.
        """
        document = read_json_document(self._path)
        if document is None:
            return None
        try:
            index = grid_index_from_document(document)
        except ValueError as exc:
            logger.warning("Discarding persisted station index: %s", exc)
            return None

        if self._clock() - index.built_at >= self._ttl_seconds:
            logger.info("Persisted station index is stale, ignoring it")
            return None
        if (
            snapshot_captured_at is not None
            and index.snapshot_captured_at != snapshot_captured_at
        ):
            logger.info("Persisted station index belongs to another snapshot")
            return None
        return index


__all__ = [
    "GridIndex",
    "GridIndexFileStore",
    "INDEX_FILENAME",
    "build_grid_index",
    "cell_key",
    "cells_for_point",
    "find_candidates",
    "grid_index_from_document",
    "grid_index_to_document",
    "ring_cells",
    "rings_needed",
]
