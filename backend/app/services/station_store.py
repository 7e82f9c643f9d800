"""
Station snapshot ownership.

The store keeps exactly one immutable StationSnapshot in memory and a copy
on disk. A snapshot older than the configured TTL triggers a refresh from
the station directory; concurrent triggers share one upstream fetch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Callable

from app.core.metrics import record_snapshot_event
from app.services.file_cache import read_json_document, write_json_document
from app.services.station_data_client import StationDataClient
from app.services.station_dto import StationRecord, StationSnapshot
from app.services.station_errors import StationNotFoundError, UpstreamUnavailableError
from app.services.station_mapping import map_snapshot

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "stations_cache.json"


class StationStore:
    """Owner of the current station snapshot."""

    def __init__(
        self,
        client: StationDataClient,
        cache_dir: Path,
        ttl_seconds: float,
        *,
        serve_stale_on_failure: bool = True,
        refresh_retry_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._path = Path(cache_dir) / SNAPSHOT_FILENAME
        self._ttl_seconds = ttl_seconds
        self._serve_stale = serve_stale_on_failure
        self._retry_seconds = refresh_retry_seconds
        self._clock = clock
        self._monotonic = monotonic

        self._snapshot: StationSnapshot | None = None
        self._by_id: dict[str, StationRecord] = {}
        self._by_eva: dict[int, StationRecord] = {}
        self._refresh_lock = asyncio.Lock()
        self._retry_after = 0.0
        self._last_error: UpstreamUnavailableError | None = None

    @property
    def snapshot(self) -> StationSnapshot | None:
        return self._snapshot

    @property
    def cache_path(self) -> Path:
        return self._path

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def is_fresh(self, snapshot: StationSnapshot | None) -> bool:
        if snapshot is None:
            return False
        return snapshot.age_seconds(self._clock()) < self._ttl_seconds

    async def ensure_fresh(self) -> StationSnapshot:
        """Return a snapshot younger than the TTL, refreshing it if needed.

        Raises:
            UpstreamUnavailableError: if the refresh fails and no snapshot can
                be served in its place.
        """
        snapshot = self._snapshot
        if self.is_fresh(snapshot):
            return snapshot
        if snapshot is not None and self._in_backoff():
            return snapshot

        async with self._refresh_lock:
            snapshot = self._snapshot
            if self.is_fresh(snapshot):
                return snapshot
            if self._in_backoff():
                if snapshot is not None:
                    return snapshot
                if self._last_error is not None:
                    raise self._last_error

            if snapshot is None:
                persisted = await asyncio.to_thread(self._load_persisted)
                if persisted is not None and self.is_fresh(persisted):
                    self._install(persisted)
                    record_snapshot_event("disk_load")
                    logger.info(
                        "Loaded %d stations from %s", len(persisted.stations), self._path
                    )
                    return persisted
                fallback = persisted
            else:
                fallback = snapshot

            try:
                return await self._refresh()
            except UpstreamUnavailableError as exc:
                self._retry_after = self._monotonic() + self._retry_seconds
                self._last_error = exc
                if fallback is not None and self._serve_stale:
                    record_snapshot_event("stale_served")
                    logger.warning(
                        "Station refresh failed, serving snapshot captured at %s: %s",
                        fallback.captured_at,
                        exc,
                    )
                    if fallback is not self._snapshot:
                        self._install(fallback)
                    return fallback
                record_snapshot_event("refresh_failed")
                raise

    async def get_by_id(self, station_id: str) -> StationRecord:
        """Resolve a station by StaDa number, falling back to EVA numbers.

        Raises:
            StationNotFoundError: if neither table knows the identifier.
        """
        await self.ensure_fresh()
        key = station_id.strip()
        station = self._by_id.get(key)
        if station is None and key.isdigit():
            station = self._by_eva.get(int(key))
        if station is None:
            raise StationNotFoundError(f"Station '{station_id}' not found.")
        return station

    def _in_backoff(self) -> bool:
        return self._monotonic() < self._retry_after

    async def _refresh(self) -> StationSnapshot:
        logger.info("Refreshing station snapshot from upstream")
        payload = await self._client.fetch_stations()
        captured_at = self._clock()
        snapshot = map_snapshot(payload, captured_at)
        if not snapshot.stations:
            raise UpstreamUnavailableError("Station directory returned no stations.")
        if snapshot.skipped_records:
            logger.warning(
                "Skipped %d malformed station records", snapshot.skipped_records
            )

        self._install(snapshot)
        self._retry_after = 0.0
        self._last_error = None
        record_snapshot_event("refresh")
        logger.info("Station snapshot refreshed with %d stations", len(snapshot.stations))

        await self._persist(payload, captured_at)
        return snapshot

    def _install(self, snapshot: StationSnapshot) -> None:
        by_id = {station.id: station for station in snapshot.stations}
        by_eva: dict[int, StationRecord] = {}
        for station in snapshot.stations:
            for eva in station.eva_numbers:
                by_eva.setdefault(eva.number, station)
        self._by_id = by_id
        self._by_eva = by_eva
        self._snapshot = snapshot

    async def _persist(self, payload: Any, captured_at: float) -> None:
        try:
            await asyncio.to_thread(
                write_json_document,
                self._path,
                {"timestamp": captured_at, "data": payload},
            )
        except OSError as exc:
            record_snapshot_event("persist_failed")
            logger.warning("Failed to persist station snapshot to %s: %s", self._path, exc)

    def _load_persisted(self) -> StationSnapshot | None:
        document = read_json_document(self._path)
        if not isinstance(document, dict):
            return None
        timestamp = document.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            return None
        snapshot = map_snapshot(document.get("data"), float(timestamp))
        return snapshot if snapshot.stations else None


__all__ = ["StationStore", "SNAPSHOT_FILENAME"]
