"""Tests for station snapshot ownership and refresh."""

from __future__ import annotations

import asyncio
import json

import pytest

from app.services.station_errors import StationNotFoundError, UpstreamUnavailableError
from app.services.station_store import SNAPSHOT_FILENAME, StationStore
from tests.station_fixtures import (
    STATION_A,
    STATION_B,
    FakeStationDataClient,
    ManualClock,
    station_payload,
)

TTL = 3600


def _write_snapshot(directory, timestamp, payload):
    (directory / SNAPSHOT_FILENAME).write_text(
        json.dumps({"timestamp": timestamp, "data": payload}), encoding="utf-8"
    )


def _store(client, directory, clock, **kwargs):
    kwargs.setdefault("refresh_retry_seconds", 0)
    return StationStore(client, directory, TTL, clock=clock, **kwargs)


class TestEnsureFresh:
    @pytest.mark.asyncio
    async def test_fetches_once_and_persists(self, tmp_path, clock):
        client = FakeStationDataClient(station_payload(STATION_A, STATION_B))
        store = _store(client, tmp_path, clock)

        first = await store.ensure_fresh()
        second = await store.ensure_fresh()

        assert first is second
        assert client.calls == 1
        assert [s.id for s in first.stations] == ["1", "2"]
        persisted = json.loads(store.cache_path.read_text(encoding="utf-8"))
        assert persisted["timestamp"] == clock.now
        assert persisted["data"]["result"][0]["name"] == "Alpha"

    @pytest.mark.asyncio
    async def test_fresh_disk_copy_skips_upstream(self, tmp_path, clock):
        _write_snapshot(tmp_path, clock.now - 60, station_payload(STATION_A))
        client = FakeStationDataClient(error=UpstreamUnavailableError("down"))
        store = _store(client, tmp_path, clock)

        snapshot = await store.ensure_fresh()

        assert client.calls == 0
        assert snapshot.captured_at == clock.now - 60
        assert [s.name for s in snapshot.stations] == ["Alpha"]

    @pytest.mark.asyncio
    async def test_stale_disk_copy_is_refreshed(self, tmp_path, clock):
        _write_snapshot(tmp_path, clock.now - TTL - 1, station_payload(STATION_A))
        client = FakeStationDataClient(station_payload(STATION_A, STATION_B))
        store = _store(client, tmp_path, clock)

        snapshot = await store.ensure_fresh()

        assert client.calls == 1
        assert len(snapshot.stations) == 2

    @pytest.mark.asyncio
    async def test_expired_memory_snapshot_is_refreshed(self, tmp_path, clock):
        client = FakeStationDataClient(station_payload(STATION_A))
        store = _store(client, tmp_path, clock)
        first = await store.ensure_fresh()

        clock.advance(TTL)
        second = await store.ensure_fresh()

        assert client.calls == 2
        assert second is not first
        assert second.captured_at == clock.now

    @pytest.mark.asyncio
    async def test_stale_snapshot_served_when_upstream_fails(self, tmp_path, clock):
        _write_snapshot(tmp_path, clock.now - TTL - 1, station_payload(STATION_A))
        client = FakeStationDataClient(error=UpstreamUnavailableError("down"))
        store = _store(client, tmp_path, clock)

        snapshot = await store.ensure_fresh()

        assert client.calls == 1
        assert [s.name for s in snapshot.stations] == ["Alpha"]
        assert store.snapshot is snapshot

    @pytest.mark.asyncio
    async def test_failure_without_snapshot_raises(self, tmp_path, clock):
        client = FakeStationDataClient(error=UpstreamUnavailableError("down"))
        store = _store(client, tmp_path, clock)

        with pytest.raises(UpstreamUnavailableError):
            await store.ensure_fresh()

    @pytest.mark.asyncio
    async def test_stale_serving_can_be_disabled(self, tmp_path, clock):
        _write_snapshot(tmp_path, clock.now - TTL - 1, station_payload(STATION_A))
        client = FakeStationDataClient(error=UpstreamUnavailableError("down"))
        store = _store(client, tmp_path, clock, serve_stale_on_failure=False)

        with pytest.raises(UpstreamUnavailableError):
            await store.ensure_fresh()

    @pytest.mark.asyncio
    async def test_failed_refresh_backs_off(self, tmp_path, clock):
        _write_snapshot(tmp_path, clock.now - TTL - 1, station_payload(STATION_A))
        monotonic = ManualClock(now=0.0)
        client = FakeStationDataClient(error=UpstreamUnavailableError("down"))
        store = _store(
            client, tmp_path, clock, refresh_retry_seconds=60, monotonic=monotonic
        )

        await store.ensure_fresh()
        await store.ensure_fresh()
        assert client.calls == 1

        monotonic.advance(61)
        await store.ensure_fresh()
        assert client.calls == 2

    @pytest.mark.asyncio
    async def test_empty_directory_is_treated_as_failure(self, tmp_path, clock):
        client = FakeStationDataClient(station_payload())
        store = _store(client, tmp_path, clock)

        with pytest.raises(UpstreamUnavailableError):
            await store.ensure_fresh()

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self, tmp_path, clock):
        client = FakeStationDataClient(station_payload(STATION_A), delay=0.05)
        store = _store(client, tmp_path, clock)

        results = await asyncio.gather(*(store.ensure_fresh() for _ in range(5)))

        assert client.calls == 1
        assert all(result is results[0] for result in results)

    @pytest.mark.asyncio
    async def test_persist_failure_keeps_snapshot(self, tmp_path, clock):
        blocker = tmp_path / "not-a-directory"
        blocker.write_text("", encoding="utf-8")
        client = FakeStationDataClient(station_payload(STATION_A))
        store = _store(client, blocker, clock)

        snapshot = await store.ensure_fresh()

        assert len(snapshot.stations) == 1
        assert not store.cache_path.exists()


class TestGetById:
    @pytest.mark.asyncio
    async def test_resolves_station_number_and_eva(self, tmp_path, clock):
        client = FakeStationDataClient(station_payload(STATION_A, STATION_B))
        store = _store(client, tmp_path, clock)

        assert (await store.get_by_id("2")).name == "Beta"
        assert (await store.get_by_id("8000001")).name == "Alpha"

    @pytest.mark.asyncio
    async def test_unknown_id_raises(self, tmp_path, clock):
        client = FakeStationDataClient(station_payload(STATION_A))
        store = _store(client, tmp_path, clock)

        with pytest.raises(StationNotFoundError):
            await store.get_by_id("424242")
