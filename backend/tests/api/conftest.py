from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

import pytest
from fastapi.testclient import TestClient

from app.api.v1.shared.dependencies import (
    get_station_query_service,
    get_timetable_client,
)
from app.api.v1.shared.rate_limit import limiter
from app.main import create_app
from app.services.cache import get_cache_service
from app.services.station_query import StationQueryService
from app.services.timetable_errors import TimetableServiceError


@dataclass
class CacheScenario:
    """Configuration for fake cache behavior."""

    fresh_value: dict[str, Any] | None = None
    stale_value: dict[str, Any] | None = None


class FakeCacheService:
    """Lightweight fake CacheService for testing."""

    def __init__(self) -> None:
        self._cache: dict[str, CacheScenario] = {}
        self.recorded_sets: list[tuple[str, Any, int | None, int | None]] = []
        self._lock_timeout = False

    def configure(self, key: str, scenario: CacheScenario) -> None:
        """Set up cache behavior for a specific key."""
        self._cache[key] = scenario

    def set_lock_timeout(self, enabled: bool) -> None:
        """Control whether single_flight raises TimeoutError."""
        self._lock_timeout = enabled

    async def get_json(self, key: str) -> dict[str, Any] | None:
        scenario = self._cache.get(key)
        if scenario is None:
            return None
        return scenario.fresh_value

    async def get_stale_json(self, key: str) -> dict[str, Any] | None:
        scenario = self._cache.get(key)
        if scenario is None:
            return None
        return scenario.stale_value

    async def set_json(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
        stale_ttl_seconds: int | None = None,
    ) -> None:
        """Record the set operation and serve the value on later reads."""
        self.recorded_sets.append((key, value, ttl_seconds, stale_ttl_seconds))
        self._cache[key] = CacheScenario(fresh_value=value, stale_value=value)

    @asynccontextmanager
    async def single_flight(
        self,
        key: str,
        ttl_seconds: int,
        wait_timeout: float,
        retry_delay: float,
    ) -> AsyncIterator[None]:
        """Simulate single-flight lock behavior."""
        if self._lock_timeout:
            raise TimeoutError("Timed out acquiring cache lock for key")
        yield


class FakeTimetableClient:
    """Returns canned Timetables API documents keyed by request path."""

    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []
        self.fail = False

    async def _respond(self, path: str) -> dict[str, Any]:
        self.calls.append(path)
        if self.fail:
            raise TimetableServiceError("Timetables API unavailable")
        return self.documents.get(path, {"timetable": ""})

    async def get_plan(self, eva_number: str, date: str, hour: str) -> dict[str, Any]:
        return await self._respond(f"/plan/{eva_number}/{date}/{hour}")

    async def get_full_changes(self, eva_number: str) -> dict[str, Any]:
        return await self._respond(f"/fchg/{eva_number}")

    async def get_recent_changes(self, eva_number: str) -> dict[str, Any]:
        return await self._respond(f"/rchg/{eva_number}")


@pytest.fixture
def fake_cache() -> FakeCacheService:
    return FakeCacheService()


@pytest.fixture
def fake_timetables() -> FakeTimetableClient:
    return FakeTimetableClient()


@pytest.fixture
def api_client(
    fake_cache: FakeCacheService,
    fake_timetables: FakeTimetableClient,
    station_service: StationQueryService,
) -> TestClient:
    limiter.reset()
    app = create_app()
    app.state.station_service = station_service
    app.dependency_overrides[get_cache_service] = lambda: fake_cache
    app.dependency_overrides[get_timetable_client] = lambda: fake_timetables
    app.dependency_overrides[get_station_query_service] = lambda: station_service
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
