from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from app.core.config import Settings, get_settings
from app.core.metrics import observe_upstream_request
from app.services.station_data_client import marketplace_headers
from app.services.timetable_errors import TimetableParseError, TimetableServiceError
from app.services.timetable_xml import parse_timetable_xml

logger = logging.getLogger(__name__)

BERLIN = ZoneInfo("Europe/Berlin")


def current_plan_slot(now: datetime | None = None) -> tuple[str, str]:
    """Return the (YYMMDD, HH) plan slot for ``now`` in German local time."""
    local = (now or datetime.now(BERLIN)).astimezone(BERLIN)
    return local.strftime("%y%m%d"), local.strftime("%H")


def next_plan_slot(date: str, hour: str) -> tuple[str, str]:
    """Return the slot one hour after (date, hour), rolling over midnight."""
    slot = datetime.strptime(f"{date}{hour}", "%y%m%d%H") + timedelta(hours=1)
    return slot.strftime("%y%m%d"), slot.strftime("%H")


class TimetableClient:
    """Async client for the DB Timetables (IRIS) API."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings or get_settings()
        self._transport = transport

    async def get_plan(self, eva_number: str, date: str, hour: str) -> dict[str, Any]:
        """Planned timetable for one station and one hour slice."""
        return await self._get_document("plan", f"/plan/{eva_number}/{date}/{hour}")

    async def get_full_changes(self, eva_number: str) -> dict[str, Any]:
        """All known changes for a station."""
        return await self._get_document("fchg", f"/fchg/{eva_number}")

    async def get_recent_changes(self, eva_number: str) -> dict[str, Any]:
        """Changes of the last two minutes for a station."""
        return await self._get_document("rchg", f"/rchg/{eva_number}")

    async def _get_document(self, endpoint: str, path: str) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                base_url=self._settings.db_timetables_url,
                timeout=self._settings.upstream_timeout_seconds,
                headers={
                    **marketplace_headers(self._settings),
                    "Accept": "application/xml",
                },
                transport=self._transport,
            ) as client:
                response = await client.get(path)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            observe_upstream_request(endpoint, "timeout", time.perf_counter() - start)
            raise TimetableServiceError(
                f"Timed out fetching timetable data ({endpoint})."
            ) from exc
        except httpx.HTTPError as exc:
            observe_upstream_request(endpoint, "error", time.perf_counter() - start)
            raise TimetableServiceError(
                f"Failed to fetch timetable data ({endpoint}): {exc}"
            ) from exc

        try:
            document = parse_timetable_xml(response.content)
        except TimetableParseError:
            observe_upstream_request(endpoint, "parse_error", time.perf_counter() - start)
            logger.warning("Unparseable %s response for %s", endpoint, path)
            raise

        observe_upstream_request(endpoint, "success", time.perf_counter() - start)
        return document


__all__ = ["TimetableClient", "current_plan_slot", "next_plan_slot"]
