from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from app.core.config import Settings, get_settings
from app.core.metrics import observe_upstream_request
from app.services.station_errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)


def marketplace_headers(settings: Settings) -> dict[str, str]:
    """Authentication headers expected by the DB API Marketplace."""
    return {
        "DB-Client-ID": settings.db_client_id,
        "DB-Api-Key": settings.db_client_secret,
    }


class StationDataClient:
    """Async client for the StaDa station directory."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the station directory client.

        Args:
            settings: Application settings, defaults to the cached instance
            transport: Optional httpx transport, used by tests to stub the API
        """
        self._settings = settings or get_settings()
        self._transport = transport

    async def fetch_stations(self) -> Any:
        """Fetch the complete station list as raw JSON.

        Raises:
            UpstreamUnavailableError: on timeouts, network or HTTP errors, and
                undecodable bodies.
        """
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.upstream_timeout_seconds,
                headers={
                    **marketplace_headers(self._settings),
                    "Accept": "application/json",
                },
                transport=self._transport,
            ) as client:
                response = await client.get(self._settings.db_station_data_url)
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as exc:
            observe_upstream_request("stations", "timeout", time.perf_counter() - start)
            raise UpstreamUnavailableError(
                "Timed out fetching the station directory."
            ) from exc
        except httpx.HTTPError as exc:
            observe_upstream_request("stations", "error", time.perf_counter() - start)
            raise UpstreamUnavailableError(
                f"Failed to fetch the station directory: {exc}"
            ) from exc
        except ValueError as exc:
            observe_upstream_request("stations", "error", time.perf_counter() - start)
            raise UpstreamUnavailableError(
                "Station directory returned an undecodable body."
            ) from exc

        observe_upstream_request("stations", "success", time.perf_counter() - start)
        return payload


__all__ = ["StationDataClient", "marketplace_headers"]
