"""
Station lookup endpoints.

Geographic radius search, wildcard name search and federal state filtering
over the DB station directory, plus single-station lookup.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response

from app.api.v1.shared.cache_headers import set_cache_header
from app.api.v1.shared.constants import RATE_LIMIT_STATIONS
from app.api.v1.shared.dependencies import get_station_query_service
from app.api.v1.shared.errors import (
    invalid_query,
    station_not_found,
    stations_unavailable,
)
from app.api.v1.shared.rate_limit import limiter
from app.core.config import get_settings
from app.models.stations import Station, stations_by_id
from app.services.station_errors import (
    InvalidQueryError,
    StationNotFoundError,
    UpstreamUnavailableError,
)
from app.services.station_query import StationQuery, StationQueryService

router = APIRouter()


@router.get(
    "/stations",
    response_model=dict[str, Station],
    response_model_exclude_unset=True,
    summary="Find stations by location, name or federal state",
    description=(
        "With lat, lon and radius (metres) returns the stations within the "
        "radius ordered by distance. Otherwise filters by searchstring "
        "(comma-separated wildcard patterns, * and ?) and federalstate."
    ),
)
@limiter.limit(RATE_LIMIT_STATIONS.value)
async def list_stations(
    request: Request,
    response: Response,
    lat: Annotated[float | None, Query(description="Latitude of the query point.")] = None,
    lon: Annotated[float | None, Query(description="Longitude of the query point.")] = None,
    radius: Annotated[float | None, Query(description="Search radius in metres.")] = None,
    limit: Annotated[
        int | None, Query(ge=1, description="Maximum number of stations to return.")
    ] = None,
    searchstring: Annotated[
        str | None, Query(description="Comma-separated name patterns, e.g. 'Berlin*,M?nchen'.")
    ] = None,
    federalstate: Annotated[
        list[str] | None, Query(description="Federal state filter; may be repeated.")
    ] = None,
    service: StationQueryService = Depends(get_station_query_service),
) -> dict[str, Station]:
    """Resolve a station query against the current snapshot."""
    try:
        query = StationQuery.from_params(
            lat=lat,
            lon=lon,
            radius=radius,
            limit=limit,
            searchstring=searchstring,
            federal_states=federalstate,
        )
        matches = await service.query(query)
    except InvalidQueryError as exc:
        raise invalid_query(str(exc)) from exc
    except UpstreamUnavailableError as exc:
        raise stations_unavailable(str(exc)) from exc

    set_cache_header(response, get_settings().station_query_cache_ttl_seconds)
    return stations_by_id(matches)


@router.get(
    "/stations/{station_id}",
    response_model=Station,
    response_model_exclude_unset=True,
    summary="Get a station by number or EVA number",
)
@limiter.limit(RATE_LIMIT_STATIONS.value)
async def get_station(
    request: Request,
    station_id: str,
    service: StationQueryService = Depends(get_station_query_service),
) -> Station:
    try:
        record = await service.get_station(station_id)
    except StationNotFoundError as exc:
        raise station_not_found(station_id) from exc
    except UpstreamUnavailableError as exc:
        raise stations_unavailable(str(exc)) from exc
    return Station.from_record(record)
