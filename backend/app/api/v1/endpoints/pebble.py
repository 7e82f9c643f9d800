"""
Compact endpoints for Pebble watch clients.

Small screens only need the name, the distance and the EVA number of a
station, and a handful of fields per departure, so everything is sent as
short arrays or flat objects.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path, Query, Request, Response

from app.api.v1.endpoints.timetables import EvaPath, load_station_board
from app.api.v1.shared.cache_headers import apply_cache_result_headers
from app.api.v1.shared.constants import RATE_LIMIT_BOARD, RATE_LIMIT_STATIONS
from app.api.v1.shared.dependencies import (
    get_station_query_service,
    get_timetable_client,
)
from app.api.v1.shared.errors import (
    departure_not_found,
    invalid_query,
    no_station_nearby,
    stations_unavailable,
)
from app.api.v1.shared.rate_limit import limiter
from app.core.config import get_settings
from app.models.stations import pebble_entry
from app.services.cache import CacheService, get_cache_service
from app.services.pebble_departures import departure_detail, departure_rows
from app.services.station_errors import InvalidQueryError, UpstreamUnavailableError
from app.services.station_query import QueryResult, StationQuery, StationQueryService
from app.services.timetable_client import TimetableClient

router = APIRouter()

DEFAULT_RADIUS_METERS = 5000.0

PebbleStation = tuple[str, float, int]

LatQuery = Annotated[float | None, Query(description="Latitude of the watch.")]
LonQuery = Annotated[float | None, Query(description="Longitude of the watch.")]
RadiusQuery = Annotated[
    float, Query(ge=0, description="Search radius in metres (default: 5000).")
]


async def _nearby(
    service: StationQueryService, lat: float | None, lon: float | None, radius: float
) -> QueryResult:
    if lat is None or lon is None:
        raise invalid_query("Missing lat or lon parameter.")
    try:
        query = StationQuery.from_params(lat=lat, lon=lon, radius=radius)
        return await service.query(query)
    except InvalidQueryError as exc:
        raise invalid_query(str(exc)) from exc
    except UpstreamUnavailableError as exc:
        raise stations_unavailable(str(exc)) from exc


@router.get(
    "/stations",
    response_model=list[PebbleStation],
    summary="Nearby stations as [name, distance_km, eva_number]",
)
@limiter.limit(RATE_LIMIT_STATIONS.value)
async def nearby_stations(
    request: Request,
    lat: LatQuery = None,
    lon: LonQuery = None,
    radius: RadiusQuery = DEFAULT_RADIUS_METERS,
    service: StationQueryService = Depends(get_station_query_service),
) -> list[PebbleStation]:
    matches = await _nearby(service, lat, lon, radius)
    return [pebble_entry(match) for match in matches]


@router.get(
    "/current/{eva}",
    summary="Departures as [id, category, line, destination, time, platform]",
)
@limiter.limit(RATE_LIMIT_BOARD.value)
async def current_departures(
    request: Request,
    response: Response,
    eva: EvaPath,
    client: TimetableClient = Depends(get_timetable_client),
    cache: CacheService = Depends(get_cache_service),
) -> list[list[Any]]:
    settings = get_settings()
    result = await load_station_board(cache, client, settings, eva)
    apply_cache_result_headers(
        response, result, settings.timetable_changes_cache_ttl_seconds
    )
    return departure_rows(result.data)


@router.get(
    "/currentLocation",
    summary="Nearest station and its departures",
)
@limiter.limit(RATE_LIMIT_BOARD.value)
async def current_location(
    request: Request,
    response: Response,
    lat: LatQuery = None,
    lon: LonQuery = None,
    radius: RadiusQuery = DEFAULT_RADIUS_METERS,
    service: StationQueryService = Depends(get_station_query_service),
    client: TimetableClient = Depends(get_timetable_client),
    cache: CacheService = Depends(get_cache_service),
) -> dict[str, Any]:
    matches = await _nearby(service, lat, lon, radius)
    if not matches:
        raise no_station_nearby(radius)
    station = pebble_entry(matches[0])

    settings = get_settings()
    result = await load_station_board(cache, client, settings, str(station[2]))
    apply_cache_result_headers(
        response, result, settings.timetable_changes_cache_ttl_seconds
    )
    return {"station": station, "departures": departure_rows(result.data)}


@router.get(
    "/moreinfo/{eva}/{stop_id}",
    summary="Line, times, platform and remaining stops of one departure",
)
@limiter.limit(RATE_LIMIT_BOARD.value)
async def departure_info(
    request: Request,
    response: Response,
    eva: EvaPath,
    stop_id: Annotated[str, Path(description="Stop id from /pebble/current.")],
    client: TimetableClient = Depends(get_timetable_client),
    cache: CacheService = Depends(get_cache_service),
) -> dict[str, Any]:
    settings = get_settings()
    result = await load_station_board(cache, client, settings, eva)
    detail = departure_detail(result.data, stop_id)
    if detail is None:
        raise departure_not_found(eva, stop_id)
    apply_cache_result_headers(
        response, result, settings.timetable_changes_cache_ttl_seconds
    )
    return detail
