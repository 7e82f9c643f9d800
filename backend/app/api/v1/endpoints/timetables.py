"""
Timetable endpoints.

Proxies the DB Timetables API, converting its XML documents to JSON and
caching them in Valkey with a stale fallback.
"""

import asyncio
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path, Request, Response

from app.api.v1.shared.cache_flow import CacheResult, fetch_with_cache
from app.api.v1.shared.cache_headers import apply_cache_result_headers
from app.api.v1.shared.constants import RATE_LIMIT_BOARD, RATE_LIMIT_TIMETABLE
from app.api.v1.shared.dependencies import get_timetable_client
from app.api.v1.shared.rate_limit import limiter
from app.core.config import Settings, get_settings
from app.services.cache import CacheService, get_cache_service
from app.services.timetable_board import build_station_board
from app.services.timetable_client import (
    TimetableClient,
    current_plan_slot,
    next_plan_slot,
)

router = APIRouter()

# Cache names for metrics
_CACHE_PLAN = "timetable_plan"
_CACHE_FULL_CHANGES = "timetable_fchg"
_CACHE_RECENT_CHANGES = "timetable_rchg"

EvaPath = Annotated[str, Path(pattern=r"^\d+$", description="EVA station number.")]
DatePath = Annotated[str, Path(pattern=r"^\d{6}$", description="Date as YYMMDD.")]
HourPath = Annotated[str, Path(pattern=r"^([01]\d|2[0-3])$", description="Hour as HH.")]


def plan_cache_key(eva: str, date: str, hour: str) -> str:
    return f"timetable:plan:{eva}:{date}:{hour}"


def changes_cache_key(kind: str, eva: str) -> str:
    return f"timetable:{kind}:{eva}"


async def _cached_plan(
    cache: CacheService,
    client: TimetableClient,
    settings: Settings,
    eva: str,
    date: str,
    hour: str,
) -> CacheResult:
    return await fetch_with_cache(
        cache,
        plan_cache_key(eva, date, hour),
        _CACHE_PLAN,
        lambda: client.get_plan(eva, date, hour),
        settings,
        ttl_seconds=settings.timetable_plan_cache_ttl_seconds,
        stale_ttl_seconds=settings.timetable_plan_cache_stale_ttl_seconds,
    )


async def _cached_full_changes(
    cache: CacheService, client: TimetableClient, settings: Settings, eva: str
) -> CacheResult:
    return await fetch_with_cache(
        cache,
        changes_cache_key("fchg", eva),
        _CACHE_FULL_CHANGES,
        lambda: client.get_full_changes(eva),
        settings,
        ttl_seconds=settings.timetable_changes_cache_ttl_seconds,
        stale_ttl_seconds=settings.timetable_changes_cache_stale_ttl_seconds,
    )


async def load_station_board(
    cache: CacheService, client: TimetableClient, settings: Settings, eva: str
) -> CacheResult:
    """Board for the current and next hour; status is the worst of its parts."""
    date, hour = current_plan_slot()
    next_date, next_hour = next_plan_slot(date, hour)

    current, upcoming, changes = await asyncio.gather(
        _cached_plan(cache, client, settings, eva, date, hour),
        _cached_plan(cache, client, settings, eva, next_date, next_hour),
        _cached_full_changes(cache, client, settings, eva),
    )

    statuses = {current.status, upcoming.status, changes.status}
    if "stale" in statuses:
        status = "stale"
    elif "miss" in statuses:
        status = "miss"
    else:
        status = "hit"
    board = build_station_board(
        eva, date, hour, current.data, upcoming.data, changes.data
    )
    return CacheResult(data=board, status=status)


async def _plan_response(
    response: Response,
    client: TimetableClient,
    cache: CacheService,
    eva: str,
    date: str | None = None,
    hour: str | None = None,
) -> dict[str, Any]:
    """Date and hour default to now in German local time."""
    settings = get_settings()
    today, this_hour = current_plan_slot()
    result = await _cached_plan(
        cache, client, settings, eva, date or today, hour or this_hour
    )
    apply_cache_result_headers(
        response, result, settings.timetable_plan_cache_ttl_seconds
    )
    return result.data


@router.get("/plan/{eva}", summary="Planned timetable for the current hour")
@limiter.limit(RATE_LIMIT_TIMETABLE.value)
async def get_current_plan(
    request: Request,
    response: Response,
    eva: EvaPath,
    client: TimetableClient = Depends(get_timetable_client),
    cache: CacheService = Depends(get_cache_service),
) -> dict[str, Any]:
    return await _plan_response(response, client, cache, eva)


@router.get(
    "/plan/{eva}/{date}", summary="Planned timetable for the current hour of a date"
)
@limiter.limit(RATE_LIMIT_TIMETABLE.value)
async def get_plan_for_date(
    request: Request,
    response: Response,
    eva: EvaPath,
    date: DatePath,
    client: TimetableClient = Depends(get_timetable_client),
    cache: CacheService = Depends(get_cache_service),
) -> dict[str, Any]:
    return await _plan_response(response, client, cache, eva, date)


@router.get("/plan/{eva}/{date}/{hour}", summary="Planned timetable for one hour")
@limiter.limit(RATE_LIMIT_TIMETABLE.value)
async def get_plan(
    request: Request,
    response: Response,
    eva: EvaPath,
    date: DatePath,
    hour: HourPath,
    client: TimetableClient = Depends(get_timetable_client),
    cache: CacheService = Depends(get_cache_service),
) -> dict[str, Any]:
    return await _plan_response(response, client, cache, eva, date, hour)


@router.get("/fchg/{eva}", summary="All known changes for a station")
@limiter.limit(RATE_LIMIT_TIMETABLE.value)
async def get_full_changes(
    request: Request,
    response: Response,
    eva: EvaPath,
    client: TimetableClient = Depends(get_timetable_client),
    cache: CacheService = Depends(get_cache_service),
) -> dict[str, Any]:
    settings = get_settings()
    result = await _cached_full_changes(cache, client, settings, eva)
    apply_cache_result_headers(
        response, result, settings.timetable_changes_cache_ttl_seconds
    )
    return result.data


@router.get("/rchg/{eva}", summary="Changes of the last two minutes for a station")
@limiter.limit(RATE_LIMIT_TIMETABLE.value)
async def get_recent_changes(
    request: Request,
    response: Response,
    eva: EvaPath,
    client: TimetableClient = Depends(get_timetable_client),
    cache: CacheService = Depends(get_cache_service),
) -> dict[str, Any]:
    settings = get_settings()
    result = await fetch_with_cache(
        cache,
        changes_cache_key("rchg", eva),
        _CACHE_RECENT_CHANGES,
        lambda: client.get_recent_changes(eva),
        settings,
        ttl_seconds=settings.timetable_changes_cache_ttl_seconds,
        stale_ttl_seconds=settings.timetable_changes_cache_stale_ttl_seconds,
    )
    apply_cache_result_headers(
        response, result, settings.timetable_changes_cache_ttl_seconds
    )
    return result.data


@router.get(
    "/board/{eva}",
    summary="Departure board for the current and the next hour",
)
@limiter.limit(RATE_LIMIT_BOARD.value)
async def get_board(
    request: Request,
    response: Response,
    eva: EvaPath,
    client: TimetableClient = Depends(get_timetable_client),
    cache: CacheService = Depends(get_cache_service),
) -> dict[str, Any]:
    settings = get_settings()
    result = await load_station_board(cache, client, settings, eva)
    apply_cache_result_headers(
        response, result, settings.timetable_changes_cache_ttl_seconds
    )
    return result.data
