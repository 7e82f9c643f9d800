from fastapi import APIRouter, Depends

from app.api.v1.shared.dependencies import get_station_query_service
from app.models.stations import HealthResponse
from app.services.station_query import StationQueryService

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def healthcheck(
    service: StationQueryService = Depends(get_station_query_service),
) -> HealthResponse:
    """Readiness probe with station snapshot and index statistics."""
    return HealthResponse.from_stats(service.stats())
