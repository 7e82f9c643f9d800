from fastapi import APIRouter

from app.api.v1.endpoints.health import router as health_router
from app.api.v1.endpoints.pebble import router as pebble_router
from app.api.v1.endpoints.stations import router as stations_router
from app.api.v1.endpoints.timetables import router as timetables_router

router = APIRouter()
router.include_router(health_router, tags=["meta"])
router.include_router(stations_router, tags=["stations"])
router.include_router(pebble_router, prefix="/pebble", tags=["pebble"])
router.include_router(timetables_router, prefix="/timetables", tags=["timetables"])
