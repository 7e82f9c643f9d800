from contextlib import asynccontextmanager, suppress
import asyncio
import logging

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.metrics import router as metrics_router
from app.api.v1.routes import router as api_router
from app.api.v1.shared.rate_limit import limiter
from app.core.config import Settings, get_settings
from app.core.telemetry import (
    configure_opentelemetry,
    instrument_fastapi,
    instrument_httpx,
)
from app.services.station_errors import UpstreamUnavailableError
from app.services.station_query import StationQueryService

logger = logging.getLogger(__name__)
REQUEST_ID_HEADER = "X-Request-Id"


def _configure_httpx_logging(log_requests: bool) -> None:
    """
    Keep httpx/httpcore request lines out of the log.

    Every Marketplace call would otherwise log at INFO; set
    UPSTREAM_LOG_REQUESTS=true to see them.
    """
    level = logging.INFO if log_requests else logging.WARNING
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(level)


def _install_request_id_middleware(app: FastAPI) -> None:
    """Echo the caller's X-Request-Id, or mint one, on every response."""

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _install_cors(app: FastAPI, settings: Settings) -> None:
    origins = settings.cors_allow_origins
    origin_regex = settings.cors_allow_origin_regex
    if not origins and not origin_regex:
        return
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_origin_regex=origin_regex,
        allow_credentials=bool(origins),
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, "X-Cache-Status"],
    )


async def _warm_up_stations(service: StationQueryService) -> None:
    try:
        await service.warm_up()
    except UpstreamUnavailableError as exc:
        logger.warning("Station warm-up failed, first query will retry: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_opentelemetry(
        service_name=settings.otel_service_name,
        service_version=settings.otel_service_version,
        otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        otlp_headers=settings.otel_exporter_otlp_headers,
        enabled=settings.otel_enabled,
    )
    instrument_httpx(enabled=settings.otel_enabled)

    if getattr(app.state, "station_service", None) is None:
        app.state.station_service = StationQueryService.from_settings(settings)

    warmup: asyncio.Task[None] | None = None
    if settings.station_warmup_on_startup:
        warmup = asyncio.create_task(_warm_up_stations(app.state.station_service))

    yield

    if warmup is not None and not warmup.done():
        warmup.cancel()
        with suppress(asyncio.CancelledError):
            await warmup


def create_app() -> FastAPI:
    settings = get_settings()
    _configure_httpx_logging(settings.upstream_log_requests)

    app = FastAPI(
        title="Tramlines API",
        description=(
            "Station lookup and timetables from the Deutsche Bahn API "
            "Marketplace, backed by a grid index and a shared cache."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    instrument_fastapi(app, enabled=settings.otel_enabled)
    _install_request_id_middleware(app)
    _install_cors(app, settings)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.include_router(metrics_router)
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
