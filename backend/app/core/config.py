"""Application configuration.

Environment variables are loaded from .env file and can be overridden.
All settings have sensible defaults for local development.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _valkey_alias(env_name: str) -> AliasChoices:
    """Support both VALKEY_* and REDIS_* env var names for compatibility."""
    redis_name = env_name.replace("VALKEY_", "REDIS_")
    return AliasChoices(redis_name, env_name)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ==========================================================================
    # Infrastructure
    # ==========================================================================

    # Environment mode - set to 'production' in production deployments
    environment: str = Field(
        default="development",
        alias="ENVIRONMENT",
        description="Deployment environment: 'development', 'staging', or 'production'.",
    )

    valkey_url: str = Field(
        default="valkey://localhost:6379/0",
        validation_alias=_valkey_alias("VALKEY_URL"),
    )

    # ==========================================================================
    # Deutsche Bahn API Marketplace
    # ==========================================================================

    db_client_id: str = Field(default="", alias="DB_CLIENT_ID")
    db_client_secret: str = Field(default="", alias="DB_CLIENT_SECRET")
    db_station_data_url: str = Field(
        default="https://apis.deutschebahn.com/db-api-marketplace/apis/station-data/v2/stations",
        alias="DB_STATION_DATA_URL",
    )
    db_timetables_url: str = Field(
        default="https://apis.deutschebahn.com/db-api-marketplace/apis/timetables/v1",
        alias="DB_TIMETABLES_URL",
    )
    upstream_timeout_seconds: float = Field(
        default=15.0, alias="UPSTREAM_TIMEOUT_SECONDS", gt=0.0
    )
    upstream_log_requests: bool = Field(default=False, alias="UPSTREAM_LOG_REQUESTS")

    # ==========================================================================
    # Station lookup
    # ==========================================================================

    station_cache_dir: str = Field(default=".tramlines", alias="STATION_CACHE_DIR")
    station_snapshot_ttl_seconds: int = Field(
        default=30 * 24 * 60 * 60, alias="STATION_SNAPSHOT_TTL_SECONDS", gt=0
    )
    station_serve_stale_on_failure: bool = Field(
        default=True, alias="STATION_SERVE_STALE_ON_FAILURE"
    )
    station_refresh_retry_seconds: float = Field(
        default=60.0, alias="STATION_REFRESH_RETRY_SECONDS", ge=0.0
    )
    station_warmup_on_startup: bool = Field(
        default=True, alias="STATION_WARMUP_ON_STARTUP"
    )

    # Grid cell of 0.1 degrees is roughly 11km of latitude
    station_grid_cell_size_degrees: float = Field(
        default=0.1, alias="STATION_GRID_CELL_SIZE_DEGREES", gt=0.0
    )
    station_grid_boundary_margin: float = Field(
        default=0.1, alias="STATION_GRID_BOUNDARY_MARGIN", ge=0.0, lt=0.5
    )
    station_grid_max_candidates: int = Field(
        default=200, alias="STATION_GRID_MAX_CANDIDATES", ge=1
    )
    station_approx_distance_buffer: float = Field(
        default=1.1, alias="STATION_APPROX_DISTANCE_BUFFER", ge=1.0
    )

    station_query_cache_ttl_seconds: float = Field(
        default=300.0, alias="STATION_QUERY_CACHE_TTL_SECONDS", gt=0.0
    )
    station_query_cache_max_entries: int = Field(
        default=20, alias="STATION_QUERY_CACHE_MAX_ENTRIES", ge=1
    )

    # ==========================================================================
    # Cache TTLs (seconds)
    # ==========================================================================

    # Global defaults
    valkey_cache_ttl_seconds: int = Field(
        default=30,
        validation_alias=_valkey_alias("VALKEY_CACHE_TTL_SECONDS"),
    )

    # Planned timetables: published once per hour slice, long TTL
    timetable_plan_cache_ttl_seconds: int = Field(
        default=86400, alias="TIMETABLE_PLAN_CACHE_TTL_SECONDS"
    )
    timetable_plan_cache_stale_ttl_seconds: int = Field(
        default=172800, alias="TIMETABLE_PLAN_CACHE_STALE_TTL_SECONDS"
    )

    # Change feeds: near real-time, short TTL
    timetable_changes_cache_ttl_seconds: int = Field(
        default=30, alias="TIMETABLE_CHANGES_CACHE_TTL_SECONDS"
    )
    timetable_changes_cache_stale_ttl_seconds: int = Field(
        default=300, alias="TIMETABLE_CHANGES_CACHE_STALE_TTL_SECONDS"
    )

    # ==========================================================================
    # Cache Behavior
    # ==========================================================================

    cache_singleflight_lock_ttl_seconds: int = Field(
        default=5, alias="CACHE_SINGLEFLIGHT_LOCK_TTL_SECONDS"
    )
    cache_singleflight_lock_wait_seconds: float = Field(
        default=5.0, alias="CACHE_SINGLEFLIGHT_LOCK_WAIT_SECONDS"
    )
    cache_singleflight_retry_delay_seconds: float = Field(
        default=0.05, alias="CACHE_SINGLEFLIGHT_RETRY_DELAY_SECONDS"
    )
    cache_circuit_breaker_timeout_seconds: float = Field(
        default=2.0, alias="CACHE_CIRCUIT_BREAKER_TIMEOUT_SECONDS", ge=0.0
    )

    # ==========================================================================
    # CORS
    # ==========================================================================

    cors_allow_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:3000",
        ],
        alias="CORS_ALLOW_ORIGINS",
    )
    cors_allow_origin_regex: str | None = Field(
        default=None, alias="CORS_ALLOW_ORIGIN_REGEX"
    )
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_storage_uri: str = Field(
        default="memory://", alias="RATE_LIMIT_STORAGE_URI"
    )
    rate_limit_requests_per_minute: int = Field(
        default=120, alias="RATE_LIMIT_REQUESTS_PER_MINUTE", gt=0
    )
    rate_limit_requests_per_hour: int = Field(
        default=2000, alias="RATE_LIMIT_REQUESTS_PER_HOUR", gt=0
    )
    rate_limit_requests_per_day: int = Field(
        default=20000, alias="RATE_LIMIT_REQUESTS_PER_DAY", gt=0
    )

    # ==========================================================================
    # OpenTelemetry (optional)
    # ==========================================================================

    otel_enabled: bool = Field(default=False, alias="OTEL_ENABLED")
    otel_service_name: str = Field(
        default="tramlines-backend", alias="OTEL_SERVICE_NAME"
    )
    otel_service_version: str = Field(default="0.1.0", alias="OTEL_SERVICE_VERSION")
    otel_exporter_otlp_endpoint: str = Field(
        default="http://jaeger:4317", alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    otel_exporter_otlp_headers: str | None = Field(
        default=None, alias="OTEL_EXPORTER_OTLP_HEADERS"
    )

    # ==========================================================================
    # Pydantic Settings Config
    # ==========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # Validators
    # ==========================================================================

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: Any) -> list[str]:
        """Parse comma-separated CORS origins, rejecting wildcard '*'."""
        if isinstance(value, str):
            if not value:
                return []
            parsed = [item.strip() for item in value.split(",") if item.strip()]
        else:
            parsed = list(value) if value is not None else []

        if "*" in parsed:
            raise ValueError(
                "Wildcard CORS origin '*' is not allowed. "
                "Specify explicit origins like 'http://localhost:3000'."
            )
        return parsed

    @model_validator(mode="after")
    def validate_production_credentials(self) -> "Settings":
        """Require DB API Marketplace credentials in production."""
        if self.environment.lower() == "production":
            if not self.db_client_id or not self.db_client_secret:
                raise ValueError(
                    "DB API credentials missing in production. "
                    "Set DB_CLIENT_ID and DB_CLIENT_SECRET environment variables."
                )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
