"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each concern (cache, upstream, store, rate limits, logging) has its own
  settings group with its own environment prefix
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


def clamp(value: float, low: float, high: float) -> float:
    """Saturate value into [low, high]."""
    return max(low, min(high, value))


class PlacesCacheSettings(BaseSettings):
    """Geo-bucketed cache knobs.

    ``query_latlng_precision`` is the main cost/accuracy trade-off: each
    coordinate is rounded to this many decimals before it becomes part of the
    cache key. 3 decimals is roughly a 110 m bucket; 2 merges queries over
    about 1.1 km (fewer upstream calls, coarser results); 5 makes almost
    every query its own bucket.
    """

    query_latlng_precision: int = Field(
        3,
        description="Decimal places kept when bucketing coordinates (clamped to 2-5)",
    )
    cache_ttl_seconds: int = Field(
        900,
        description="Freshness window of a cache entry in seconds (clamped to 60-86400)",
    )
    radius_min_m: float = Field(200, description="Smallest search radius in meters", gt=0)
    radius_max_m: float = Field(5000, description="Largest search radius in meters", gt=0)
    radius_default_m: float = Field(1500, description="Radius used when none is requested", gt=0)

    model_config = SettingsConfigDict(
        env_prefix="PLACES_",
        case_sensitive=False,
    )

    @field_validator("query_latlng_precision")
    @classmethod
    def _clamp_precision(cls, value: int) -> int:
        return int(clamp(value, 2, 5))

    @field_validator("cache_ttl_seconds")
    @classmethod
    def _clamp_ttl(cls, value: int) -> int:
        return int(clamp(value, 60, 86400))

    @model_validator(mode="after")
    def _check_radius_bounds(self) -> "PlacesCacheSettings":
        if self.radius_min_m > self.radius_max_m:
            raise ValueError("radius_min_m must not exceed radius_max_m")
        return self


class PlacesApiSettings(BaseSettings):
    """Google Places (v1) client configuration."""

    api_key: str | None = Field(
        None,
        description="Google Maps Platform key sent as X-Goog-Api-Key",
    )
    places_url: str = Field(
        "https://places.googleapis.com/v1/places:searchNearby",
        description="Nearby Search endpoint",
    )
    timeout_seconds: float = Field(10.0, description="Upstream request timeout in seconds", gt=0)
    included_types: list[str] = Field(
        default_factory=lambda: ["cafe"],
        description="Place types requested from the provider",
    )
    max_result_count: int = Field(20, description="Maximum places per search", ge=1, le=20)

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_MAPS_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Persistent store selection."""

    backend: str = Field(
        "memory",
        description="Store backend: 'memory' (single process) or 'sql' (SQLAlchemy)",
    )
    database_url: str = Field(
        "sqlite:///./cafes.db",
        description="SQLAlchemy URL used by the 'sql' backend",
    )
    create_schema: bool = Field(
        True,
        description="Create missing tables when the store starts",
    )
    echo: bool = Field(False, description="Log SQL statements")

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-route fixed-window limits."""

    enabled: bool = Field(True, description="Enable per-route rate limiting")
    cafes_requests: int = Field(30, description="Requests per window for GET /v1/cafes", ge=1)
    cafes_window_seconds: int = Field(60, description="Window for GET /v1/cafes in seconds", ge=1)
    checkins_requests: int = Field(10, description="Requests per window for POST /v1/checkins", ge=1)
    checkins_window_seconds: int = Field(60, description="Window for POST /v1/checkins in seconds", ge=1)
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="'json' or 'plain'")
    output: str = Field("stdout", description="'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output is 'file'")
    max_bytes: int = Field(10 * 1024 * 1024, description="Rotate after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Raises validation errors on startup if a setting is malformed.
    """

    app_env: str = APP_ENV
    cache: PlacesCacheSettings = Field(default_factory=PlacesCacheSettings)
    places: PlacesApiSettings = Field(default_factory=PlacesApiSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
