"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="LOADROUTE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Load Route Engine"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root logging level applied by create_app.")
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # TMS resource layer (loads, stops, facilities, calculate-miles)
    tms_api_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the TMS REST API (e.g., https://api.example.com).",
    )
    tms_api_token: Optional[str] = Field(default=None, description="Bearer token for the TMS REST API.")
    tms_timeout_seconds: float = Field(default=15.0, gt=0.0)

    routing_backend: Literal["tms", "osrm"] = Field(
        default="tms",
        description="'tms' asks the resource layer for miles; 'osrm' geocodes and routes through OSRM.",
    )
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(
        default="driving",
        description="OSRM profile to use when computing routes.",
    )
    osrm_max_retries: int = Field(default=3, ge=0)
    osrm_backoff_seconds: float = Field(default=1.0, ge=0.0)
    osrm_timeout_seconds: float = Field(default=30.0, gt=0.0)

    geocoder_base_url: str = Field(default="https://nominatim.openstreetmap.org")
    geocoder_user_agent: str = Field(default="loadroute/1.0")
    geocoder_country_codes: tuple[str, ...] = Field(default=("us",))
    geocoder_cache_max_entries: int = Field(default=2048, ge=1)

    # Recalculation engine
    debounce_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Quiet period after the last location edit before a route is resolved.",
    )
    resolve_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Upper bound for a single route resolution before it is treated as failed.",
    )
    route_cache_ttl_seconds: float = Field(default=2 * 3600, ge=0.0)
    route_cache_max_entries: int = Field(default=512, ge=1)

    @field_validator("frontend_allowed_origins", "geocoder_country_codes", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
