"""Application configuration and settings management."""

from typing import Any

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="RELIEFGRID_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "ReliefGrid Allocation Engine"
    api_prefix: str = "/api"
    database_url: str = Field(
        default="sqlite:///data/reliefgrid.db",
        description="SQLAlchemy URL of the relational store holding requests, resources and allocations.",
    )
    database_echo: bool = Field(default=False, description="Echo emitted SQL to the log.")
    sla_window_hours: float = Field(default=48.0, gt=0.0, description="Age after which an open request breaches SLA.")
    sla_check_interval_seconds: float = Field(default=900.0, gt=0.0)
    sla_scheduler_enabled: bool = Field(default=True)
    minutes_per_km: float = Field(default=2.0, gt=0.0, description="Linear travel-time estimate (urban average).")
    default_max_distance_km: float = Field(default=50.0, ge=0.0)
    default_priority_weight: int = Field(default=5)
    default_suggestion_limit: int = Field(default=5, ge=1)
    max_suggestion_limit: int = Field(default=50, ge=1)
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
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
