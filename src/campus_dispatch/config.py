"""Dispatch service settings, read from `DISPATCH_*` environment variables or `.env`."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Every tunable of the dispatch service; defaults suit a local campus simulation."""

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Campus Delivery Dispatch API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root logging level used at startup.")
    data_root: Path = Field(default=Path("data"), description="Root directory for persisted state.")
    locations_file: Optional[Path] = Field(
        default=None,
        description="Optional JSON file overriding the built-in campus locations and geofence.",
    )
    routing_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service. Straight-line routing is used when unset.",
    )
    routing_profile: Literal["bike", "foot", "driving"] = Field(
        default="bike",
        description="OSRM profile used for campus legs.",
    )
    routing_max_retries: int = Field(default=3, ge=0)
    routing_backoff_seconds: float = Field(default=1.0, ge=0.0)
    routing_timeout_seconds: float = Field(default=15.0, gt=0.0)
    fallback_speed_kmh: float = Field(
        default=15.0,
        gt=0.0,
        description="Average speed used to estimate durations for straight-line legs.",
    )
    vehicle_speed_kmh: float = Field(default=20.0, gt=0.0)
    return_speed_kmh: float = Field(default=30.0, gt=0.0)
    depot_location_id: str = Field(default="dorm_c", description="Location the vehicle returns to.")
    depot_arrival_radius_m: float = Field(default=100.0, ge=0.0)
    renderer_tick_seconds: float = Field(default=0.2, gt=0.0)
    renderer_time_scale: float = Field(
        default=1.0,
        gt=0.0,
        description="Simulated seconds advanced per wall-clock second.",
    )
    load_confirmation_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Auto-cancel a mission left waiting for load confirmation this long.",
    )
    history_key: str = "transport_history"
    history_limit: int = Field(default=50, ge=1)
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Browser origins allowed by CORS for the dispatch console.",
    )

    @field_validator("locations_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value).expanduser().resolve()

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_data_root(cls, value: Any) -> Path:
        return Path(value or "data").expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> tuple[str, ...]:
        """Accept a JSON array, a comma-separated string or an already parsed sequence."""
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                try:
                    value = json.loads(text)
                except json.JSONDecodeError as exc:
                    raise ValueError(f"Invalid origin list: {exc}") from exc
            else:
                value = text.split(",")
        if isinstance(value, (list, tuple)):
            return tuple(origin for origin in (str(item).strip() for item in value) if origin)
        return ()


settings = Settings()
