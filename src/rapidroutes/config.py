"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="RR_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "RapidRoutes Crawl API"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    cities_table: str = Field(default="cities", description="Table holding the city catalog.")

    # City catalog
    catalog_source: Literal["auto", "supabase", "file"] = Field(
        default="auto",
        description="Where the city catalog is read from. 'auto' prefers Supabase when configured.",
    )
    city_catalog_file: Path = Field(
        default=Path("data/cities.csv"),
        description="CSV export of the cities table used when Supabase is not available.",
    )
    catalog_query_limit: int = Field(default=1000, ge=1)
    catalog_timeout_seconds: float = Field(default=10.0, gt=0.0)

    # Crawl engine
    default_search_radius_miles: float = Field(default=75.0, gt=0.0)
    widen_radius_multipliers: tuple[float, ...] = Field(
        default=(2.0, 4.0),
        description="Radius multipliers tried in order when the diverse pass is under target.",
    )
    target_min_pairs: int = Field(default=6, ge=1)
    max_pairs: int = Field(default=10, ge=1)

    # Result cache
    cache_backend: Literal["memory", "redis"] = Field(default="memory")
    cache_max_entries: int = Field(default=512, ge=1)
    cache_ttl_seconds: int = Field(default=0, ge=0, description="Redis TTL; 0 keeps entries until invalidated.")
    redis_url: str = Field(default="redis://localhost:6379/0")

    @field_validator("city_catalog_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
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

    @field_validator("widen_radius_multipliers", mode="before")
    @classmethod
    def _parse_float_tuple_from_env(cls, value: Any) -> tuple[float, ...]:
        """Parse float tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return tuple(float(item) for item in value)
        if isinstance(value, list):
            return tuple(float(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(float(item) for item in parsed)
                if isinstance(parsed, (int, float)):
                    return (float(parsed),)
            except (json.JSONDecodeError, TypeError, ValueError):
                pass
            if "," in value:
                return tuple(float(item.strip()) for item in value.split(",") if item.strip())
            if value.strip():
                try:
                    return (float(value.strip()),)
                except ValueError:
                    return tuple()
        return tuple()

    @field_validator("widen_radius_multipliers")
    @classmethod
    def _validate_multipliers(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        if any(multiplier <= 1.0 for multiplier in value):
            raise ValueError("widen_radius_multipliers must all be greater than 1")
        return tuple(sorted(value))


settings = Settings()
