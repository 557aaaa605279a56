"""Application configuration powered by Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, cast
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    # NOTE: a permissive default token keeps import-time configuration working in
    # CI smoke tests. Real deployments override it through API_TOKEN.
    api_token: str = Field(
        "dev-token",
        alias="API_TOKEN",
        min_length=8,
        description="Shared bearer token required to access protected endpoints.",
    )
    exchange: str = Field("binance", alias="EXCHANGE")
    allowed_origins_raw: str = Field(
        "",
        alias="ALLOWED_ORIGINS",
        description="Comma-separated list of origins allowed to access the API.",
    )
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    playwright_mode: bool = Field(False, alias="PLAYWRIGHT")
    tick_timezone: str = Field(
        "Asia/Jerusalem",
        alias="TICK_TIMEZONE",
        description="IANA zone in which raw tick wall-clock timestamps are recorded.",
    )
    volume_timezone: str = Field(
        "America/New_York",
        alias="VOLUME_TIMEZONE",
        description="IANA zone whose local wall clock is encoded in volume epochs.",
    )
    default_interval_minutes: int = Field(
        5,
        alias="DEFAULT_INTERVAL_MINUTES",
        ge=1,
        le=60,
        description="Candle interval used when callers omit one.",
    )
    min_candles: int = Field(
        10,
        alias="MIN_CANDLES",
        ge=1,
        le=500,
        description="Minimum history required before pattern detection runs.",
    )
    lookback_hours: int = Field(
        72,
        alias="LOOKBACK_HOURS",
        ge=1,
        le=24 * 30,
        description="Window of history fetched for each symbol analysis.",
    )
    scan_max_workers: int = Field(
        5,
        alias="SCAN_MAX_WORKERS",
        ge=1,
        le=64,
        description="Size of the worker pool used by multi-symbol scans.",
    )
    scan_timeout_seconds: float = Field(
        30.0,
        alias="SCAN_TIMEOUT_SECONDS",
        gt=0.0,
        le=600.0,
        description="Deadline after which unfinished symbols are abandoned.",
    )
    ohlc_cache_ttl_seconds: int = Field(
        120,
        alias="OHLC_CACHE_TTL_SECONDS",
        ge=0,
        le=3600,
        description="Amount of time OHLC cache entries remain valid before expiry.",
    )
    ohlc_cache_max_entries: int = Field(
        256,
        alias="OHLC_CACHE_MAX_ENTRIES",
        ge=1,
        le=2048,
        description="Maximum number of OHLC cache entries kept in memory.",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        validate_by_name=True,
    )

    @field_validator("api_token", mode="before")
    @classmethod
    def ensure_token_has_value(cls, value: str | None) -> str:
        """Fallback to the default token when an empty string is provided.

        Container runtimes forward undefined variables as empty strings which
        would otherwise trip the ``min_length`` constraint.
        """
        default_token = cast(str, cls.model_fields["api_token"].default)
        if value is None or value == "":
            return default_token
        return value

    @field_validator("tick_timezone", "volume_timezone")
    @classmethod
    def ensure_known_timezone(cls, value: str) -> str:
        """Reject zone names missing from the tz database."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value

    @property
    def allowed_origins(self) -> List[str]:
        """Return the sanitized CORS origins as a list."""
        return [origin.strip() for origin in self.allowed_origins_raw.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()  # type: ignore[call-arg]


settings = get_settings()

__all__ = ["Settings", "get_settings", "settings"]
