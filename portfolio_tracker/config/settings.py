"""Application configuration and environment helpers."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_FINNHUB_BASE_URL = "https://finnhub.io/api/v1"
DEFAULT_SECTOR = "Unknown"


class AppSettings(BaseSettings):
    """Configuration options for the portfolio tracker service."""

    app_name: str = Field(default="Portfolio Tracker")
    log_level: str = Field(default="INFO", description="Root log level name, e.g. DEBUG or WARNING.")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./portfolio_tracker.db",
        description="SQLAlchemy async database URL.",
    )
    database_echo: bool = Field(default=False)

    finnhub_api_key: str | None = Field(
        default=None,
        description="Finnhub token; quotes are synthesized when it is missing.",
    )
    finnhub_base_url: str = Field(default=DEFAULT_FINNHUB_BASE_URL)
    finnhub_timeout_seconds: float = Field(default=10.0)

    quote_cache_ttl_seconds: float = Field(default=60.0, gt=0)
    quote_cache_max_entries: int = Field(default=1024, ge=1)
    request_interval_ms: int = Field(default=500, ge=0)
    quote_batch_size: int = Field(default=3, ge=1)
    search_result_limit: int = Field(default=10, ge=1)

    history_window_days: int = Field(default=183, ge=7)
    history_daily_points: int = Field(default=7, ge=1)
    history_weekly_points: int = Field(default=12, ge=1)
    history_monthly_points: int = Field(default=9, ge=8, le=10)

    token_lifetime_days: int = Field(default=7, ge=1)
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:8080"]
    )

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="portfolio-tracker")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def request_interval_seconds(self) -> float:
        return self.request_interval_ms / 1000.0

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"finnhub_api_key"}
        return {k: ("***" if k in hidden and v else v) for k, v in self.model_dump().items()}


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> AppSettings:
    """Return cached application settings with optional overrides."""

    if overrides:
        return AppSettings(**overrides)
    return AppSettings()


__all__ = [
    "AppSettings",
    "DEFAULT_FINNHUB_BASE_URL",
    "DEFAULT_SECTOR",
    "get_settings",
]
