"""Runtime configuration for the booking service."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings sourced from ``BOOKING_*`` environment variables or ``.env``."""

    app_name: str = Field("Property Booking Service")
    app_version: str = Field("0.1.0")
    log_level: str = Field("INFO")
    default_grace_period_hours: float = Field(2.0, ge=0)
    max_grace_period_hours: float = Field(48.0, ge=0)
    search_window_days: int = Field(7, gt=0)
    max_suggestions: int = Field(5, gt=0)
    max_import_rows: int = Field(100, gt=0)
    default_page_size: int = Field(50, gt=0, le=1000)

    model_config = SettingsConfigDict(
        env_prefix="BOOKING_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
