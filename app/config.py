"""Runtime settings, read from the environment (prefix ``TRIPS_``) or ``.env``."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_title: str = "Trip Crew Service"
    log_level: str = "INFO"

    default_segment_color: str = "#00e5ff"

    activity_default_limit: int = 20
    activity_max_limit: int = 50

    model_config = SettingsConfigDict(
        env_prefix="TRIPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
