"""Runtime settings (``ALARMCAL_*`` environment variables or ``.env``) and logging setup."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from alarmcal.domain.models import PatternKey

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseSettings):
    # Overrides the device timezone (IANA name)
    timezone: str | None = None
    # JSON file backing the key/value store; in-memory when unset
    storage_path: Path | None = None

    # Reminder customization is a paid feature when this is set
    customization_requires_premium: bool = False
    premium: bool = False
    fixed_pattern_keys: list[PatternKey] = []

    # Reschedule every bound event as soon as a pattern is edited
    eager_pattern_refresh: bool = False
    week_starts_on: int = 0
    # ISO country code for public holidays on the calendar views; None disables
    holiday_country: str | None = "JP"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="ALARMCAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def customization_enabled(self) -> bool:
        return self.premium or not self.customization_requires_premium


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
