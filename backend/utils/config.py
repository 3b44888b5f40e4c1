"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    app_name: str = "Convention Room Calculator"
    app_version: str = "1.0.0"
    database_path: Path = Path("data") / "convention_planner.db"
    log_level: str = "INFO"

    # Form defaults applied when an input is missing or unparsable.
    default_convention_days: int = 3
    default_time_slots_per_day: int = 4
    default_available_rooms: int = 10
    default_sessions_per_time_slot: int = 3
    default_papers_per_session: int = 4
    default_min_papers_per_session: int = 2
    default_max_papers_per_session: int = 6
    default_round_table_duration: int = 1

    time_slot_labels: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    csv_default_category: str = "General"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from environment variables."""
    defaults = Settings()
    return Settings(
        app_name=os.getenv("APP_NAME", defaults.app_name),
        app_version=os.getenv("APP_VERSION", defaults.app_version),
        database_path=Path(os.getenv("DATABASE_PATH", str(defaults.database_path))),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        default_convention_days=_env_int(
            "DEFAULT_CONVENTION_DAYS", defaults.default_convention_days
        ),
        default_time_slots_per_day=_env_int(
            "DEFAULT_TIME_SLOTS_PER_DAY", defaults.default_time_slots_per_day
        ),
        default_available_rooms=_env_int(
            "DEFAULT_AVAILABLE_ROOMS", defaults.default_available_rooms
        ),
        default_sessions_per_time_slot=_env_int(
            "DEFAULT_SESSIONS_PER_TIME_SLOT", defaults.default_sessions_per_time_slot
        ),
        default_papers_per_session=_env_int(
            "DEFAULT_PAPERS_PER_SESSION", defaults.default_papers_per_session
        ),
        default_min_papers_per_session=_env_int(
            "DEFAULT_MIN_PAPERS_PER_SESSION", defaults.default_min_papers_per_session
        ),
        default_max_papers_per_session=_env_int(
            "DEFAULT_MAX_PAPERS_PER_SESSION", defaults.default_max_papers_per_session
        ),
        default_round_table_duration=_env_int(
            "DEFAULT_ROUND_TABLE_DURATION", defaults.default_round_table_duration
        ),
        csv_default_category=os.getenv("CSV_DEFAULT_CATEGORY", defaults.csv_default_category),
    )
