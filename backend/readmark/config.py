"""
Application configuration.

Values are read from the environment (optionally seeded from a ``.env`` file)
once per process and exposed through ``get_settings()``.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {name}: {value!r}")
        return default


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the annotation service"""

    db_path: str = "data/readmark.db"
    log_level: str = "INFO"
    enable_jobs: bool = False
    refresh_interval_seconds: int = 3600
    popular_limit_max: int = 100


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build the settings object from environment variables."""
    return Settings(
        db_path=os.getenv("READMARK_DB_PATH", Settings.db_path),
        log_level=os.getenv("READMARK_LOG_LEVEL", Settings.log_level).upper(),
        enable_jobs=_env_bool("READMARK_ENABLE_JOBS", Settings.enable_jobs),
        refresh_interval_seconds=_env_int(
            "READMARK_REFRESH_INTERVAL_SECONDS", Settings.refresh_interval_seconds
        ),
        popular_limit_max=_env_int(
            "READMARK_POPULAR_LIMIT_MAX", Settings.popular_limit_max
        ),
    )
