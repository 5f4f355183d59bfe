"""Equipment tracker configuration.

Loads settings from environment variables (and a local .env file when
present) with development-friendly defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime settings for the tracker backend."""

    database_url: str = "sqlite:///./equiptrack.db"
    sql_echo: bool = False
    # Repeated RFID entry events for the same reader/item inside this window
    # are acknowledged without a new movement. 0 disables deduplication.
    detection_dedup_seconds: int = 0
    require_cross_department_approval: bool = False
    feed_workers: int = 4
    log_module: str = "equiptrack"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment."""
        return cls(
            database_url=os.environ.get("DATABASE_URL", cls.database_url),
            sql_echo=_env_bool("SQL_ECHO", cls.sql_echo),
            detection_dedup_seconds=int(
                os.environ.get("DETECTION_DEDUP_SECONDS", cls.detection_dedup_seconds)
            ),
            require_cross_department_approval=_env_bool(
                "REQUIRE_CROSS_DEPARTMENT_APPROVAL", cls.require_cross_department_approval
            ),
            feed_workers=max(1, int(os.environ.get("FEED_WORKERS", cls.feed_workers))),
            log_module=os.environ.get("LOG_MODULE", cls.log_module),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide settings (cached after first call)."""
    return Settings.from_env()
