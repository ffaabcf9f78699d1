"""Environment and runtime settings."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


def load_environment() -> None:
    load_dotenv(override=False)


def get_db_path() -> Path:
    raw = os.getenv("GEO_IMPACT_DB_PATH", "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".dts" / "geo-impact" / "impact.db"


def get_default_currency() -> str:
    return os.getenv("GEO_IMPACT_CURRENCY", "USD").strip().upper() or "USD"


def get_log_level() -> str:
    return os.getenv("GEO_IMPACT_LOG_LEVEL", "WARNING").strip().upper() or "WARNING"
