"""Configuration constants for the KidPoints engine."""
from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc


DATABASE_URL = os.environ.get("KIDPOINTS_DATABASE_URL", "sqlite:///kidpoints.db")
SQLITE_TIMEOUT_SECONDS = _int_env("KIDPOINTS_SQLITE_TIMEOUT", 30)
DAILY_BONUS_POINTS = _int_env("KIDPOINTS_DAILY_BONUS_POINTS", 10)
WEEKLY_BONUS_POINTS = _int_env("KIDPOINTS_WEEKLY_BONUS_POINTS", 50)
HISTORY_LIMIT = _int_env("KIDPOINTS_HISTORY_LIMIT", 50)
CALENDAR_MAX_DAYS = _int_env("KIDPOINTS_CALENDAR_MAX_DAYS", 62)
EVENT_LOG_PATH: Optional[str] = os.environ.get("KIDPOINTS_EVENT_LOG") or None

__all__ = [
    "DATABASE_URL",
    "SQLITE_TIMEOUT_SECONDS",
    "DAILY_BONUS_POINTS",
    "WEEKLY_BONUS_POINTS",
    "HISTORY_LIMIT",
    "CALENDAR_MAX_DAYS",
    "EVENT_LOG_PATH",
]
