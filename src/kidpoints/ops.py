"""Operational utilities for KidPoints."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .persistence import utcnow


class HealthMonitor:
    """Aggregate runtime health information for status pages."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.started_at = utcnow()
        self.last_error: Optional[str] = None

    def database_online(self) -> bool:
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            self.last_error = str(exc)
            return False
        self.last_error = None
        return True

    def status(self) -> dict:
        online = self.database_online()
        return {
            "database": "ok" if online else "down",
            "uptime_seconds": self.uptime_seconds(),
            "last_error": self.last_error,
        }

    def uptime_seconds(self, now: Optional[datetime] = None) -> int:
        return int(((now or utcnow()) - self.started_at).total_seconds())


class StructuredLogger:
    """Write JSON lines log entries for admin inspection."""

    def __init__(self, *, path: Path | str | None = None, keep: int = 500) -> None:
        self.path = Path(path) if path else None
        self.keep = keep
        self._entries: list[dict] = []

    def log(self, event_type: str, **fields: object) -> dict:
        entry = {"timestamp": utcnow().isoformat(), "event": event_type, **fields}
        self._entries.append(entry)
        if len(self._entries) > self.keep:
            del self._entries[: len(self._entries) - self.keep]
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, default=str) + "\n")
        return entry

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        if limit <= 0:
            return ()
        return tuple(self._entries[-limit:])

    def events(self, event_type: str) -> tuple[dict, ...]:
        return tuple(entry for entry in self._entries if entry["event"] == event_type)


__all__ = ["HealthMonitor", "StructuredLogger"]
