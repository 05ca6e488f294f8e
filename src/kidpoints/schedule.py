"""Assignment scheduling: weekday filters, active ranges and bonus periods."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import IntEnum
from typing import FrozenSet, Iterable, Optional, Tuple

from .models import BonusPeriod
from .persistence import Assignment, TaskTemplate


class Weekday(IntEnum):
    """Enum representing days of the week for scheduling."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def code(self) -> str:
        return self.name[:3].lower()

    @classmethod
    def from_code(cls, code: str) -> "Weekday":
        normalized = (code or "").strip().lower()
        for day in cls:
            if day.code == normalized:
                return day
        raise ValueError(f"Unknown weekday code '{code}'. Use mon, tue, wed, thu, fri, sat or sun.")

    @classmethod
    def from_date(cls, day: date) -> "Weekday":
        return cls(day.weekday())


WEEKDAY_CODES: Tuple[str, ...] = tuple(day.code for day in Weekday)


def parse_weekdays(raw: Optional[str]) -> FrozenSet[Weekday]:
    """Return the weekdays stored on an assignment; empty means every day."""

    if not raw:
        return frozenset()
    return frozenset(Weekday.from_code(token) for token in raw.split(",") if token.strip())


def serialize_weekdays(values: Optional[Iterable[str | Weekday]]) -> Optional[str]:
    """Validate weekday codes and store them Monday-first, or ``None`` for every day."""

    if values is None:
        return None
    if isinstance(values, str):
        values = values.split(",")
    selected = list(values)
    if len(selected) > 7:
        raise ValueError("At most seven weekdays can be selected.")
    days = {value if isinstance(value, Weekday) else Weekday.from_code(value) for value in selected}
    if not days:
        return None
    return ",".join(day.code for day in sorted(days))


def _require_calendar_day(day: object) -> date:
    # datetime is a date subclass; a timestamp would drift across midnight.
    if isinstance(day, datetime) or not isinstance(day, date):
        raise TypeError("Scheduling works on calendar dates, not timestamps.")
    return day


def is_owed(assignment: Assignment, template: TaskTemplate, day: date) -> bool:
    """True when ``assignment`` obliges its kid to do the template on ``day``."""

    _require_calendar_day(day)
    if not assignment.active or not template.active:
        return False
    if day < assignment.start_date:
        return False
    if assignment.end_date is not None and day > assignment.end_date:
        return False
    weekdays = parse_weekdays(assignment.days_of_week)
    if weekdays and Weekday.from_date(day) not in weekdays:
        return False
    return True


def points_for(assignment: Optional[Assignment], template: TaskTemplate) -> int:
    if assignment is not None and assignment.base_points_override is not None:
        return assignment.base_points_override
    return template.base_points


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def period_window(period: BonusPeriod | str, today: date) -> Tuple[date, date]:
    """Inclusive window for a bonus period containing ``today``."""

    kind = BonusPeriod.parse(period)
    _require_calendar_day(today)
    if kind is BonusPeriod.DAILY:
        return today, today
    start = week_start(today)
    return start, start + timedelta(days=6)


def period_key(period: BonusPeriod | str, start: date) -> str:
    """Deterministic reference for one concrete bonus period, e.g. ``weekly:2026-10-19``."""

    kind = BonusPeriod.parse(period)
    return f"{kind.value}:{start.isoformat()}"


def iter_days(start: date, end: date) -> Iterable[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


__all__ = [
    "WEEKDAY_CODES",
    "Weekday",
    "is_owed",
    "iter_days",
    "parse_weekdays",
    "period_key",
    "period_window",
    "points_for",
    "serialize_weekdays",
    "week_start",
]
