"""Enums and value objects shared across the KidPoints package."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional


class Recurrence(str, Enum):
    """How often a task template is meant to repeat."""

    DAILY = "daily"
    WEEKLY = "weekly"
    ONCE = "once"


class TaskStatus(str, Enum):
    """Lifecycle of a daily task: born pending, flipped to done exactly once."""

    PENDING = "pending"
    DONE = "done"


class LedgerEntryType(str, Enum):
    """Enumerates the supported point movements."""

    CREDIT = "credit"
    DEBIT = "debit"
    BONUS = "bonus"


class RedemptionStatus(str, Enum):
    """Lifecycle for reward redemptions that require parent approval."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELIVERED = "delivered"


class BonusPeriod(str, Enum):
    """Bonus windows: a single day or a Monday-start week."""

    DAILY = "daily"
    WEEKLY = "weekly"

    @classmethod
    def parse(cls, value: "BonusPeriod | str") -> "BonusPeriod":
        try:
            return cls(value)
        except ValueError as exc:
            raise ValueError(f"Unknown bonus period '{value}'. Use 'daily' or 'weekly'.") from exc


class LedgerRef(str, Enum):
    """Tables a ledger entry can point back to."""

    DAILY_TASK = "daily_task"
    REDEMPTION = "redemption"
    BONUS_PERIOD = "bonus_period"
    MANUAL = "manual"


@dataclass(slots=True, frozen=True)
class TaskView:
    """One task row as shown to a kid for a given day."""

    task_template_id: int
    title: str
    icon_emoji: str
    points: int
    status: TaskStatus
    due_date: date
    daily_task_id: Optional[int] = None

    @property
    def materialized(self) -> bool:
        return self.daily_task_id is not None


@dataclass(slots=True, frozen=True)
class BonusEligibility:
    """Snapshot of a kid's progress towards a period bonus."""

    period: BonusPeriod
    period_start: date
    period_end: date
    total_tasks: int
    completed_tasks: int
    eligible: bool
    already_granted: bool
    bonus_points: int

    @property
    def claimable(self) -> bool:
        return self.eligible and not self.already_granted


def require_positive(value: int, *, field: str = "points", allow_zero: bool = False) -> int:
    """Ensure ``value`` is a positive integer (or non-negative when ``allow_zero`` is true)."""

    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field} must be a whole number.")
    if allow_zero:
        if value < 0:
            raise ValueError(f"{field} must be zero or greater.")
    elif value <= 0:
        raise ValueError(f"{field} must be greater than zero.")
    return value


__all__ = [
    "BonusEligibility",
    "BonusPeriod",
    "LedgerEntryType",
    "LedgerRef",
    "Recurrence",
    "RedemptionStatus",
    "TaskStatus",
    "TaskView",
    "require_positive",
]
