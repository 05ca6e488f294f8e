"""Daily and weekly completion bonuses."""

from __future__ import annotations

from datetime import date

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .exceptions import AlreadyGrantedBonusError, NotEligibleError, NotFoundError
from .ledger import PointsLedger
from .models import BonusEligibility, BonusPeriod, LedgerEntryType, LedgerRef, TaskStatus, require_positive
from .persistence import DailyTask, Kid
from .schedule import period_key, period_window


def lock_kid(session: Session, kid_id: int) -> Kid:
    """Load ``kid_id`` with a row lock for balance-checked writes."""

    kid = session.exec(select(Kid).where(Kid.id == kid_id).with_for_update()).first()
    if kid is None:
        raise NotFoundError(f"Kid '{kid_id}' does not exist.")
    return kid


class BonusEvaluator:
    """Decide whether a kid finished every task of a period and pay the bonus once."""

    def __init__(self, daily_points: int = 10, weekly_points: int = 50) -> None:
        self.points = {
            BonusPeriod.DAILY: require_positive(daily_points, field="daily_points"),
            BonusPeriod.WEEKLY: require_positive(weekly_points, field="weekly_points"),
        }

    def check_eligibility(self, session: Session, kid_id: int, period: BonusPeriod | str, today: date) -> BonusEligibility:
        kind = BonusPeriod.parse(period)
        if session.get(Kid, kid_id) is None:
            raise NotFoundError(f"Kid '{kid_id}' does not exist.")
        start, end = period_window(kind, today)
        done = func.sum(case((DailyTask.status == TaskStatus.DONE.value, 1), else_=0))
        total, completed = session.exec(
            select(func.count(DailyTask.id), func.coalesce(done, 0))
            .where(DailyTask.kid_id == kid_id)
            .where(DailyTask.due_date >= start)
            .where(DailyTask.due_date <= end)
        ).one()
        total = int(total)
        completed = int(completed)
        granted = PointsLedger.exists(
            session,
            kid_id,
            LedgerEntryType.BONUS,
            (LedgerRef.BONUS_PERIOD, period_key(kind, start)),
        )
        return BonusEligibility(
            period=kind,
            period_start=start,
            period_end=end,
            total_tasks=total,
            completed_tasks=completed,
            eligible=total > 0 and completed == total,
            already_granted=granted,
            bonus_points=self.points[kind],
        )

    def grant_bonus(self, session: Session, kid_id: int, period: BonusPeriod | str, today: date) -> int:
        kind = BonusPeriod.parse(period)
        lock_kid(session, kid_id)
        status = self.check_eligibility(session, kid_id, kind, today)
        if status.already_granted:
            raise AlreadyGrantedBonusError(f"The {kind.value} bonus for {status.period_start.isoformat()} was already granted.")
        if not status.eligible:
            raise NotEligibleError(
                f"{status.completed_tasks} of {status.total_tasks} tasks done; the {kind.value} bonus is not available yet."
            )
        try:
            with session.begin_nested():
                PointsLedger.append(
                    session,
                    kid_id,
                    LedgerEntryType.BONUS,
                    status.bonus_points,
                    f"{kind.value.capitalize()} bonus",
                    ref=(LedgerRef.BONUS_PERIOD, period_key(kind, status.period_start)),
                )
        except IntegrityError as exc:
            raise AlreadyGrantedBonusError(
                f"The {kind.value} bonus for {status.period_start.isoformat()} was already granted."
            ) from exc
        return PointsLedger.balance(session, kid_id)


__all__ = ["BonusEvaluator", "lock_kid"]
