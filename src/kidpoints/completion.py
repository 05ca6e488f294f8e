"""Exactly-once task completion with an atomic ledger credit."""

from __future__ import annotations

from datetime import date
from typing import Tuple

from sqlalchemy import update
from sqlmodel import Session, select

from .catalog import CatalogStore
from .exceptions import AlreadyCompletedError, NotFoundError
from .generator import insert_if_absent
from .ledger import PointsLedger
from .models import LedgerEntryType, LedgerRef, TaskStatus
from .persistence import Completion, DailyTask, Kid, TaskTemplate, utcnow
from .schedule import is_owed, points_for


def _find_daily_task(session: Session, kid_id: int, task_template_id: int, day: date) -> DailyTask | None:
    return session.exec(
        select(DailyTask)
        .where(DailyTask.kid_id == kid_id)
        .where(DailyTask.task_template_id == task_template_id)
        .where(DailyTask.due_date == day)
    ).first()


class TaskCompletionProcessor:
    """Flip one daily task from pending to done and credit its points."""

    @staticmethod
    def _load(session: Session, kid_id: int, task_template_id: int) -> Tuple[Kid, TaskTemplate]:
        kid = CatalogStore.get_kid(session, kid_id)
        template = CatalogStore.get_template(session, task_template_id)
        if template.family_id != kid.family_id:
            raise NotFoundError(f"Task template '{task_template_id}' does not exist for kid '{kid_id}'.")
        return kid, template

    @staticmethod
    def locate_or_create(session: Session, kid_id: int, template: TaskTemplate, day: date) -> DailyTask:
        task = _find_daily_task(session, kid_id, template.id, day)
        if task is not None:
            return task
        assignment = CatalogStore.assignment_for(session, kid_id, template.id)
        if assignment is None or not is_owed(assignment, template, day):
            raise NotFoundError(f"'{template.title}' is not owed by kid '{kid_id}' on {day.isoformat()}.")
        task = insert_if_absent(session, kid_id, template.id, day)
        if task is not None:
            return task
        # A concurrent caller created the row first.
        task = _find_daily_task(session, kid_id, template.id, day)
        if task is None:
            raise NotFoundError(f"Task template '{template.id}' is no longer available.")
        return task

    @classmethod
    def complete_task(cls, session: Session, kid_id: int, task_template_id: int, day: date) -> int:
        _, template = cls._load(session, kid_id, task_template_id)
        task = cls.locate_or_create(session, kid_id, template, day)
        if task.status == TaskStatus.DONE.value:
            raise AlreadyCompletedError(f"'{template.title}' is already done for {day.isoformat()}.")

        assignment = CatalogStore.assignment_for(session, kid_id, task_template_id)
        points = points_for(assignment, template)
        moment = utcnow()
        result = session.connection().execute(
            update(DailyTask)
            .where(DailyTask.id == task.id)
            .where(DailyTask.status == TaskStatus.PENDING.value)
            .values(status=TaskStatus.DONE.value, points_awarded=points, completed_at=moment)
        )
        if result.rowcount != 1:
            raise AlreadyCompletedError(f"'{template.title}' is already done for {day.isoformat()}.")
        session.expire(task)

        session.add(Completion(daily_task_id=task.id, kid_id=kid_id, completed_at=moment))
        PointsLedger.append(
            session,
            kid_id,
            LedgerEntryType.CREDIT,
            points,
            f"Completed: {template.title}",
            ref=(LedgerRef.DAILY_TASK, task.id),
        )
        return PointsLedger.balance(session, kid_id)


__all__ = ["TaskCompletionProcessor"]
