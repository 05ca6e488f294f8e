"""Expand assignments into concrete daily tasks and project them per day."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .exceptions import NotFoundError
from .models import TaskStatus, TaskView
from .persistence import Assignment, DailyTask, Family, Kid, TaskTemplate
from .schedule import is_owed, iter_days, points_for

AssignmentRow = Tuple[Assignment, TaskTemplate]


def _assignment_rows(session: Session, *, family_id: Optional[int] = None, kid_id: Optional[int] = None) -> List[AssignmentRow]:
    query = select(Assignment, TaskTemplate).join(TaskTemplate, TaskTemplate.id == Assignment.task_template_id)
    if family_id is not None:
        query = query.join(Kid, Kid.id == Assignment.kid_id).where(Kid.family_id == family_id)
    if kid_id is not None:
        query = query.where(Assignment.kid_id == kid_id)
    return list(session.exec(query.order_by(Assignment.id)).all())


def insert_if_absent(session: Session, kid_id: int, task_template_id: int, day: date) -> Optional[DailyTask]:
    """Insert a pending daily task unless the unique key already exists.

    Returns the new row, or ``None`` when another writer (or a vanished kid
    or template) made the insert fail.
    """

    task = DailyTask(kid_id=kid_id, task_template_id=task_template_id, due_date=day)
    try:
        with session.begin_nested():
            session.add(task)
    except IntegrityError:
        return None
    return task


class DailyTaskGenerator:
    """Materialise owed assignments as :class:`DailyTask` rows."""

    @staticmethod
    def generate_for_date(session: Session, family_id: int, day: date) -> int:
        if session.get(Family, family_id) is None:
            raise NotFoundError(f"Family '{family_id}' does not exist.")
        owed = [
            assignment
            for assignment, template in _assignment_rows(session, family_id=family_id)
            if is_owed(assignment, template, day)
        ]
        if not owed:
            return 0
        existing = {
            (row.kid_id, row.task_template_id)
            for row in session.exec(
                select(DailyTask)
                .where(DailyTask.due_date == day)
                .where(DailyTask.kid_id.in_(sorted({assignment.kid_id for assignment in owed})))
            ).all()
        }
        created = 0
        for assignment in owed:
            key = (assignment.kid_id, assignment.task_template_id)
            if key in existing:
                continue
            if insert_if_absent(session, assignment.kid_id, assignment.task_template_id, day) is not None:
                created += 1
            existing.add(key)
        return created

    @classmethod
    def tasks_for_date(cls, session: Session, kid_id: int, day: date) -> List[TaskView]:
        return cls.tasks_calendar(session, kid_id, day, day, max_days=1)

    @staticmethod
    def tasks_calendar(
        session: Session,
        kid_id: int,
        start: date,
        end: date,
        *,
        max_days: int = 62,
    ) -> List[TaskView]:
        if session.get(Kid, kid_id) is None:
            raise NotFoundError(f"Kid '{kid_id}' does not exist.")
        if start > end:
            raise ValueError("start date must be on or before end date.")
        if (end - start) + timedelta(days=1) > timedelta(days=max_days):
            raise ValueError(f"Calendar range cannot exceed {max_days} days.")

        rows = _assignment_rows(session, kid_id=kid_id)
        assignments: Dict[int, AssignmentRow] = {assignment.task_template_id: (assignment, template) for assignment, template in rows}
        stored = session.exec(
            select(DailyTask, TaskTemplate)
            .join(TaskTemplate, TaskTemplate.id == DailyTask.task_template_id)
            .where(DailyTask.kid_id == kid_id)
            .where(DailyTask.due_date >= start)
            .where(DailyTask.due_date <= end)
        ).all()
        by_day: Dict[date, Dict[int, TaskView]] = {}
        for task, template in stored:
            assignment = assignments.get(task.task_template_id, (None, template))[0]
            status = TaskStatus(task.status)
            points = task.points_awarded if status is TaskStatus.DONE and task.points_awarded is not None else points_for(assignment, template)
            by_day.setdefault(task.due_date, {})[task.task_template_id] = TaskView(
                task_template_id=task.task_template_id,
                title=template.title,
                icon_emoji=template.icon_emoji,
                points=points,
                status=status,
                due_date=task.due_date,
                daily_task_id=task.id,
            )

        views: List[TaskView] = []
        for day in iter_days(start, end):
            day_views = by_day.setdefault(day, {})
            for assignment, template in rows:
                if assignment.task_template_id in day_views or not is_owed(assignment, template, day):
                    continue
                day_views[assignment.task_template_id] = TaskView(
                    task_template_id=assignment.task_template_id,
                    title=template.title,
                    icon_emoji=template.icon_emoji,
                    points=points_for(assignment, template),
                    status=TaskStatus.PENDING,
                    due_date=day,
                )
            views.extend(sorted(day_views.values(), key=_view_order))
        return views


def _view_order(view: TaskView) -> Tuple[str, int]:
    return view.title.lower(), view.task_template_id


def group_by_day(views: Sequence[TaskView]) -> Dict[date, List[TaskView]]:
    grouped: Dict[date, List[TaskView]] = {}
    for view in views:
        grouped.setdefault(view.due_date, []).append(view)
    return grouped


__all__ = ["DailyTaskGenerator", "group_by_day", "insert_if_absent"]
