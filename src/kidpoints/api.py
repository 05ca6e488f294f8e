"""API helpers that turn KidPoints records into JSON friendly dictionaries."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

from .generator import group_by_day
from .models import BonusEligibility, TaskView
from .persistence import Assignment, Family, Kid, LedgerEntry, Redemption, Reward, TaskTemplate


def _iso(value: Optional[date | datetime]) -> Optional[str]:
    if value is None:
        return None
    # SQLite hands stored timestamps back without their UTC offset.
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class ApiExporter:
    """Convert KidPoints data structures to JSON friendly dictionaries."""

    def family(self, family: Family) -> Dict[str, object]:
        return {
            "id": family.id,
            "name": family.name,
            "owner_uid": family.owner_uid,
            "created_at": _iso(family.created_at),
        }

    def kid(self, kid: Kid) -> Dict[str, object]:
        return {
            "id": kid.id,
            "family_id": kid.family_id,
            "display_name": kid.display_name,
            "age": kid.age,
            "color_hex": kid.color_hex,
            "avatar_url": kid.avatar_url,
        }

    def template(self, template: TaskTemplate) -> Dict[str, object]:
        return {
            "id": template.id,
            "family_id": template.family_id,
            "title": template.title,
            "icon_emoji": template.icon_emoji,
            "description": template.description,
            "base_points": template.base_points,
            "recurrence": template.recurrence,
            "active": template.active,
        }

    def reward(self, reward: Reward) -> Dict[str, object]:
        return {
            "id": reward.id,
            "family_id": reward.family_id,
            "title": reward.title,
            "cost_points": reward.cost_points,
            "description": reward.description,
            "icon_emoji": reward.icon_emoji,
            "active": reward.active,
        }

    def assignment(self, assignment: Assignment) -> Dict[str, object]:
        return {
            "id": assignment.id,
            "kid_id": assignment.kid_id,
            "task_template_id": assignment.task_template_id,
            "days_of_week": assignment.days_of_week.split(",") if assignment.days_of_week else [],
            "base_points_override": assignment.base_points_override,
            "start_date": _iso(assignment.start_date),
            "end_date": _iso(assignment.end_date),
            "active": assignment.active,
        }

    def task(self, view: TaskView) -> Dict[str, object]:
        return {
            "daily_task_id": view.daily_task_id,
            "task_template_id": view.task_template_id,
            "title": view.title,
            "icon_emoji": view.icon_emoji,
            "points": view.points,
            "status": view.status.value,
            "due_date": view.due_date.isoformat(),
        }

    def tasks(self, views: Iterable[TaskView]) -> List[Dict[str, object]]:
        return [self.task(view) for view in views]

    def calendar(self, views: Iterable[TaskView]) -> List[Dict[str, object]]:
        return [
            {"date": day.isoformat(), "tasks": self.tasks(day_views)}
            for day, day_views in sorted(group_by_day(list(views)).items())
        ]

    def ledger_entry(self, entry: LedgerEntry) -> Dict[str, object]:
        return {
            "id": entry.id,
            "entry_type": entry.entry_type,
            "points": entry.points,
            "description": entry.description,
            "ref_table": entry.ref_table,
            "ref_id": entry.ref_id,
            "created_at": _iso(entry.created_at),
        }

    def eligibility(self, status: BonusEligibility) -> Dict[str, object]:
        return {
            "period": status.period.value,
            "period_start": status.period_start.isoformat(),
            "period_end": status.period_end.isoformat(),
            "total_tasks": status.total_tasks,
            "completed_tasks": status.completed_tasks,
            "eligible": status.eligible,
            "already_granted": status.already_granted,
            "bonus_points": status.bonus_points,
        }

    def redemption(self, redemption: Redemption) -> Dict[str, object]:
        return {
            "id": redemption.id,
            "kid_id": redemption.kid_id,
            "reward_id": redemption.reward_id,
            "status": redemption.status,
            "requested_at": _iso(redemption.requested_at),
            "decided_at": _iso(redemption.decided_at),
            "decided_by": redemption.decided_by,
            "notes": redemption.notes,
        }


__all__ = ["ApiExporter"]
