"""Catalog store: families, kids, task templates, rewards and assignments."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel, select

from .exceptions import DuplicateAssignmentError, NotFoundError, RecordInUseError
from .models import Recurrence, require_positive
from .persistence import Assignment, Family, Kid, Reward, TaskTemplate
from .schedule import serialize_weekdays

RecordT = TypeVar("RecordT", bound=SQLModel)

_KID_FIELDS = frozenset({"display_name", "age", "color_hex", "avatar_url"})
_TEMPLATE_FIELDS = frozenset({"title", "icon_emoji", "description", "base_points", "recurrence", "active"})
_REWARD_FIELDS = frozenset({"title", "cost_points", "description", "icon_emoji", "active"})
_REQUIRED_ASSIGNMENT_FIELDS = ("task_template_id", "start_date", "active")
_ASSIGNMENT_FIELDS = frozenset(
    {"days_of_week", "base_points_override", "start_date", "end_date", "active", "task_template_id"}
)


def _require(session: Session, model: Type[RecordT], record_id: int, label: str) -> RecordT:
    record = session.get(model, record_id)
    if record is None:
        raise NotFoundError(f"{label} '{record_id}' does not exist.")
    return record


def _require_text(value: Optional[str], field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValueError(f"{field} cannot be blank.")
    return cleaned


def _check_unknown(changes: Mapping[str, Any], allowed: Iterable[str]) -> None:
    unknown = set(changes) - set(allowed)
    if unknown:
        raise ValueError(f"Unsupported fields: {', '.join(sorted(unknown))}.")


def _normalize_kid(values: Dict[str, Any]) -> Dict[str, Any]:
    if "display_name" in values:
        values["display_name"] = _require_text(values["display_name"], "display_name")
    if values.get("age") is not None:
        require_positive(values["age"], field="age", allow_zero=True)
    return values


def _normalize_template(values: Dict[str, Any]) -> Dict[str, Any]:
    if "title" in values:
        values["title"] = _require_text(values["title"], "title")
    if "base_points" in values:
        require_positive(values["base_points"], field="base_points")
    if "recurrence" in values:
        values["recurrence"] = Recurrence(values["recurrence"]).value
    if values.get("icon_emoji") is None and "icon_emoji" in values:
        values["icon_emoji"] = ""
    return values


def _normalize_reward(values: Dict[str, Any]) -> Dict[str, Any]:
    if "title" in values:
        values["title"] = _require_text(values["title"], "title")
    if "cost_points" in values:
        require_positive(values["cost_points"], field="cost_points")
    if values.get("icon_emoji") is None and "icon_emoji" in values:
        values["icon_emoji"] = ""
    return values


def _normalize_assignment(values: Dict[str, Any]) -> Dict[str, Any]:
    for field in _REQUIRED_ASSIGNMENT_FIELDS:
        if field in values and values[field] is None:
            raise ValueError(f"{field} cannot be null.")
    if "days_of_week" in values:
        values["days_of_week"] = serialize_weekdays(values["days_of_week"])
    if values.get("base_points_override") is not None:
        require_positive(values["base_points_override"], field="base_points_override")
    return values


def _check_range(start: date, end: Optional[date]) -> None:
    if end is not None and end < start:
        raise ValueError("end_date cannot be before start_date.")


def _delete(session: Session, record: SQLModel, label: str) -> None:
    session.delete(record)
    try:
        session.flush()
    except IntegrityError as exc:
        raise RecordInUseError(f"{label} is referenced by task or points history.") from exc


class CatalogStore:
    """Keyed CRUD for the catalog records; the caller owns the transaction."""

    # ------------------------------------------------------------------
    # Families
    # ------------------------------------------------------------------
    @staticmethod
    def ensure_family(session: Session, owner_uid: str, name: str) -> Family:
        owner = _require_text(owner_uid, "owner_uid")
        existing = session.exec(select(Family).where(Family.owner_uid == owner)).first()
        if existing:
            return existing
        family = Family(name=_require_text(name, "name"), owner_uid=owner)
        session.add(family)
        session.flush()
        return family

    @staticmethod
    def get_family(session: Session, family_id: int) -> Family:
        return _require(session, Family, family_id, "Family")

    @staticmethod
    def rename_family(session: Session, family_id: int, name: str) -> Family:
        family = _require(session, Family, family_id, "Family")
        family.name = _require_text(name, "name")
        session.add(family)
        return family

    # ------------------------------------------------------------------
    # Kids
    # ------------------------------------------------------------------
    @staticmethod
    def create_kid(
        session: Session,
        family_id: int,
        display_name: str,
        *,
        age: Optional[int] = None,
        color_hex: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Kid:
        _require(session, Family, family_id, "Family")
        values = _normalize_kid(
            {"display_name": display_name, "age": age, "color_hex": color_hex, "avatar_url": avatar_url}
        )
        kid = Kid(family_id=family_id, **values)
        session.add(kid)
        session.flush()
        return kid

    @staticmethod
    def get_kid(session: Session, kid_id: int) -> Kid:
        return _require(session, Kid, kid_id, "Kid")

    @staticmethod
    def update_kid(session: Session, kid_id: int, **changes: Any) -> Kid:
        _check_unknown(changes, _KID_FIELDS)
        kid = _require(session, Kid, kid_id, "Kid")
        for key, value in _normalize_kid(dict(changes)).items():
            setattr(kid, key, value)
        session.add(kid)
        return kid

    @staticmethod
    def delete_kid(session: Session, kid_id: int) -> None:
        kid = _require(session, Kid, kid_id, "Kid")
        for assignment in session.exec(select(Assignment).where(Assignment.kid_id == kid_id)).all():
            session.delete(assignment)
        session.flush()
        _delete(session, kid, f"Kid '{kid_id}'")

    @staticmethod
    def list_kids(session: Session, family_id: int) -> List[Kid]:
        _require(session, Family, family_id, "Family")
        return list(session.exec(select(Kid).where(Kid.family_id == family_id).order_by(Kid.id)).all())

    # ------------------------------------------------------------------
    # Task templates
    # ------------------------------------------------------------------
    @staticmethod
    def create_template(
        session: Session,
        family_id: int,
        title: str,
        base_points: int,
        *,
        icon_emoji: str = "",
        description: Optional[str] = None,
        recurrence: Recurrence | str = Recurrence.DAILY,
        active: bool = True,
    ) -> TaskTemplate:
        _require(session, Family, family_id, "Family")
        values = _normalize_template(
            {
                "title": title,
                "base_points": base_points,
                "icon_emoji": icon_emoji,
                "description": description,
                "recurrence": recurrence,
                "active": active,
            }
        )
        template = TaskTemplate(family_id=family_id, **values)
        session.add(template)
        session.flush()
        return template

    @staticmethod
    def get_template(session: Session, template_id: int) -> TaskTemplate:
        return _require(session, TaskTemplate, template_id, "Task template")

    @staticmethod
    def update_template(session: Session, template_id: int, **changes: Any) -> TaskTemplate:
        _check_unknown(changes, _TEMPLATE_FIELDS)
        template = _require(session, TaskTemplate, template_id, "Task template")
        for key, value in _normalize_template(dict(changes)).items():
            setattr(template, key, value)
        session.add(template)
        return template

    @staticmethod
    def delete_template(session: Session, template_id: int) -> None:
        template = _require(session, TaskTemplate, template_id, "Task template")
        for assignment in session.exec(
            select(Assignment).where(Assignment.task_template_id == template_id)
        ).all():
            session.delete(assignment)
        session.flush()
        _delete(session, template, f"Task template '{template_id}'")

    @staticmethod
    def list_templates(session: Session, family_id: int, *, active_only: bool = False) -> List[TaskTemplate]:
        query = select(TaskTemplate).where(TaskTemplate.family_id == family_id)
        if active_only:
            query = query.where(TaskTemplate.active == True)  # noqa: E712
        return list(session.exec(query.order_by(TaskTemplate.title)).all())

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------
    @staticmethod
    def create_reward(
        session: Session,
        family_id: int,
        title: str,
        cost_points: int,
        *,
        description: Optional[str] = None,
        icon_emoji: str = "",
        active: bool = True,
    ) -> Reward:
        _require(session, Family, family_id, "Family")
        values = _normalize_reward(
            {
                "title": title,
                "cost_points": cost_points,
                "description": description,
                "icon_emoji": icon_emoji,
                "active": active,
            }
        )
        reward = Reward(family_id=family_id, **values)
        session.add(reward)
        session.flush()
        return reward

    @staticmethod
    def get_reward(session: Session, reward_id: int) -> Reward:
        return _require(session, Reward, reward_id, "Reward")

    @staticmethod
    def update_reward(session: Session, reward_id: int, **changes: Any) -> Reward:
        _check_unknown(changes, _REWARD_FIELDS)
        reward = _require(session, Reward, reward_id, "Reward")
        for key, value in _normalize_reward(dict(changes)).items():
            setattr(reward, key, value)
        session.add(reward)
        return reward

    @staticmethod
    def delete_reward(session: Session, reward_id: int) -> None:
        reward = _require(session, Reward, reward_id, "Reward")
        _delete(session, reward, f"Reward '{reward_id}'")

    @staticmethod
    def list_rewards(session: Session, family_id: int, *, active_only: bool = False) -> List[Reward]:
        query = select(Reward).where(Reward.family_id == family_id)
        if active_only:
            query = query.where(Reward.active == True)  # noqa: E712
        return list(session.exec(query.order_by(Reward.cost_points, Reward.id)).all())

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------
    @staticmethod
    def create_assignment(
        session: Session,
        kid_id: int,
        task_template_id: int,
        start_date: date,
        *,
        days_of_week: Optional[Iterable[str]] = None,
        base_points_override: Optional[int] = None,
        end_date: Optional[date] = None,
        active: bool = True,
    ) -> Assignment:
        kid = _require(session, Kid, kid_id, "Kid")
        template = _require(session, TaskTemplate, task_template_id, "Task template")
        if kid.family_id != template.family_id:
            raise ValueError("Kid and task template must belong to the same family.")
        _check_range(start_date, end_date)
        values = _normalize_assignment(
            {"days_of_week": days_of_week, "base_points_override": base_points_override}
        )
        assignment = Assignment(
            kid_id=kid_id,
            task_template_id=task_template_id,
            start_date=start_date,
            end_date=end_date,
            active=active,
            **values,
        )
        try:
            with session.begin_nested():
                session.add(assignment)
        except IntegrityError as exc:
            raise DuplicateAssignmentError(
                f"Task template '{task_template_id}' is already assigned to kid '{kid_id}'."
            ) from exc
        return assignment

    @staticmethod
    def get_assignment(session: Session, assignment_id: int) -> Assignment:
        return _require(session, Assignment, assignment_id, "Assignment")

    @staticmethod
    def update_assignment(session: Session, assignment_id: int, **changes: Any) -> Assignment:
        _check_unknown(changes, _ASSIGNMENT_FIELDS)
        values = _normalize_assignment(dict(changes))
        assignment = _require(session, Assignment, assignment_id, "Assignment")
        if "task_template_id" in values:
            kid = _require(session, Kid, assignment.kid_id, "Kid")
            template = _require(session, TaskTemplate, values["task_template_id"], "Task template")
            if kid.family_id != template.family_id:
                raise ValueError("Kid and task template must belong to the same family.")
        _check_range(values.get("start_date", assignment.start_date), values.get("end_date", assignment.end_date))
        kid_id = assignment.kid_id
        task_template_id = values.get("task_template_id", assignment.task_template_id)
        try:
            with session.begin_nested():
                for key, value in values.items():
                    setattr(assignment, key, value)
                session.add(assignment)
        except IntegrityError as exc:
            raise DuplicateAssignmentError(
                f"Task template '{task_template_id}' is already assigned to kid '{kid_id}'."
            ) from exc
        return assignment

    @staticmethod
    def delete_assignment(session: Session, assignment_id: int) -> None:
        assignment = _require(session, Assignment, assignment_id, "Assignment")
        session.delete(assignment)
        session.flush()

    @staticmethod
    def list_assignments(session: Session, family_id: int) -> List[Assignment]:
        return list(
            session.exec(
                select(Assignment)
                .join(Kid, Kid.id == Assignment.kid_id)
                .where(Kid.family_id == family_id)
                .order_by(Assignment.id)
            ).all()
        )

    @staticmethod
    def assignment_for(session: Session, kid_id: int, task_template_id: int) -> Optional[Assignment]:
        return session.exec(
            select(Assignment)
            .where(Assignment.kid_id == kid_id)
            .where(Assignment.task_template_id == task_template_id)
        ).first()


__all__ = ["CatalogStore"]
