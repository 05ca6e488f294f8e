"""High level service coordinating the KidPoints task and rewards ledger."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Callable, Iterator, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session

from . import config
from .bonus import BonusEvaluator
from .catalog import CatalogStore
from .completion import TaskCompletionProcessor
from .exceptions import ConcurrencyConflictError
from .generator import DailyTaskGenerator
from .ledger import PointsLedger
from .models import BonusEligibility, BonusPeriod, LedgerEntryType, LedgerRef, RedemptionStatus, TaskView
from .ops import HealthMonitor, StructuredLogger
from .persistence import (
    Assignment,
    Family,
    Kid,
    LedgerEntry,
    Redemption,
    Reward,
    TaskTemplate,
    build_engine,
    create_db_and_tables,
    read_only,
)
from .redemptions import RedemptionWorkflow

Clock = Callable[[], datetime]


class KidPoints:
    """Turn task assignments into points, bonuses and reward redemptions.

    Every public method runs in its own short transaction: it either commits
    completely or leaves the database untouched. Events are logged only after
    the commit succeeded.
    """

    __slots__ = (
        "engine",
        "_reader",
        "_clock",
        "_bonus",
        "_history_limit",
        "_calendar_max_days",
        "_logger",
        "_health",
    )

    def __init__(
        self,
        engine: Engine | None = None,
        *,
        clock: Clock = datetime.now,
        daily_bonus_points: int = config.DAILY_BONUS_POINTS,
        weekly_bonus_points: int = config.WEEKLY_BONUS_POINTS,
        history_limit: int = config.HISTORY_LIMIT,
        calendar_max_days: int = config.CALENDAR_MAX_DAYS,
        logger: StructuredLogger | None = None,
    ) -> None:
        if history_limit <= 0:
            raise ValueError("history_limit must be greater than zero.")
        if calendar_max_days <= 0:
            raise ValueError("calendar_max_days must be greater than zero.")
        self.engine = engine if engine is not None else build_engine()
        self._reader = read_only(self.engine)
        create_db_and_tables(self.engine)
        self._clock = clock
        self._bonus = BonusEvaluator(daily_bonus_points, weekly_bonus_points)
        self._history_limit = history_limit
        self._calendar_max_days = calendar_max_days
        self._logger = logger if logger is not None else StructuredLogger()
        self._health = HealthMonitor(self._reader)

    @classmethod
    def from_config(cls, **overrides: Any) -> "KidPoints":
        """Build a service from ``KIDPOINTS_*`` environment settings."""

        overrides.setdefault("engine", build_engine(config.DATABASE_URL))
        overrides.setdefault("logger", StructuredLogger(path=config.EVENT_LOG_PATH))
        return cls(**overrides)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    def today(self) -> date:
        now = self._clock()
        return now.date() if isinstance(now, datetime) else now

    def health(self) -> dict:
        return self._health.status()

    @contextmanager
    def _transaction(self, *, read_only: bool = False) -> Iterator[Session]:
        bind = self._reader if read_only else self.engine
        try:
            with Session(bind, expire_on_commit=False) as session:
                with session.begin():
                    yield session
        except IntegrityError as exc:
            raise ConcurrencyConflictError("A concurrent change conflicted with this request; retry it.") from exc
        except OperationalError as exc:
            if "locked" in str(exc).lower():
                raise ConcurrencyConflictError("The database is busy; retry the request.") from exc
            raise

    # ------------------------------------------------------------------
    # Families and kids
    # ------------------------------------------------------------------
    def ensure_family(self, owner_uid: str, name: str) -> Family:
        with self._transaction() as session:
            family = CatalogStore.ensure_family(session, owner_uid, name)
        self._logger.log("family_ensured", family_id=family.id, owner_uid=family.owner_uid)
        return family

    def get_family(self, family_id: int) -> Family:
        with self._transaction(read_only=True) as session:
            return CatalogStore.get_family(session, family_id)

    def rename_family(self, family_id: int, name: str) -> Family:
        with self._transaction() as session:
            family = CatalogStore.rename_family(session, family_id, name)
        self._logger.log("family_renamed", family_id=family_id, name=family.name)
        return family

    def create_kid(self, family_id: int, display_name: str, **fields: Any) -> Kid:
        with self._transaction() as session:
            kid = CatalogStore.create_kid(session, family_id, display_name, **fields)
        self._logger.log("kid_created", family_id=family_id, kid_id=kid.id)
        return kid

    def get_kid(self, kid_id: int) -> Kid:
        with self._transaction(read_only=True) as session:
            return CatalogStore.get_kid(session, kid_id)

    def update_kid(self, kid_id: int, **changes: Any) -> Kid:
        with self._transaction() as session:
            kid = CatalogStore.update_kid(session, kid_id, **changes)
        self._logger.log("kid_updated", kid_id=kid_id, fields=sorted(changes))
        return kid

    def delete_kid(self, kid_id: int) -> None:
        with self._transaction() as session:
            CatalogStore.delete_kid(session, kid_id)
        self._logger.log("kid_deleted", kid_id=kid_id)

    def list_kids(self, family_id: int) -> List[Kid]:
        with self._transaction(read_only=True) as session:
            return CatalogStore.list_kids(session, family_id)

    # ------------------------------------------------------------------
    # Task templates
    # ------------------------------------------------------------------
    def create_template(self, family_id: int, title: str, base_points: int, **fields: Any) -> TaskTemplate:
        with self._transaction() as session:
            template = CatalogStore.create_template(session, family_id, title, base_points, **fields)
        self._logger.log("template_created", family_id=family_id, template_id=template.id)
        return template

    def get_template(self, template_id: int) -> TaskTemplate:
        with self._transaction(read_only=True) as session:
            return CatalogStore.get_template(session, template_id)

    def update_template(self, template_id: int, **changes: Any) -> TaskTemplate:
        with self._transaction() as session:
            template = CatalogStore.update_template(session, template_id, **changes)
        self._logger.log("template_updated", template_id=template_id, fields=sorted(changes))
        return template

    def delete_template(self, template_id: int) -> None:
        with self._transaction() as session:
            CatalogStore.delete_template(session, template_id)
        self._logger.log("template_deleted", template_id=template_id)

    def list_templates(self, family_id: int, *, active_only: bool = False) -> List[TaskTemplate]:
        with self._transaction(read_only=True) as session:
            CatalogStore.get_family(session, family_id)
            return CatalogStore.list_templates(session, family_id, active_only=active_only)

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------
    def create_reward(self, family_id: int, title: str, cost_points: int, **fields: Any) -> Reward:
        with self._transaction() as session:
            reward = CatalogStore.create_reward(session, family_id, title, cost_points, **fields)
        self._logger.log("reward_created", family_id=family_id, reward_id=reward.id)
        return reward

    def get_reward(self, reward_id: int) -> Reward:
        with self._transaction(read_only=True) as session:
            return CatalogStore.get_reward(session, reward_id)

    def update_reward(self, reward_id: int, **changes: Any) -> Reward:
        with self._transaction() as session:
            reward = CatalogStore.update_reward(session, reward_id, **changes)
        self._logger.log("reward_updated", reward_id=reward_id, fields=sorted(changes))
        return reward

    def delete_reward(self, reward_id: int) -> None:
        with self._transaction() as session:
            CatalogStore.delete_reward(session, reward_id)
        self._logger.log("reward_deleted", reward_id=reward_id)

    def list_rewards(self, family_id: int, *, active_only: bool = False) -> List[Reward]:
        with self._transaction(read_only=True) as session:
            CatalogStore.get_family(session, family_id)
            return CatalogStore.list_rewards(session, family_id, active_only=active_only)

    def list_active_rewards(self, kid_id: int) -> List[Reward]:
        """Rewards the kid can ask for, cheapest first."""

        with self._transaction(read_only=True) as session:
            kid = CatalogStore.get_kid(session, kid_id)
            return CatalogStore.list_rewards(session, kid.family_id, active_only=True)

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------
    def create_assignment(
        self,
        kid_id: int,
        task_template_id: int,
        start_date: Optional[date] = None,
        **fields: Any,
    ) -> Assignment:
        with self._transaction() as session:
            assignment = CatalogStore.create_assignment(
                session,
                kid_id,
                task_template_id,
                start_date or self.today(),
                **fields,
            )
        self._logger.log(
            "assignment_created",
            assignment_id=assignment.id,
            kid_id=kid_id,
            task_template_id=task_template_id,
        )
        return assignment

    def get_assignment(self, assignment_id: int) -> Assignment:
        with self._transaction(read_only=True) as session:
            return CatalogStore.get_assignment(session, assignment_id)

    def update_assignment(self, assignment_id: int, **changes: Any) -> Assignment:
        with self._transaction() as session:
            assignment = CatalogStore.update_assignment(session, assignment_id, **changes)
        self._logger.log("assignment_updated", assignment_id=assignment_id, fields=sorted(changes))
        return assignment

    def delete_assignment(self, assignment_id: int) -> None:
        with self._transaction() as session:
            CatalogStore.delete_assignment(session, assignment_id)
        self._logger.log("assignment_deleted", assignment_id=assignment_id)

    def list_assignments(self, family_id: int) -> List[Assignment]:
        with self._transaction(read_only=True) as session:
            CatalogStore.get_family(session, family_id)
            return CatalogStore.list_assignments(session, family_id)

    # ------------------------------------------------------------------
    # Daily tasks
    # ------------------------------------------------------------------
    def generate_daily_tasks(self, family_id: int, day: Optional[date] = None) -> int:
        target = day or self.today()
        with self._transaction() as session:
            created = DailyTaskGenerator.generate_for_date(session, family_id, target)
        self._logger.log("tasks_generated", family_id=family_id, day=target.isoformat(), created=created)
        return created

    def get_tasks_for_date(self, kid_id: int, day: Optional[date] = None) -> List[TaskView]:
        with self._transaction(read_only=True) as session:
            return DailyTaskGenerator.tasks_for_date(session, kid_id, day or self.today())

    def get_tasks_calendar(self, kid_id: int, start: date, end: date) -> List[TaskView]:
        with self._transaction(read_only=True) as session:
            return DailyTaskGenerator.tasks_calendar(
                session, kid_id, start, end, max_days=self._calendar_max_days
            )

    def complete_task(self, kid_id: int, task_template_id: int, day: Optional[date] = None) -> int:
        target = day or self.today()
        with self._transaction() as session:
            balance = TaskCompletionProcessor.complete_task(session, kid_id, task_template_id, target)
        self._logger.log(
            "task_completed",
            kid_id=kid_id,
            task_template_id=task_template_id,
            day=target.isoformat(),
            balance=balance,
        )
        return balance

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------
    def get_balance(self, kid_id: int) -> int:
        with self._transaction(read_only=True) as session:
            CatalogStore.get_kid(session, kid_id)
            return PointsLedger.balance(session, kid_id)

    def get_points_history(self, kid_id: int, limit: Optional[int] = None) -> List[LedgerEntry]:
        with self._transaction(read_only=True) as session:
            CatalogStore.get_kid(session, kid_id)
            return PointsLedger.history(session, kid_id, limit=self._history_limit if limit is None else limit)

    def adjust_points(self, kid_id: int, points: int, description: str, *, actor: Optional[str] = None) -> int:
        """Record a manual correction: positive points credit, negative points debit."""

        if isinstance(points, bool) or not isinstance(points, int):
            raise ValueError("points must be a whole number.")
        if points == 0:
            raise ValueError("points cannot be zero.")
        reason = (description or "").strip()
        if not reason:
            raise ValueError("description cannot be blank.")
        entry_type = LedgerEntryType.CREDIT if points > 0 else LedgerEntryType.DEBIT
        with self._transaction() as session:
            CatalogStore.get_kid(session, kid_id)
            PointsLedger.append(session, kid_id, entry_type, abs(points), reason)
            balance = PointsLedger.balance(session, kid_id)
        self._logger.log(
            "points_adjusted",
            kid_id=kid_id,
            points=points,
            actor=actor,
            ref=LedgerRef.MANUAL.value,
            balance=balance,
        )
        return balance

    # ------------------------------------------------------------------
    # Bonuses
    # ------------------------------------------------------------------
    def check_bonus_eligibility(self, kid_id: int, period: BonusPeriod | str) -> BonusEligibility:
        with self._transaction(read_only=True) as session:
            return self._bonus.check_eligibility(session, kid_id, period, self.today())

    def grant_bonus(self, kid_id: int, period: BonusPeriod | str) -> int:
        kind = BonusPeriod.parse(period)
        with self._transaction() as session:
            balance = self._bonus.grant_bonus(session, kid_id, kind, self.today())
        self._logger.log("bonus_granted", kid_id=kid_id, period=kind.value, balance=balance)
        return balance

    # ------------------------------------------------------------------
    # Redemptions
    # ------------------------------------------------------------------
    def request_redemption(self, kid_id: int, reward_id: int) -> Redemption:
        with self._transaction() as session:
            redemption = RedemptionWorkflow.request_redemption(session, kid_id, reward_id)
        self._logger.log(
            "redemption_requested",
            kid_id=kid_id,
            reward_id=reward_id,
            redemption_id=redemption.id,
        )
        return redemption

    def decide_redemption(
        self,
        redemption_id: int,
        decision: RedemptionStatus | str,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Redemption:
        with self._transaction() as session:
            redemption = RedemptionWorkflow.decide(session, redemption_id, decision, actor, notes)
        self._logger.log(
            "redemption_decided",
            redemption_id=redemption_id,
            status=redemption.status,
            actor=actor,
        )
        return redemption

    def get_redemption(self, redemption_id: int) -> Redemption:
        with self._transaction(read_only=True) as session:
            return RedemptionWorkflow.get(session, redemption_id)

    def list_redemptions(
        self,
        family_id: int,
        status: Optional[RedemptionStatus | str] = None,
    ) -> List[Redemption]:
        with self._transaction(read_only=True) as session:
            return RedemptionWorkflow.redemptions_for_family(session, family_id, status)

    def list_kid_redemptions(self, kid_id: int) -> List[Redemption]:
        with self._transaction(read_only=True) as session:
            return RedemptionWorkflow.redemptions_for_kid(session, kid_id)


__all__ = ["KidPoints"]
