"""Persistence and SQLModel definitions for the KidPoints engine."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import UniqueConstraint, event
from sqlalchemy.engine import Engine
from sqlmodel import Field, SQLModel, create_engine

from .config import DATABASE_URL, SQLITE_TIMEOUT_SECONDS
from .models import RedemptionStatus, TaskStatus


READ_ONLY = "kidpoints_read_only"


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp for record creation and decision times."""

    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
class Family(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    owner_uid: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=utcnow)


class Kid(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: int = Field(foreign_key="family.id", index=True)
    display_name: str
    age: Optional[int] = None
    color_hex: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class TaskTemplate(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: int = Field(foreign_key="family.id", index=True)
    title: str
    icon_emoji: str = ""
    description: Optional[str] = None
    base_points: int
    recurrence: str = "daily"  # daily|weekly|once
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class Assignment(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("kid_id", "task_template_id", name="uq_assignment_kid_template"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    kid_id: int = Field(foreign_key="kid.id", index=True)
    task_template_id: int = Field(foreign_key="tasktemplate.id", index=True)
    days_of_week: Optional[str] = None  # comma separated codes, e.g. "mon,wed,fri"
    base_points_override: Optional[int] = None
    start_date: date
    end_date: Optional[date] = None
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class DailyTask(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("kid_id", "task_template_id", "due_date", name="uq_dailytask_kid_template_day"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    kid_id: int = Field(foreign_key="kid.id", index=True)
    task_template_id: int = Field(foreign_key="tasktemplate.id", index=True)
    due_date: date = Field(index=True)
    status: str = TaskStatus.PENDING.value  # pending|done
    points_awarded: Optional[int] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class Completion(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    daily_task_id: int = Field(foreign_key="dailytask.id", unique=True)
    kid_id: int = Field(foreign_key="kid.id", index=True)
    completed_at: datetime = Field(default_factory=utcnow)


class LedgerEntry(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("kid_id", "entry_type", "ref_table", "ref_id", name="uq_ledger_origin"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    kid_id: int = Field(foreign_key="kid.id", index=True)
    entry_type: str  # credit|debit|bonus
    points: int
    description: str
    ref_table: Optional[str] = None
    ref_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)


class Reward(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: int = Field(foreign_key="family.id", index=True)
    title: str
    cost_points: int
    description: Optional[str] = None
    icon_emoji: str = ""
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class Redemption(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    kid_id: int = Field(foreign_key="kid.id", index=True)
    reward_id: int = Field(foreign_key="reward.id", index=True)
    status: str = Field(default=RedemptionStatus.PENDING.value, index=True)
    requested_at: datetime = Field(default_factory=utcnow)
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Engine setup
# ---------------------------------------------------------------------------
def _configure_sqlite(engine: Engine) -> None:
    # pysqlite opens transactions lazily and skips SAVEPOINT handling; take
    # over BEGIN so writers serialise and nested transactions work. Reads
    # start deferred so they never queue behind a writer.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Any) -> None:
        if conn.get_execution_options().get(READ_ONLY):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")


def read_only(engine: Engine) -> Engine:
    """Same pool as ``engine``, but its transactions take no write lock."""

    return engine.execution_options(**{READ_ONLY: True})


def build_engine(url: str | None = None, *, echo: bool = False) -> Engine:
    database_url = url or DATABASE_URL
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": SQLITE_TIMEOUT_SECONDS},
        )
        _configure_sqlite(engine)
        return engine
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


__all__ = [
    "Assignment",
    "Completion",
    "DailyTask",
    "Family",
    "Kid",
    "LedgerEntry",
    "Redemption",
    "Reward",
    "TaskTemplate",
    "build_engine",
    "create_db_and_tables",
    "read_only",
    "utcnow",
]
