from dataclasses import dataclass
from datetime import date, datetime

import pytest

pytest.importorskip("sqlmodel")

from kidpoints.ops import StructuredLogger
from kidpoints.persistence import build_engine
from kidpoints.service import KidPoints

# A Monday, so daily and weekly windows start on the same day.
TODAY = date(2026, 10, 19)


class FixedClock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def set_day(self, day: date) -> None:
        self.moment = datetime.combine(day, self.moment.time())


@dataclass
class Household:
    family_id: int
    kid_id: int
    brush_teeth_id: int


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(datetime.combine(TODAY, datetime.min.time()).replace(hour=9))


@pytest.fixture()
def service(tmp_path, clock) -> KidPoints:
    engine = build_engine(f"sqlite:///{tmp_path / 'kidpoints.db'}")
    points = KidPoints(
        engine,
        clock=clock,
        daily_bonus_points=10,
        weekly_bonus_points=50,
        logger=StructuredLogger(path=tmp_path / "events.jsonl"),
    )
    yield points
    engine.dispose()


@pytest.fixture()
def household(service: KidPoints) -> Household:
    """One family, one kid and a 5 point daily "Brush teeth" assignment."""

    family = service.ensure_family("parent-uid", "The Rivers")
    kid = service.create_kid(family.id, "Ava", age=8)
    template = service.create_template(family.id, "Brush teeth", 5, icon_emoji="🪥")
    service.create_assignment(kid.id, template.id, TODAY)
    return Household(family_id=family.id, kid_id=kid.id, brush_teeth_id=template.id)


def add_daily_task(service: KidPoints, household: Household, title: str, points: int, **assignment) -> int:
    template = service.create_template(household.family_id, title, points)
    service.create_assignment(household.kid_id, template.id, assignment.pop("start_date", TODAY), **assignment)
    return template.id


def give_points(service: KidPoints, kid_id: int, points: int) -> int:
    return service.adjust_points(kid_id, points, "Starting balance", actor="parent")
