import threading
from datetime import timedelta

import pytest
from sqlmodel import Session, select

from conftest import TODAY, add_daily_task
from kidpoints.exceptions import AlreadyCompletedError, ConcurrencyConflictError, NotFoundError
from kidpoints.models import TaskStatus
from kidpoints.persistence import Completion, DailyTask


def test_brush_teeth_scenario(service, household) -> None:
    assert service.generate_daily_tasks(household.family_id, TODAY) == 1
    assert service.complete_task(household.kid_id, household.brush_teeth_id, TODAY) == 5

    with Session(service.engine) as session:
        task = session.exec(select(DailyTask).where(DailyTask.kid_id == household.kid_id)).one()
        assert task.status == TaskStatus.DONE.value
        assert task.points_awarded == 5
        assert task.completed_at is not None
        assert session.exec(select(Completion).where(Completion.daily_task_id == task.id)).one()

    with pytest.raises(AlreadyCompletedError):
        service.complete_task(household.kid_id, household.brush_teeth_id, TODAY)
    assert service.get_balance(household.kid_id) == 5
    assert len(service.get_points_history(household.kid_id)) == 1


def test_completion_without_generation_creates_the_row(service, household) -> None:
    assert service.complete_task(household.kid_id, household.brush_teeth_id) == 5
    (view,) = service.get_tasks_for_date(household.kid_id, TODAY)
    assert view.status is TaskStatus.DONE
    # Generation afterwards does not add a second row for the day.
    assert service.generate_daily_tasks(household.family_id, TODAY) == 0


def test_override_points_are_credited(service, household) -> None:
    template_id = add_daily_task(service, household, "Vacuum", 4, base_points_override=9)
    assert service.complete_task(household.kid_id, template_id) == 9
    (entry,) = service.get_points_history(household.kid_id)
    assert entry.entry_type == "credit"
    assert entry.description == "Completed: Vacuum"
    assert entry.ref_table == "daily_task"


def test_each_day_is_completed_separately(service, household) -> None:
    service.complete_task(household.kid_id, household.brush_teeth_id, TODAY)
    assert service.complete_task(household.kid_id, household.brush_teeth_id, TODAY + timedelta(days=1)) == 10


def test_unknown_kid_or_template(service, household) -> None:
    with pytest.raises(NotFoundError):
        service.complete_task(999, household.brush_teeth_id)
    with pytest.raises(NotFoundError):
        service.complete_task(household.kid_id, 999)

    other_family = service.ensure_family("owner-2", "Lakes")
    foreign = service.create_template(other_family.id, "Walk dog", 3)
    with pytest.raises(NotFoundError):
        service.complete_task(household.kid_id, foreign.id)
    assert service.get_balance(household.kid_id) == 0


def test_concurrent_completion_credits_once(service, household) -> None:
    service.generate_daily_tasks(household.family_id, TODAY)
    barrier = threading.Barrier(4)
    outcomes: list[object] = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        try:
            result: object = service.complete_task(household.kid_id, household.brush_teeth_id, TODAY)
        except (AlreadyCompletedError, ConcurrencyConflictError) as exc:
            result = exc
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    successes = [item for item in outcomes if item == 5]
    assert len(successes) == 1
    assert len(outcomes) == 4
    assert service.get_balance(household.kid_id) == 5
    assert len(service.get_points_history(household.kid_id)) == 1


def test_unassigned_or_unowed_tasks_cannot_be_completed(service, household) -> None:
    loose = service.create_template(household.family_id, "Wash car", 20)
    with pytest.raises(NotFoundError):
        service.complete_task(household.kid_id, loose.id)

    # TODAY is a Monday.
    tuesdays = add_daily_task(service, household, "Trash", 2, days_of_week=["tue"])
    with pytest.raises(NotFoundError):
        service.complete_task(household.kid_id, tuesdays)
    with pytest.raises(NotFoundError):
        service.complete_task(household.kid_id, household.brush_teeth_id, TODAY - timedelta(days=1))

    service.update_template(household.brush_teeth_id, active=False)
    with pytest.raises(NotFoundError):
        service.complete_task(household.kid_id, household.brush_teeth_id)

    assert service.get_balance(household.kid_id) == 0
    assert service.get_tasks_for_date(household.kid_id, TODAY) == []
    assert service.complete_task(household.kid_id, tuesdays, TODAY + timedelta(days=1)) == 2
