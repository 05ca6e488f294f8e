import threading
from datetime import timedelta

import pytest

from conftest import TODAY, add_daily_task
from kidpoints.exceptions import AlreadyGrantedBonusError, ConcurrencyConflictError, NotEligibleError, NotFoundError
from kidpoints.models import BonusPeriod


def test_partial_day_is_not_eligible(service, household) -> None:
    add_daily_task(service, household, "Make bed", 2)
    service.generate_daily_tasks(household.family_id)
    service.complete_task(household.kid_id, household.brush_teeth_id)

    status = service.check_bonus_eligibility(household.kid_id, "daily")
    assert status.total_tasks == 2
    assert status.completed_tasks == 1
    assert status.eligible is False
    assert status.already_granted is False
    assert status.bonus_points == 10

    with pytest.raises(NotEligibleError):
        service.grant_bonus(household.kid_id, "daily")
    assert service.get_balance(household.kid_id) == 5


def test_no_tasks_means_not_eligible(service, household) -> None:
    status = service.check_bonus_eligibility(household.kid_id, BonusPeriod.DAILY)
    assert status.total_tasks == 0
    assert status.eligible is False


def test_daily_bonus_granted_once(service, household) -> None:
    service.generate_daily_tasks(household.family_id)
    service.complete_task(household.kid_id, household.brush_teeth_id)
    assert service.check_bonus_eligibility(household.kid_id, "daily").claimable

    assert service.grant_bonus(household.kid_id, "daily") == 15
    status = service.check_bonus_eligibility(household.kid_id, "daily")
    assert status.already_granted is True
    assert status.claimable is False

    with pytest.raises(AlreadyGrantedBonusError):
        service.grant_bonus(household.kid_id, "daily")
    assert service.get_balance(household.kid_id) == 15
    bonus = service.get_points_history(household.kid_id)[0]
    assert bonus.entry_type == "bonus"
    assert bonus.ref_id == "daily:2026-10-19"


def test_next_day_is_a_new_period(service, household, clock) -> None:
    service.complete_task(household.kid_id, household.brush_teeth_id)
    service.grant_bonus(household.kid_id, "daily")

    clock.set_day(TODAY + timedelta(days=1))
    service.complete_task(household.kid_id, household.brush_teeth_id)
    assert service.grant_bonus(household.kid_id, "daily") == 30


def test_weekly_window_runs_monday_to_sunday(service, household, clock) -> None:
    for offset in range(3):
        service.complete_task(household.kid_id, household.brush_teeth_id, TODAY + timedelta(days=offset))
    clock.set_day(TODAY + timedelta(days=6))
    status = service.check_bonus_eligibility(household.kid_id, "weekly")
    assert status.period_start == TODAY
    assert status.period_end == TODAY + timedelta(days=6)
    assert (status.total_tasks, status.completed_tasks) == (3, 3)
    assert status.bonus_points == 50
    assert service.grant_bonus(household.kid_id, "weekly") == 65

    # Following Monday starts a fresh week with no rows yet.
    clock.set_day(TODAY + timedelta(days=7))
    status = service.check_bonus_eligibility(household.kid_id, "weekly")
    assert status.total_tasks == 0
    assert status.already_granted is False


def test_unknown_period_and_kid(service, household) -> None:
    with pytest.raises(ValueError):
        service.check_bonus_eligibility(household.kid_id, "monthly")
    with pytest.raises(ValueError):
        service.grant_bonus(household.kid_id, "yearly")
    with pytest.raises(NotFoundError):
        service.check_bonus_eligibility(999, "daily")


def test_concurrent_claims_pay_once(service, household) -> None:
    service.complete_task(household.kid_id, household.brush_teeth_id)
    barrier = threading.Barrier(3)
    failures: list[Exception] = []

    def worker() -> None:
        barrier.wait()
        try:
            service.grant_bonus(household.kid_id, "daily")
        except (AlreadyGrantedBonusError, ConcurrencyConflictError) as exc:
            failures.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(failures) == 2
    assert service.get_balance(household.kid_id) == 15
