import json
from datetime import timezone

import pytest
from sqlmodel import Session

from kidpoints.exceptions import AlreadyCompletedError
from kidpoints.ops import StructuredLogger
from kidpoints.persistence import Family, utcnow


def test_events_are_logged_after_commit(service, household, tmp_path) -> None:
    service.complete_task(household.kid_id, household.brush_teeth_id)
    lines = (tmp_path / "events.jsonl").read_text(encoding="utf-8").splitlines()
    last = json.loads(lines[-1])
    assert last["event"] == "task_completed"
    assert last["balance"] == 5
    assert last["day"] == "2026-10-19"


def test_failed_operations_are_not_logged(service, household) -> None:
    service.complete_task(household.kid_id, household.brush_teeth_id)
    before = len(service.logger.tail(500))
    with pytest.raises(AlreadyCompletedError):
        service.complete_task(household.kid_id, household.brush_teeth_id)
    assert len(service.logger.tail(500)) == before


def test_logger_keeps_a_bounded_tail() -> None:
    logger = StructuredLogger(keep=3)
    for index in range(5):
        logger.log("tick", index=index)
    assert [entry["index"] for entry in logger.tail(10)] == [2, 3, 4]
    assert logger.tail(0) == ()


def test_health_reports_database(service) -> None:
    status = service.health()
    assert status["database"] == "ok"
    assert status["last_error"] is None
    assert status["uptime_seconds"] >= 0


def test_family_rename_and_redemption_lookup(service, household) -> None:
    assert service.rename_family(household.family_id, "River House").name == "River House"
    assert service.get_family(household.family_id).name == "River House"
    service.adjust_points(household.kid_id, 5, "Gift")
    reward = service.create_reward(household.family_id, "Sticker", 5)
    redemption = service.request_redemption(household.kid_id, reward.id)
    assert service.get_redemption(redemption.id).reward_id == reward.id


def test_reads_do_not_wait_for_an_open_writer(service, household) -> None:
    with Session(service.engine) as writer:
        with writer.begin():
            writer.add(Family(owner_uid="owner-2", name="Lakes"))
            writer.flush()
            assert service.health()["database"] == "ok"
            assert service.get_balance(household.kid_id) == 0
            assert [kid.display_name for kid in service.list_kids(household.family_id)] == ["Ava"]
    assert service.ensure_family("owner-2", "Lakes").name == "Lakes"


def test_timestamps_are_utc_aware(service, household) -> None:
    assert utcnow().tzinfo is timezone.utc
    family = service.ensure_family("owner-3", "Hills")
    assert family.created_at.tzinfo is timezone.utc
    assert service.complete_task(household.kid_id, household.brush_teeth_id) == 5
    assert service.get_family(family.id).created_at.replace(tzinfo=timezone.utc) == family.created_at
