import pytest

pytest.importorskip("fastapi")
pytest.importorskip("httpx")
from fastapi.testclient import TestClient

from conftest import TODAY
from kidpoints.webapp import create_app


@pytest.fixture()
def client(service):
    with TestClient(create_app(service)) as test_client:
        yield test_client


@pytest.fixture()
def seeded(client):
    family = client.post("/families", json={"owner_uid": "uid-1", "name": "Rivers"}).json()
    kid = client.post(f"/families/{family['id']}/kids", json={"display_name": "Ava", "age": 8}).json()
    template = client.post(
        f"/families/{family['id']}/templates",
        json={"title": "Brush teeth", "base_points": 5, "icon_emoji": "🪥"},
    ).json()
    response = client.post(
        f"/families/{family['id']}/assignments",
        json={"kid_id": kid["id"], "task_template_id": template["id"], "start_date": TODAY.isoformat()},
    )
    assert response.status_code == 201
    return {"family": family["id"], "kid": kid["id"], "template": template["id"], "assignment": response.json()["id"]}


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "ok"


def test_daily_flow(client, seeded) -> None:
    kid, family = seeded["kid"], seeded["family"]
    generated = client.post(f"/families/{family}/generate", json={"date": TODAY.isoformat()})
    assert generated.json() == {"family_id": family, "date": "2026-10-19", "created": 1}

    tasks = client.get(f"/kids/{kid}/tasks", params={"date": TODAY.isoformat()}).json()
    assert [(task["title"], task["status"], task["points"]) for task in tasks] == [("Brush teeth", "pending", 5)]

    done = client.post(f"/kids/{kid}/tasks/{seeded['template']}/complete")
    assert done.status_code == 200
    assert done.json()["balance"] == 5

    again = client.post(f"/kids/{kid}/tasks/{seeded['template']}/complete")
    assert again.status_code == 409
    assert again.json()["error"] == "already_completed"

    assert client.get(f"/kids/{kid}/balance").json() == {"kid_id": kid, "balance": 5}
    history = client.get(f"/kids/{kid}/history", params={"limit": 10}).json()
    assert history[0]["entry_type"] == "credit"
    assert history[0]["description"] == "Completed: Brush teeth"


def test_bonus_routes(client, seeded) -> None:
    kid = seeded["kid"]
    status = client.get(f"/kids/{kid}/bonus/daily").json()
    assert status["eligible"] is False
    refused = client.post(f"/kids/{kid}/bonus/daily")
    assert refused.status_code == 422
    assert refused.json()["error"] == "not_eligible"

    client.post(f"/kids/{kid}/tasks/{seeded['template']}/complete")
    granted = client.post(f"/kids/{kid}/bonus/daily")
    assert granted.json()["balance"] == 15
    assert client.post(f"/kids/{kid}/bonus/daily").status_code == 409
    assert client.get(f"/kids/{kid}/bonus/monthly").status_code == 422


def test_redemption_routes(client, seeded) -> None:
    kid, family = seeded["kid"], seeded["family"]
    reward = client.post(f"/families/{family}/rewards", json={"title": "Sticker", "cost_points": 5}).json()
    assert [item["title"] for item in client.get(f"/kids/{kid}/rewards").json()] == ["Sticker"]

    short = client.post(f"/kids/{kid}/redemptions", json={"reward_id": reward["id"]})
    assert short.status_code == 422
    assert short.json()["error"] == "insufficient_balance"

    client.post(f"/kids/{kid}/tasks/{seeded['template']}/complete")
    created = client.post(f"/kids/{kid}/redemptions", json={"reward_id": reward["id"]})
    assert created.status_code == 201
    redemption = created.json()
    assert redemption["status"] == "pending"
    assert client.get(f"/kids/{kid}/balance").json()["balance"] == 0

    decided = client.post(
        f"/redemptions/{redemption['id']}/decision",
        json={"decision": "rejected", "actor": "mom"},
    )
    assert decided.json()["status"] == "rejected"
    assert client.get(f"/kids/{kid}/balance").json()["balance"] == 5

    illegal = client.post(f"/redemptions/{redemption['id']}/decision", json={"decision": "delivered"})
    assert illegal.status_code == 409
    assert illegal.json()["error"] == "invalid_transition"

    listed = client.get(f"/families/{family}/redemptions", params={"status": "rejected"}).json()
    assert [item["id"] for item in listed] == [redemption["id"]]


def test_calendar_and_assignment_routes(client, seeded) -> None:
    kid, family = seeded["kid"], seeded["family"]
    patched = client.patch(f"/assignments/{seeded['assignment']}", json={"days_of_week": ["mon", "wed"]})
    assert patched.json()["days_of_week"] == ["mon", "wed"]

    calendar = client.get(f"/kids/{kid}/calendar", params={"start": "2026-10-19", "end": "2026-10-25"}).json()
    assert [day["date"] for day in calendar] == ["2026-10-19", "2026-10-21"]
    backwards = client.get(f"/kids/{kid}/calendar", params={"start": "2026-10-25", "end": "2026-10-19"})
    assert backwards.status_code == 422

    duplicate = client.post(
        f"/families/{family}/assignments",
        json={"kid_id": kid, "task_template_id": seeded["template"]},
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "duplicate_assignment"

    assert client.delete(f"/assignments/{seeded['assignment']}").status_code == 204
    assert client.get(f"/families/{family}/assignments").json() == []


def test_unknown_ids_are_404(client) -> None:
    assert client.get("/kids/404/balance").status_code == 404
    missing = client.post("/families/404/kids", json={"display_name": "Ghost"})
    assert missing.status_code == 404
    assert missing.json() == {"error": "not_found", "detail": "Family '404' does not exist."}


def test_assignment_patch_errors(client, seeded) -> None:
    cleared = client.patch(f"/assignments/{seeded['assignment']}", json={"active": None})
    assert cleared.status_code == 422
    assert cleared.json() == {"error": "invalid", "detail": "active cannot be null."}

    family, kid = seeded["family"], seeded["kid"]
    other = client.post(f"/families/{family}/templates", json={"title": "Make bed", "base_points": 2}).json()
    second = client.post(
        f"/families/{family}/assignments",
        json={"kid_id": kid, "task_template_id": other["id"], "start_date": TODAY.isoformat()},
    ).json()
    clash = client.patch(f"/assignments/{second['id']}", json={"task_template_id": seeded["template"]})
    assert clash.status_code == 409
    assert clash.json()["error"] == "duplicate_assignment"


def test_history_timestamps_carry_utc_offset(client, seeded) -> None:
    kid = seeded["kid"]
    client.post(f"/kids/{kid}/tasks/{seeded['template']}/complete")
    (entry,) = client.get(f"/kids/{kid}/history").json()
    assert entry["created_at"].endswith("+00:00")
    assert client.get(f"/kids/{kid}/history", params={"limit": 0}).status_code == 422
