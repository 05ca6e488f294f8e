"""FastAPI frontend for the KidPoints engine.

The routes are a thin JSON layer over :class:`kidpoints.service.KidPoints`:
request bodies are validated by pydantic models, results are serialised by
:class:`kidpoints.api.ApiExporter` and package errors become
``{"error": code, "detail": message}`` bodies. Run it with
``uvicorn kidpoints.webapp:app``.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional, Type

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .api import ApiExporter
from .exceptions import (
    AlreadyCompletedError,
    AlreadyGrantedBonusError,
    ConcurrencyConflictError,
    DuplicateAssignmentError,
    InsufficientBalanceError,
    InvalidTransitionError,
    KidPointsError,
    NotEligibleError,
    NotFoundError,
    RecordInUseError,
)
from .models import BonusPeriod, Recurrence, RedemptionStatus
from .service import KidPoints

STATUS_CODES: Dict[Type[KidPointsError], int] = {
    NotFoundError: 404,
    AlreadyCompletedError: 409,
    DuplicateAssignmentError: 409,
    AlreadyGrantedBonusError: 409,
    InvalidTransitionError: 409,
    ConcurrencyConflictError: 409,
    RecordInUseError: 409,
    InsufficientBalanceError: 422,
    NotEligibleError: 422,
}

exporter = ApiExporter()
router = APIRouter()


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class FamilyIn(BaseModel):
    owner_uid: str
    name: str


class KidIn(BaseModel):
    display_name: str
    age: Optional[int] = None
    color_hex: Optional[str] = None
    avatar_url: Optional[str] = None


class TemplateIn(BaseModel):
    title: str
    base_points: int
    icon_emoji: str = ""
    description: Optional[str] = None
    recurrence: Recurrence = Recurrence.DAILY
    active: bool = True


class RewardIn(BaseModel):
    title: str
    cost_points: int
    description: Optional[str] = None
    icon_emoji: str = ""
    active: bool = True


class AssignmentIn(BaseModel):
    kid_id: int
    task_template_id: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_of_week: Optional[List[str]] = None
    base_points_override: Optional[int] = None
    active: bool = True


class AssignmentPatch(BaseModel):
    task_template_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_of_week: Optional[List[str]] = None
    base_points_override: Optional[int] = None
    active: Optional[bool] = None


class GenerateIn(BaseModel):
    day: Optional[date] = Field(default=None, alias="date")


class CompleteIn(BaseModel):
    day: Optional[date] = Field(default=None, alias="date")


class RedemptionIn(BaseModel):
    reward_id: int


class DecisionIn(BaseModel):
    decision: str
    actor: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)


# ---------------------------------------------------------------------------
# Dependencies and error mapping
# ---------------------------------------------------------------------------
def get_service(request: Request) -> KidPoints:
    service = getattr(request.app.state, "service", None)
    if service is None:
        service = KidPoints.from_config()
        request.app.state.service = service
    return service


def _error_body(code: str, detail: str) -> Dict[str, str]:
    return {"error": code, "detail": detail}


async def _kidpoints_error(_request: Request, exc: KidPointsError) -> JSONResponse:
    status = next((code for kind, code in STATUS_CODES.items() if isinstance(exc, kind)), 400)
    return JSONResponse(_error_body(exc.code, str(exc)), status_code=status)


async def _value_error(_request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(_error_body("invalid", str(exc)), status_code=422)


# ---------------------------------------------------------------------------
# Catalog routes
# ---------------------------------------------------------------------------
@router.post("/families", status_code=201)
def ensure_family(payload: FamilyIn, service: KidPoints = Depends(get_service)) -> dict:
    return exporter.family(service.ensure_family(payload.owner_uid, payload.name))


@router.post("/families/{family_id}/kids", status_code=201)
def create_kid(family_id: int, payload: KidIn, service: KidPoints = Depends(get_service)) -> dict:
    fields = payload.model_dump()
    kid = service.create_kid(family_id, fields.pop("display_name"), **fields)
    return exporter.kid(kid)


@router.get("/families/{family_id}/kids")
def list_kids(family_id: int, service: KidPoints = Depends(get_service)) -> list:
    return [exporter.kid(kid) for kid in service.list_kids(family_id)]


@router.post("/families/{family_id}/templates", status_code=201)
def create_template(family_id: int, payload: TemplateIn, service: KidPoints = Depends(get_service)) -> dict:
    fields = payload.model_dump()
    template = service.create_template(family_id, fields.pop("title"), fields.pop("base_points"), **fields)
    return exporter.template(template)


@router.get("/families/{family_id}/templates")
def list_templates(
    family_id: int,
    active_only: bool = False,
    service: KidPoints = Depends(get_service),
) -> list:
    return [exporter.template(item) for item in service.list_templates(family_id, active_only=active_only)]


@router.post("/families/{family_id}/rewards", status_code=201)
def create_reward(family_id: int, payload: RewardIn, service: KidPoints = Depends(get_service)) -> dict:
    fields = payload.model_dump()
    reward = service.create_reward(family_id, fields.pop("title"), fields.pop("cost_points"), **fields)
    return exporter.reward(reward)


@router.get("/families/{family_id}/rewards")
def list_rewards(
    family_id: int,
    active_only: bool = False,
    service: KidPoints = Depends(get_service),
) -> list:
    return [exporter.reward(item) for item in service.list_rewards(family_id, active_only=active_only)]


@router.post("/families/{family_id}/assignments", status_code=201)
def create_assignment(family_id: int, payload: AssignmentIn, service: KidPoints = Depends(get_service)) -> dict:
    kid = service.get_kid(payload.kid_id)
    if kid.family_id != family_id:
        raise NotFoundError(f"Kid '{payload.kid_id}' does not belong to family '{family_id}'.")
    fields = payload.model_dump()
    assignment = service.create_assignment(
        fields.pop("kid_id"),
        fields.pop("task_template_id"),
        fields.pop("start_date"),
        **fields,
    )
    return exporter.assignment(assignment)


@router.get("/families/{family_id}/assignments")
def list_assignments(family_id: int, service: KidPoints = Depends(get_service)) -> list:
    return [exporter.assignment(item) for item in service.list_assignments(family_id)]


@router.patch("/assignments/{assignment_id}")
def update_assignment(
    assignment_id: int,
    payload: AssignmentPatch,
    service: KidPoints = Depends(get_service),
) -> dict:
    changes = payload.model_dump(exclude_unset=True)
    return exporter.assignment(service.update_assignment(assignment_id, **changes))


@router.delete("/assignments/{assignment_id}", status_code=204)
def delete_assignment(assignment_id: int, service: KidPoints = Depends(get_service)) -> None:
    service.delete_assignment(assignment_id)


# ---------------------------------------------------------------------------
# Daily task routes
# ---------------------------------------------------------------------------
@router.post("/families/{family_id}/generate")
def generate_tasks(
    family_id: int,
    payload: Optional[GenerateIn] = None,
    service: KidPoints = Depends(get_service),
) -> dict:
    day = (payload.day if payload else None) or service.today()
    created = service.generate_daily_tasks(family_id, day)
    return {"family_id": family_id, "date": day.isoformat(), "created": created}


@router.get("/kids/{kid_id}/tasks")
def tasks_for_date(
    kid_id: int,
    day: Optional[date] = Query(None, alias="date"),
    service: KidPoints = Depends(get_service),
) -> list:
    return exporter.tasks(service.get_tasks_for_date(kid_id, day))


@router.get("/kids/{kid_id}/calendar")
def tasks_calendar(
    kid_id: int,
    start: date,
    end: date,
    service: KidPoints = Depends(get_service),
) -> list:
    return exporter.calendar(service.get_tasks_calendar(kid_id, start, end))


@router.post("/kids/{kid_id}/tasks/{template_id}/complete")
def complete_task(
    kid_id: int,
    template_id: int,
    payload: Optional[CompleteIn] = None,
    service: KidPoints = Depends(get_service),
) -> dict:
    day = (payload.day if payload else None) or service.today()
    balance = service.complete_task(kid_id, template_id, day)
    return {"kid_id": kid_id, "task_template_id": template_id, "date": day.isoformat(), "balance": balance}


# ---------------------------------------------------------------------------
# Ledger and bonus routes
# ---------------------------------------------------------------------------
@router.get("/kids/{kid_id}/balance")
def balance(kid_id: int, service: KidPoints = Depends(get_service)) -> dict:
    return {"kid_id": kid_id, "balance": service.get_balance(kid_id)}


@router.get("/kids/{kid_id}/history")
def history(
    kid_id: int,
    limit: Optional[int] = Query(None, ge=1),
    service: KidPoints = Depends(get_service),
) -> list:
    return [exporter.ledger_entry(entry) for entry in service.get_points_history(kid_id, limit)]


@router.get("/kids/{kid_id}/bonus/{period}")
def bonus_status(
    kid_id: int,
    period: BonusPeriod,
    service: KidPoints = Depends(get_service),
) -> dict:
    return exporter.eligibility(service.check_bonus_eligibility(kid_id, period))


@router.post("/kids/{kid_id}/bonus/{period}")
def grant_bonus(
    kid_id: int,
    period: BonusPeriod,
    service: KidPoints = Depends(get_service),
) -> dict:
    return {"kid_id": kid_id, "period": period.value, "balance": service.grant_bonus(kid_id, period)}


# ---------------------------------------------------------------------------
# Reward and redemption routes
# ---------------------------------------------------------------------------
@router.get("/kids/{kid_id}/rewards")
def active_rewards(kid_id: int, service: KidPoints = Depends(get_service)) -> list:
    return [exporter.reward(item) for item in service.list_active_rewards(kid_id)]


@router.post("/kids/{kid_id}/redemptions", status_code=201)
def request_redemption(kid_id: int, payload: RedemptionIn, service: KidPoints = Depends(get_service)) -> dict:
    return exporter.redemption(service.request_redemption(kid_id, payload.reward_id))


@router.post("/redemptions/{redemption_id}/decision")
def decide_redemption(
    redemption_id: int,
    payload: DecisionIn,
    service: KidPoints = Depends(get_service),
) -> dict:
    redemption = service.decide_redemption(redemption_id, payload.decision, payload.actor, payload.notes)
    return exporter.redemption(redemption)


@router.get("/families/{family_id}/redemptions")
def list_redemptions(
    family_id: int,
    status: Optional[RedemptionStatus] = None,
    service: KidPoints = Depends(get_service),
) -> list:
    return [exporter.redemption(item) for item in service.list_redemptions(family_id, status)]


@router.get("/health")
def health(service: KidPoints = Depends(get_service)) -> JSONResponse:
    status = service.health()
    return JSONResponse(status, status_code=200 if status["database"] == "ok" else 503)


# ---------------------------------------------------------------------------
# FastAPI application setup
# ---------------------------------------------------------------------------
def create_app(service: KidPoints | None = None) -> FastAPI:
    """Build the application; without ``service`` one is built from the environment on first use."""

    application = FastAPI(title="KidPoints")
    application.state.service = service
    application.add_exception_handler(KidPointsError, _kidpoints_error)
    application.add_exception_handler(ValueError, _value_error)
    application.include_router(router)
    return application


app = create_app()


__all__ = ["app", "create_app", "get_service", "router"]
