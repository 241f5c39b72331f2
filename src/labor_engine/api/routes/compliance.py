"""Compliance rule, evaluation and violation endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from labor_engine.api.dependencies import DbSession, RestaurantId
from labor_engine.api.schemas import (
    ErrorResponse,
    EvaluateRequest,
    EvaluateResponse,
    OverrideRequest,
    RuleCreate,
    RuleResponse,
    RuleUpdate,
    ViolationListResponse,
    ViolationResponse,
)
from labor_engine.compliance.violations import ViolationStatus
from labor_engine.services import ComplianceService

router = APIRouter(prefix="/compliance", tags=["compliance"])


@router.post(
    "/rules",
    response_model=RuleResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_rule(
    body: RuleCreate,
    db: DbSession,
    restaurant_id: RestaurantId,
) -> RuleResponse:
    """Save a compliance rule. The config is validated for its rule type."""
    service = ComplianceService(db)
    record = await service.save_rule(restaurant_id, body.rule_type, body.config, body.enabled)
    await db.commit()
    return RuleResponse.model_validate(record)


@router.get("/rules", response_model=list[RuleResponse])
async def list_rules(
    db: DbSession,
    restaurant_id: RestaurantId,
    enabled_only: bool = False,
) -> list[RuleResponse]:
    """List the restaurant's rules."""
    service = ComplianceService(db)
    records = await service.list_rules(restaurant_id, enabled_only=enabled_only)
    return [RuleResponse.model_validate(r) for r in records]


@router.put(
    "/rules/{rule_id}",
    response_model=RuleResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_rule(
    rule_id: Annotated[UUID, Path()],
    body: RuleUpdate,
    db: DbSession,
    restaurant_id: RestaurantId,
) -> RuleResponse:
    """Update a rule's config or enabled flag."""
    service = ComplianceService(db)
    record = await service.update_rule(restaurant_id, rule_id, body.config, body.enabled)
    await db.commit()
    return RuleResponse.model_validate(record)


@router.post(
    "/evaluate",
    response_model=EvaluateResponse,
    responses={422: {"model": ErrorResponse}},
)
async def evaluate(
    body: EvaluateRequest,
    db: DbSession,
    restaurant_id: RestaurantId,
) -> EvaluateResponse:
    """Evaluate the enabled rules against a schedule.

    Conditions already recorded as active or overridden are not recreated;
    active violations whose condition is gone are resolved.
    """
    service = ComplianceService(db)
    result = await service.run_evaluation(
        restaurant_id,
        [e.to_domain() for e in body.employees],
        [s.to_domain() for s in body.shifts],
        actor_id=body.actor_id,
    )
    await db.commit()
    return EvaluateResponse(
        created=[ViolationResponse.model_validate(v) for v in result.created],
        resolved=[v.violation_id for v in result.resolved],
        unchanged=len(result.unchanged),
    )


@router.get("/violations", response_model=ViolationListResponse)
async def list_violations(
    db: DbSession,
    restaurant_id: RestaurantId,
    status_filter: Annotated[ViolationStatus | None, Query(alias="status")] = None,
    employee_id: UUID | None = None,
) -> ViolationListResponse:
    """List violations, optionally filtered by status or employee."""
    service = ComplianceService(db)
    records = await service.list_violations(restaurant_id, status_filter, employee_id)
    return ViolationListResponse(
        items=[ViolationResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.get(
    "/violations/{violation_id}",
    response_model=ViolationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_violation(
    violation_id: Annotated[UUID, Path()],
    db: DbSession,
    restaurant_id: RestaurantId,
) -> ViolationResponse:
    """Get a violation by ID."""
    service = ComplianceService(db)
    record = await service.get_violation(restaurant_id, violation_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Violation {violation_id} not found",
        )
    return ViolationResponse.model_validate(record)


@router.post(
    "/violations/{violation_id}/override",
    response_model=ViolationResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def override_violation(
    violation_id: Annotated[UUID, Path()],
    body: OverrideRequest,
    db: DbSession,
    restaurant_id: RestaurantId,
) -> ViolationResponse:
    """Override an active violation with a reason.

    A violation that is no longer active (overridden concurrently, or
    resolved) returns 409.
    """
    service = ComplianceService(db)
    record = await service.override_violation(
        restaurant_id, violation_id, body.reason, body.actor_id
    )
    await db.commit()
    return ViolationResponse.model_validate(record)
