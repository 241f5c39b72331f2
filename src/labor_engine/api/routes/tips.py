"""Tip pool period and dispute endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from labor_engine.api.dependencies import DbSession, RestaurantId
from labor_engine.api.schemas import (
    DisputeCreate,
    DisputeListResponse,
    DisputeResolve,
    DisputeResponse,
    DistributeRequest,
    ErrorResponse,
    LockRequest,
    RebalanceRequest,
    TipLockResponse,
    TipPeriodResponse,
    TipSplitResponse,
)
from labor_engine.services import DisputeService, TipPoolService
from labor_engine.services.tip_service import TipSplitNotFoundError
from labor_engine.tips.disputes import DisputeStatus

router = APIRouter(prefix="/tips", tags=["tips"])

PeriodKey = Annotated[str, Path(min_length=1, max_length=64)]


@router.get(
    "/periods/{period_key}",
    response_model=TipPeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(
    period_key: PeriodKey,
    db: DbSession,
    restaurant_id: RestaurantId,
) -> TipPeriodResponse:
    """Get the period's split and its lock, if any."""
    service = TipPoolService(db)
    split = await service.get_split(restaurant_id, period_key)
    if split is None:
        raise TipSplitNotFoundError(f"No split for period '{period_key}'")
    lock = await service.get_lock(restaurant_id, period_key)
    return TipPeriodResponse(
        split=TipSplitResponse.model_validate(split),
        lock=None if lock is None else TipLockResponse.model_validate(lock),
    )


@router.post(
    "/periods/{period_key}/distribute",
    response_model=TipPeriodResponse,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def distribute_period(
    period_key: PeriodKey,
    body: DistributeRequest,
    db: DbSession,
    restaurant_id: RestaurantId,
) -> TipPeriodResponse:
    """Compute the period's split. A locked period returns 409 and is left untouched."""
    service = TipPoolService(db)
    split = await service.distribute_period(
        restaurant_id,
        period_key,
        body.total_cents,
        [p.to_domain() for p in body.participants],
        body.settings.to_domain(),
        actor_id=body.actor_id,
    )
    await db.commit()
    return TipPeriodResponse(split=TipSplitResponse.model_validate(split))


@router.post(
    "/periods/{period_key}/rebalance",
    response_model=TipPeriodResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def rebalance_period(
    period_key: PeriodKey,
    body: RebalanceRequest,
    db: DbSession,
    restaurant_id: RestaurantId,
) -> TipPeriodResponse:
    """Set one employee's share; the others are rebalanced to keep the total."""
    service = TipPoolService(db)
    split = await service.rebalance_period(
        restaurant_id, period_key, body.employee_id, body.amount_cents, actor_id=body.actor_id
    )
    await db.commit()
    return TipPeriodResponse(split=TipSplitResponse.model_validate(split))


@router.post(
    "/periods/{period_key}/lock",
    response_model=TipLockResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def lock_period(
    period_key: PeriodKey,
    body: LockRequest,
    db: DbSession,
    restaurant_id: RestaurantId,
) -> TipLockResponse:
    """Lock the period's split into the payroll record. Irreversible."""
    service = TipPoolService(db)
    lock = await service.lock_period(restaurant_id, period_key, body.actor_id)
    await db.commit()
    return TipLockResponse.model_validate(lock)


@router.post(
    "/disputes",
    response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_dispute(
    body: DisputeCreate,
    db: DbSession,
    restaurant_id: RestaurantId,
) -> DisputeResponse:
    """Open a dispute against a split."""
    service = DisputeService(db)
    record = await service.create_dispute(
        restaurant_id, body.employee_id, body.split_id, body.dispute_type, body.message
    )
    await db.commit()
    return DisputeResponse.model_validate(record)


@router.get("/disputes", response_model=DisputeListResponse)
async def list_disputes(
    db: DbSession,
    restaurant_id: RestaurantId,
    status_filter: Annotated[DisputeStatus | None, Query(alias="status")] = None,
    split_id: UUID | None = None,
) -> DisputeListResponse:
    """List disputes, optionally filtered by status or split."""
    service = DisputeService(db)
    records = await service.list_disputes(restaurant_id, status_filter, split_id)
    return DisputeListResponse(
        items=[DisputeResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.post(
    "/disputes/{dispute_id}/resolve",
    response_model=DisputeResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def resolve_dispute(
    dispute_id: Annotated[UUID, Path()],
    body: DisputeResolve,
    db: DbSession,
    restaurant_id: RestaurantId,
) -> DisputeResponse:
    """Resolve an open dispute. The disputed split is not changed."""
    service = DisputeService(db)
    record = await service.resolve_dispute(restaurant_id, dispute_id, body.resolved_by, body.notes)
    await db.commit()
    return DisputeResponse.model_validate(record)
