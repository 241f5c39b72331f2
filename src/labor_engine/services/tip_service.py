"""Tip pool service - distribution, rebalancing and period locks."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from labor_engine.models import TipPeriodLockRecord, TipSplitItem, TipSplitRecord
from labor_engine.services.audit import record_audit
from labor_engine.services.locking_service import LockingService
from labor_engine.services.state_machine import TipSplitStateMachine
from labor_engine.tips.distributor import (
    PeriodLockedError,
    ShareMethod,
    TipDistributionError,
    TipPoolSettings,
    TipShare,
    TipShareInput,
    TipSource,
    TipSplit,
    TipSplitStatus,
    compute_shares,
    rebalance_allocations,
    validate_lock,
)

logger = logging.getLogger(__name__)


class TipSplitNotFoundError(LookupError):
    """Raised when a period has no split."""


def split_from_record(record: TipSplitRecord) -> TipSplit:
    return TipSplit(
        split_id=record.split_id,
        period_key=record.period_key,
        total_cents=record.total_cents,
        share_method=ShareMethod(record.share_method),
        tip_source=TipSource(record.tip_source),
        shares=tuple(
            TipShare(
                employee_id=item.employee_id,
                amount_cents=item.amount_cents,
                hours=Decimal(item.hours),
                role=item.role,
                role_weight=None if item.role_weight is None else Decimal(item.role_weight),
                share_fraction=None if item.share_fraction is None else Decimal(item.share_fraction),
                manually_edited=item.manually_edited,
            )
            for item in record.items
        ),
        status=TipSplitStatus(record.status),
        computed_at=record.computed_at,
    )


def _item_from_share(position: int, share: TipShare) -> TipSplitItem:
    return TipSplitItem(
        position=position,
        employee_id=share.employee_id,
        amount_cents=share.amount_cents,
        hours=share.hours,
        role=share.role,
        role_weight=share.role_weight,
        share_fraction=share.share_fraction,
        manually_edited=share.manually_edited,
    )


class TipPoolService:
    """Service for the tip pool persistence boundary.

    Operations:
    - distribute_period: compute and store the period's draft split
    - rebalance_period: manual edit of one share, others rebalanced
    - lock_period: freeze the split (compare-and-set via LockingService)
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.locking_service = LockingService(session)

    async def get_split(self, restaurant_id: UUID, period_key: str) -> TipSplitRecord | None:
        result = await self.session.execute(
            select(TipSplitRecord)
            .where(
                TipSplitRecord.restaurant_id == restaurant_id,
                TipSplitRecord.period_key == period_key,
            )
            .options(selectinload(TipSplitRecord.items))
        )
        return result.scalar_one_or_none()

    async def get_split_by_id(self, restaurant_id: UUID, split_id: UUID) -> TipSplitRecord | None:
        result = await self.session.execute(
            select(TipSplitRecord)
            .where(
                TipSplitRecord.restaurant_id == restaurant_id,
                TipSplitRecord.split_id == split_id,
            )
            .options(selectinload(TipSplitRecord.items))
        )
        return result.scalar_one_or_none()

    async def get_lock(self, restaurant_id: UUID, period_key: str) -> TipPeriodLockRecord | None:
        return await self.locking_service.get_lock(restaurant_id, period_key)

    async def _ensure_unlocked(self, restaurant_id: UUID, period_key: str, split: TipSplitRecord | None) -> None:
        if split is not None and not TipSplitStateMachine.can_recompute(split.status):
            raise PeriodLockedError(period_key)
        if await self.locking_service.is_locked(restaurant_id, period_key):
            raise PeriodLockedError(period_key)

    async def _claim_draft(self, split: TipSplitRecord, computed_at: datetime) -> None:
        """Bump a draft split's version with a status-keyed update.

        The update runs before any share rows change. A lock that committed
        after the unlocked check leaves zero matching rows, so the recompute
        fails with PeriodLockedError instead of rewriting locked amounts.
        """
        result = await self.session.execute(
            update(TipSplitRecord)
            .where(
                TipSplitRecord.split_id == split.split_id,
                TipSplitRecord.status == TipSplitStatus.DRAFT.value,
            )
            .values(version=TipSplitRecord.version + 1, computed_at=computed_at)
            .returning(TipSplitRecord.version)
            .execution_options(synchronize_session=False)
        )
        version = result.scalar_one_or_none()
        if version is None:
            logger.warning("Recompute of tip period %s lost to a lock", split.period_key)
            raise PeriodLockedError(split.period_key)
        set_committed_value(split, "version", version)
        set_committed_value(split, "computed_at", computed_at)

    async def distribute_period(
        self,
        restaurant_id: UUID,
        period_key: str,
        total_cents: int,
        participants: Sequence[TipShareInput],
        settings: TipPoolSettings,
        actor_id: UUID | None = None,
    ) -> TipSplitRecord:
        """Compute the period's split, replacing any draft. Refused once locked."""
        split = await self.get_split(restaurant_id, period_key)
        await self._ensure_unlocked(restaurant_id, period_key, split)

        shares = compute_shares(total_cents, participants, settings)
        allocated = sum(s.amount_cents for s in shares)
        if allocated != total_cents:
            raise TipDistributionError(f"Shares sum to {allocated}, expected {total_cents}")

        computed_at = datetime.now(timezone.utc)
        items = [_item_from_share(i, s) for i, s in enumerate(shares)]
        if split is None:
            split = TipSplitRecord(
                restaurant_id=restaurant_id,
                period_key=period_key,
                total_cents=total_cents,
                share_method=settings.share_method.value,
                tip_source=settings.tip_source.value,
                status=TipSplitStatus.DRAFT.value,
                computed_at=computed_at,
                items=items,
            )
            self.session.add(split)
            await self.session.flush()
        else:
            await self._claim_draft(split, computed_at)
            split.total_cents = total_cents
            split.share_method = settings.share_method.value
            split.tip_source = settings.tip_source.value
            # Old rows are deleted before new positions are inserted
            split.items.clear()
            await self.session.flush()
            await self.session.refresh(split, ["items"])
            split.items.extend(items)
            await self.session.flush()

        await record_audit(
            self.session,
            restaurant_id,
            "tip_split",
            split.split_id,
            "distributed",
            actor_id,
            {
                "period_key": period_key,
                "total_cents": total_cents,
                "share_method": settings.share_method.value,
                "recipients": len(shares),
            },
        )
        logger.info(
            "Distributed %d cents over %d recipients for %s (restaurant %s)",
            total_cents,
            len(shares),
            period_key,
            restaurant_id,
        )
        return split

    async def rebalance_period(
        self,
        restaurant_id: UUID,
        period_key: str,
        employee_id: UUID,
        new_amount_cents: int,
        actor_id: UUID | None = None,
    ) -> TipSplitRecord:
        """Set one share manually and rebalance the others."""
        split = await self.get_split(restaurant_id, period_key)
        if split is None:
            raise TipSplitNotFoundError(f"No split for period '{period_key}'")
        await self._ensure_unlocked(restaurant_id, period_key, split)

        before = {str(item.employee_id): item.amount_cents for item in split.items}
        rebalanced = rebalance_allocations(split_from_record(split), employee_id, new_amount_cents)
        await self._claim_draft(split, rebalanced.computed_at)
        by_employee = {s.employee_id: s for s in rebalanced.shares}
        for item in split.items:
            share = by_employee[item.employee_id]
            item.amount_cents = share.amount_cents
            item.manually_edited = share.manually_edited
        await self.session.flush()

        await record_audit(
            self.session,
            restaurant_id,
            "tip_split",
            split.split_id,
            "rebalanced",
            actor_id,
            {
                "employee_id": str(employee_id),
                "new_amount_cents": new_amount_cents,
                "before": before,
            },
        )
        return split

    async def lock_period(
        self,
        restaurant_id: UUID,
        period_key: str,
        actor_id: UUID | None,
    ) -> TipPeriodLockRecord:
        """Lock the period. Raises LockValidationError or LockConflictError."""
        split = await self.get_split(restaurant_id, period_key)
        validate_lock(None if split is None else split_from_record(split), actor_id, period_key)

        lock = await self.locking_service.lock_split(split, actor_id)
        await record_audit(
            self.session,
            restaurant_id,
            "tip_split",
            lock.split_id,
            "locked",
            actor_id,
            {"period_key": period_key, "snapshot_hash": lock.snapshot_hash},
        )
        await self.session.flush()
        logger.info("Tip period %s locked by %s (restaurant %s)", period_key, actor_id, restaurant_id)
        return lock
