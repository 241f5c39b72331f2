"""Tip period locking with compare-and-set at the database."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from labor_engine.models import TipPeriodLockRecord, TipSplitRecord
from labor_engine.services.state_machine import TipSplitStateMachine
from labor_engine.tips.distributor import LockConflictError, TipSplitStatus, snapshot_hash

logger = logging.getLogger(__name__)


class LockingService:
    """Service for locking tip periods into the payroll record.

    Locking a period:
    1. Inserts a lock row unique on (restaurant_id, period_key)
    2. Flips the split draft → locked with an update keyed on status and version
    3. Stores a snapshot of final amounts and its hash

    Two concurrent lock attempts cannot both win: the loser either hits the
    unique constraint or updates zero rows, and gets LockConflictError. A
    recompute committed after the snapshot was read bumps the version, so the
    lock loses rather than freezing stale amounts.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_lock(self, restaurant_id: UUID, period_key: str) -> TipPeriodLockRecord | None:
        result = await self.session.execute(
            select(TipPeriodLockRecord).where(
                TipPeriodLockRecord.restaurant_id == restaurant_id,
                TipPeriodLockRecord.period_key == period_key,
            )
        )
        return result.scalar_one_or_none()

    async def is_locked(self, restaurant_id: UUID, period_key: str) -> bool:
        return await self.get_lock(restaurant_id, period_key) is not None

    async def lock_split(
        self,
        split: TipSplitRecord,
        actor_id: UUID,
        locked_at: datetime | None = None,
    ) -> TipPeriodLockRecord:
        """Lock a split. Raises LockConflictError if another lock won."""
        period_key = split.period_key
        if not TipSplitStateMachine.can_transition(split.status, TipSplitStatus.LOCKED):
            raise LockConflictError(period_key)

        locked_at = locked_at or datetime.now(timezone.utc)
        snapshot = self.snapshot(split)
        lock = TipPeriodLockRecord(
            restaurant_id=split.restaurant_id,
            period_key=split.period_key,
            split_id=split.split_id,
            locked_by=actor_id,
            locked_at=locked_at,
            snapshot=snapshot,
            snapshot_hash=snapshot_hash(snapshot),
        )
        self.session.add(lock)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            logger.warning("Lock conflict on tip period %s (unique key)", period_key)
            raise LockConflictError(period_key) from None

        result = await self.session.execute(
            update(TipSplitRecord)
            .where(
                TipSplitRecord.split_id == split.split_id,
                TipSplitRecord.status == TipSplitStatus.DRAFT.value,
                TipSplitRecord.version == split.version,
            )
            .values(status=TipSplitStatus.LOCKED.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            logger.warning("Lock conflict on tip period %s (status or version changed)", period_key)
            raise LockConflictError(period_key)

        set_committed_value(split, "status", TipSplitStatus.LOCKED.value)
        return lock

    @staticmethod
    def snapshot(split: TipSplitRecord) -> dict[str, int]:
        return {str(item.employee_id): item.amount_cents for item in split.items}

    def verify_lock_intact(self, lock: TipPeriodLockRecord, split: TipSplitRecord) -> list[str]:
        """Compare the stored snapshot with current split rows.

        Returns list of error messages (empty if intact).
        """
        errors: list[str] = []
        if snapshot_hash(lock.snapshot) != lock.snapshot_hash:
            errors.append("Stored snapshot does not match its hash")
        if self.snapshot(split) != lock.snapshot:
            errors.append("Split amounts differ from the locked snapshot")
        if split.status != TipSplitStatus.LOCKED.value:
            errors.append(f"Split status is '{split.status}', expected 'locked'")
        return errors
