"""Dispute service - employee objections to tip splits."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from labor_engine.models import TipDisputeRecord, TipSplitRecord
from labor_engine.services.audit import record_audit
from labor_engine.services.state_machine import DisputeStateMachine, InvalidTransitionError
from labor_engine.tips.disputes import DisputeError, DisputeStatus, DisputeType

logger = logging.getLogger(__name__)


class DisputeNotFoundError(LookupError):
    """Raised when a dispute does not exist for the restaurant."""


class DisputeService:
    """Records disputes against stored splits. Never touches split amounts."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_dispute(
        self,
        restaurant_id: UUID,
        employee_id: UUID,
        split_id: UUID,
        dispute_type: DisputeType | str,
        message: str = "",
    ) -> TipDisputeRecord:
        try:
            dispute_type = DisputeType(dispute_type)
        except ValueError:
            raise DisputeError(f"Unknown dispute type: {dispute_type!r}") from None

        split = await self.session.execute(
            select(TipSplitRecord.split_id).where(
                TipSplitRecord.restaurant_id == restaurant_id,
                TipSplitRecord.split_id == split_id,
            )
        )
        if split.scalar_one_or_none() is None:
            raise DisputeError(f"Tip split {split_id} does not exist")

        record = TipDisputeRecord(
            restaurant_id=restaurant_id,
            employee_id=employee_id,
            split_id=split_id,
            dispute_type=dispute_type.value,
            message=message,
            status=DisputeStatus.OPEN.value,
        )
        self.session.add(record)
        await self.session.flush()
        await record_audit(
            self.session,
            restaurant_id,
            "tip_dispute",
            record.dispute_id,
            "opened",
            employee_id,
            {"split_id": str(split_id), "dispute_type": dispute_type.value},
        )
        logger.info("Dispute %s opened on split %s", record.dispute_id, split_id)
        return record

    async def get_dispute(self, restaurant_id: UUID, dispute_id: UUID) -> TipDisputeRecord | None:
        result = await self.session.execute(
            select(TipDisputeRecord).where(
                TipDisputeRecord.restaurant_id == restaurant_id,
                TipDisputeRecord.dispute_id == dispute_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_disputes(
        self,
        restaurant_id: UUID,
        status: DisputeStatus | str | None = None,
        split_id: UUID | None = None,
    ) -> list[TipDisputeRecord]:
        query = select(TipDisputeRecord).where(TipDisputeRecord.restaurant_id == restaurant_id)
        if status is not None:
            query = query.where(TipDisputeRecord.status == DisputeStatus(status).value)
        if split_id is not None:
            query = query.where(TipDisputeRecord.split_id == split_id)
        result = await self.session.execute(query.order_by(TipDisputeRecord.created_at))
        return list(result.scalars().all())

    async def resolve_dispute(
        self,
        restaurant_id: UUID,
        dispute_id: UUID,
        resolved_by: UUID | None,
        notes: str | None = None,
    ) -> TipDisputeRecord:
        """Resolve an open dispute (status-keyed update)."""
        record = await self.get_dispute(restaurant_id, dispute_id)
        if record is None:
            raise DisputeNotFoundError(f"Dispute {dispute_id} not found")
        if resolved_by is None:
            raise DisputeError("A resolving user is required")
        DisputeStateMachine.validate_transition(record.status, DisputeStatus.RESOLVED)

        result = await self.session.execute(
            update(TipDisputeRecord)
            .where(
                TipDisputeRecord.dispute_id == dispute_id,
                TipDisputeRecord.status == DisputeStatus.OPEN.value,
            )
            .values(
                status=DisputeStatus.RESOLVED.value,
                resolved_by=resolved_by,
                resolved_at=datetime.now(timezone.utc),
                resolution_notes=notes,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.refresh(record)
            raise InvalidTransitionError(record.status, DisputeStatus.RESOLVED, "Dispute changed concurrently")

        await self.session.refresh(record)
        await record_audit(
            self.session,
            restaurant_id,
            "tip_dispute",
            dispute_id,
            "resolved",
            resolved_by,
            {"notes": notes},
        )
        return record
