"""Employee disputes against computed tip splits."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

logger = logging.getLogger(__name__)


class DisputeType(str, Enum):
    """Reason category of a dispute."""

    MISSING_HOURS = "missing_hours"
    INCORRECT_AMOUNT = "incorrect_amount"
    WRONG_DATE = "wrong_date"
    MISSING_TIPS = "missing_tips"
    WRONG_ROLE = "wrong_role"
    OTHER = "other"


class DisputeStatus(str, Enum):
    """Dispute lifecycle status."""

    OPEN = "open"
    RESOLVED = "resolved"


class DisputeError(ValueError):
    """Raised for disputes against unknown splits, bad types or bad transitions."""


@dataclass
class TipDispute:
    """An objection raised by an employee against one split."""

    dispute_id: UUID
    employee_id: UUID
    split_id: UUID
    dispute_type: DisputeType
    message: str
    status: DisputeStatus = DisputeStatus.OPEN
    created_at: datetime | None = None
    resolved_by: UUID | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None


class DisputeTracker:
    """Records disputes. Never recomputes or edits the disputed split.

    ``split_exists`` is the lookup used to check the referenced split; it lets
    the tracker work against a distributor, a repository or a plain set.
    """

    def __init__(self, split_exists: Callable[[UUID], bool]):
        self._split_exists = split_exists
        self._disputes: dict[UUID, TipDispute] = {}

    def create(
        self,
        employee_id: UUID,
        split_id: UUID,
        dispute_type: DisputeType | str,
        message: str = "",
    ) -> TipDispute:
        try:
            dispute_type = DisputeType(dispute_type)
        except ValueError:
            raise DisputeError(f"Unknown dispute type: {dispute_type!r}") from None
        if not self._split_exists(split_id):
            raise DisputeError(f"Tip split {split_id} does not exist")

        dispute = TipDispute(
            dispute_id=uuid4(),
            employee_id=employee_id,
            split_id=split_id,
            dispute_type=dispute_type,
            message=message,
            created_at=datetime.now(timezone.utc),
        )
        self._disputes[dispute.dispute_id] = dispute
        logger.info(
            "Dispute %s (%s) opened by %s on split %s",
            dispute.dispute_id,
            dispute_type.value,
            employee_id,
            split_id,
        )
        return dispute

    def resolve(
        self,
        dispute_id: UUID,
        resolved_by: UUID | None,
        notes: str | None = None,
        at: datetime | None = None,
    ) -> TipDispute:
        dispute = self.get(dispute_id)
        if resolved_by is None:
            raise DisputeError("A resolving user is required")
        if dispute.status != DisputeStatus.OPEN:
            raise DisputeError(f"Dispute {dispute_id} is already {dispute.status.value}")
        dispute.status = DisputeStatus.RESOLVED
        dispute.resolved_by = resolved_by
        dispute.resolved_at = at or datetime.now(timezone.utc)
        dispute.resolution_notes = notes
        return dispute

    def get(self, dispute_id: UUID) -> TipDispute:
        dispute = self._disputes.get(dispute_id)
        if dispute is None:
            raise DisputeError(f"Dispute {dispute_id} not found")
        return dispute

    def list(
        self,
        status: DisputeStatus | None = None,
        split_id: UUID | None = None,
    ) -> list[TipDispute]:
        return [
            d
            for d in self._disputes.values()
            if (status is None or d.status == status)
            and (split_id is None or d.split_id == split_id)
        ]
