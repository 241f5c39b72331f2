"""Tip split, period lock and dispute models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from labor_engine.models.base import Base, TimestampMixin


class TipSplitRecord(Base, TimestampMixin):
    """The split of one period's pool. One row per (restaurant, period)."""

    __tablename__ = "tip_split"

    split_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    restaurant_id: Mapped[UUID] = mapped_column(nullable=False)
    period_key: Mapped[str] = mapped_column(String, nullable=False)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    share_method: Mapped[str] = mapped_column(String, nullable=False)
    tip_source: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    computed_at: Mapped[datetime] = mapped_column(nullable=False)
    # Bumped by every recompute or rebalance; a lock only flips the version it snapshotted
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "period_key", name="tip_split_period_unique"),
        CheckConstraint("total_cents >= 0", name="tip_split_total_check"),
        CheckConstraint("status IN ('draft', 'locked')", name="tip_split_status_check"),
        CheckConstraint(
            "share_method IN ('hours', 'role', 'manual')", name="tip_split_method_check"
        ),
    )

    items: Mapped[list[TipSplitItem]] = relationship(
        back_populates="split",
        cascade="all, delete-orphan",
        order_by="TipSplitItem.position",
    )


class TipSplitItem(Base):
    """One employee's share with the inputs used to compute it."""

    __tablename__ = "tip_split_item"

    item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    split_id: Mapped[UUID] = mapped_column(
        ForeignKey("tip_split.split_id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=Decimal("0"))
    role: Mapped[str | None] = mapped_column(String)
    role_weight: Mapped[Decimal | None] = mapped_column(Numeric(8, 4))
    share_fraction: Mapped[Decimal | None] = mapped_column(Numeric(12, 8))
    manually_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (CheckConstraint("amount_cents >= 0", name="tip_split_item_amount_check"),)

    split: Mapped[TipSplitRecord] = relationship(back_populates="items")


class TipPeriodLockRecord(Base, TimestampMixin):
    """Payroll-of-record snapshot. The unique key makes concurrent locks collide."""

    __tablename__ = "tip_period_lock"

    lock_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    restaurant_id: Mapped[UUID] = mapped_column(nullable=False)
    period_key: Mapped[str] = mapped_column(String, nullable=False)
    split_id: Mapped[UUID] = mapped_column(ForeignKey("tip_split.split_id"), nullable=False)
    locked_by: Mapped[UUID] = mapped_column(nullable=False)
    locked_at: Mapped[datetime] = mapped_column(nullable=False)
    snapshot: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    snapshot_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "period_key", name="tip_period_lock_unique"),
    )


class TipDisputeRecord(Base, TimestampMixin):
    """An employee's dispute of a split."""

    __tablename__ = "tip_dispute"

    dispute_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    restaurant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    employee_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    split_id: Mapped[UUID] = mapped_column(ForeignKey("tip_split.split_id"), nullable=False)
    dispute_type: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String, nullable=False, default="open")
    resolved_by: Mapped[UUID | None] = mapped_column()
    resolved_at: Mapped[datetime | None] = mapped_column()
    resolution_notes: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint(
            "dispute_type IN ('missing_hours', 'incorrect_amount', 'wrong_date', "
            "'missing_tips', 'wrong_role', 'other')",
            name="tip_dispute_type_check",
        ),
        CheckConstraint("status IN ('open', 'resolved')", name="tip_dispute_status_check"),
    )
