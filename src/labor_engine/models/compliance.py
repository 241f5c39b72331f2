"""Compliance rule and violation models."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from labor_engine.models.base import Base, TimestampMixin

RULE_TYPES = "('minor_restrictions', 'clopening', 'rest_period', 'shift_length', 'overtime')"


class ComplianceRuleRecord(Base, TimestampMixin):
    """A stored rule configuration. Configs are validated before insert/update."""

    __tablename__ = "compliance_rule"

    rule_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    restaurant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    rule_type: Mapped[str] = mapped_column(String, nullable=False)
    rule_config: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint(f"rule_type IN {RULE_TYPES}", name="compliance_rule_type_check"),
    )


class ComplianceViolationRecord(Base, TimestampMixin):
    """A violation found by an evaluation run. Rows are never deleted."""

    __tablename__ = "compliance_violation"

    violation_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    restaurant_id: Mapped[UUID] = mapped_column(nullable=False)
    rule_type: Mapped[str] = mapped_column(String, nullable=False)
    severity: Mapped[str] = mapped_column(String, nullable=False, default="warning")
    employee_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    shift_id: Mapped[UUID | None] = mapped_column(nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    detected_at: Mapped[datetime] = mapped_column(nullable=False)
    override_reason: Mapped[str | None] = mapped_column(Text)
    overridden_by: Mapped[UUID | None] = mapped_column()
    overridden_at: Mapped[datetime | None] = mapped_column()
    resolved_at: Mapped[datetime | None] = mapped_column()

    __table_args__ = (
        CheckConstraint(f"rule_type IN {RULE_TYPES}", name="compliance_violation_type_check"),
        CheckConstraint(
            "severity IN ('warning', 'error', 'critical')",
            name="compliance_violation_severity_check",
        ),
        CheckConstraint(
            "status IN ('active', 'overridden', 'resolved')",
            name="compliance_violation_status_check",
        ),
        CheckConstraint(
            "status <> 'overridden' OR (override_reason IS NOT NULL "
            "AND overridden_by IS NOT NULL AND overridden_at IS NOT NULL)",
            name="compliance_violation_override_fields_check",
        ),
        Index("ix_compliance_violation_restaurant_status", "restaurant_id", "status"),
        Index("ix_compliance_violation_fingerprint", "restaurant_id", "fingerprint"),
    )
