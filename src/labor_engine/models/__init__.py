"""SQLAlchemy ORM models."""

from labor_engine.models.audit import AuditEvent
from labor_engine.models.base import Base, TimestampMixin
from labor_engine.models.compliance import ComplianceRuleRecord, ComplianceViolationRecord
from labor_engine.models.tips import (
    TipDisputeRecord,
    TipPeriodLockRecord,
    TipSplitItem,
    TipSplitRecord,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "AuditEvent",
    "ComplianceRuleRecord",
    "ComplianceViolationRecord",
    "TipSplitRecord",
    "TipSplitItem",
    "TipPeriodLockRecord",
    "TipDisputeRecord",
]
