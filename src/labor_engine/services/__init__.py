"""Labor engine persistence services."""

from labor_engine.services.state_machine import (
    DisputeStateMachine,
    InvalidTransitionError,
    TipSplitStateMachine,
    ViolationStateMachine,
)
from labor_engine.services.compliance_service import ComplianceService
from labor_engine.services.dispute_service import DisputeService
from labor_engine.services.locking_service import LockingService
from labor_engine.services.tip_service import TipPoolService

__all__ = [
    "DisputeStateMachine",
    "InvalidTransitionError",
    "TipSplitStateMachine",
    "ViolationStateMachine",
    "ComplianceService",
    "DisputeService",
    "LockingService",
    "TipPoolService",
]
