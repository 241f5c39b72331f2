"""Tip pool distribution, locking and disputes."""

from labor_engine.tips.disputes import DisputeError, DisputeStatus, DisputeTracker, DisputeType, TipDispute
from labor_engine.tips.distributor import (
    LockConflictError,
    LockValidationError,
    PeriodLockedError,
    ShareMethod,
    SplitCadence,
    TipDistributionError,
    TipPoolDistributor,
    TipPoolSettings,
    TipShare,
    TipShareInput,
    TipSource,
    TipSplit,
    filter_tip_eligible,
    period_key,
    rebalance_allocations,
)

__all__ = [
    "DisputeError",
    "DisputeStatus",
    "DisputeTracker",
    "DisputeType",
    "TipDispute",
    "LockConflictError",
    "LockValidationError",
    "PeriodLockedError",
    "ShareMethod",
    "SplitCadence",
    "TipDistributionError",
    "TipPoolDistributor",
    "TipPoolSettings",
    "TipShare",
    "TipShareInput",
    "TipSource",
    "TipSplit",
    "filter_tip_eligible",
    "period_key",
    "rebalance_allocations",
]
