"""Labor calculation engine."""

from labor_engine.calculators.engine import EmployeePeriodResult, PayPeriodEngine, PayPeriodSummary
from labor_engine.calculators.overtime import OvertimeEngine
from labor_engine.calculators.time_accumulator import AccumulatedTime, TimeAccumulator

__all__ = [
    "PayPeriodEngine",
    "PayPeriodSummary",
    "EmployeePeriodResult",
    "OvertimeEngine",
    "TimeAccumulator",
    "AccumulatedTime",
]
