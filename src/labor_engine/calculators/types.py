"""Type definitions for the labor calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from labor_engine.calculators.rounding import ZERO, round_hours, to_decimal


class CompensationType(str, Enum):
    """How an employee is compensated."""

    HOURLY = "hourly"
    SALARY = "salary"
    DAILY_RATE = "daily_rate"
    CONTRACTOR = "contractor"


class PunchType(str, Enum):
    """Time clock punch kinds."""

    CLOCK_IN = "clock_in"
    BREAK_START = "break_start"
    BREAK_END = "break_end"
    CLOCK_OUT = "clock_out"


# Tie-break for punches sharing a timestamp: closing punches before opening ones
PUNCH_ORDER = {
    PunchType.BREAK_END: 0,
    PunchType.CLOCK_OUT: 1,
    PunchType.CLOCK_IN: 2,
    PunchType.BREAK_START: 3,
}


class AdjustmentDirection(str, Enum):
    """Direction of a manual overtime reclassification."""

    REGULAR_TO_OVERTIME = "regular_to_overtime"
    OVERTIME_TO_REGULAR = "overtime_to_regular"


@dataclass(frozen=True)
class Employee:
    """Employee record as loaded by the roster provider."""

    employee_id: UUID
    name: str
    role: str | None = None
    compensation_type: CompensationType = CompensationType.HOURLY
    hourly_rate_cents: int = 0
    is_exempt: bool = False
    tip_eligible: bool = True
    is_active: bool = True
    is_minor: bool = False
    birth_date: date | None = None

    def is_minor_on(self, day: date) -> bool:
        """Whether the employee counts as a minor on the given date."""
        if self.is_minor:
            return True
        if self.birth_date is None:
            return False
        age = day.year - self.birth_date.year
        if (day.month, day.day) < (self.birth_date.month, self.birth_date.day):
            age -= 1
        return age < 18


@dataclass(frozen=True)
class TimePunch:
    """A single time clock punch."""

    employee_id: UUID
    punch_time: datetime
    punch_type: PunchType
    punch_id: UUID | None = None


@dataclass(frozen=True)
class Shift:
    """A scheduled or worked shift."""

    shift_id: UUID
    employee_id: UUID
    start_time: datetime
    end_time: datetime
    break_minutes: int = 0
    position: str | None = None
    status: str = "scheduled"

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"


@dataclass
class DailyHours:
    """Worked time accumulated for one employee on one day."""

    work_date: date
    total_minutes: int = 0
    break_minutes: int = 0

    @property
    def net_minutes(self) -> int:
        return max(self.total_minutes - self.break_minutes, 0)

    @property
    def total_hours(self) -> Decimal:
        return round_hours(Decimal(self.total_minutes) / Decimal(60))

    @property
    def break_hours(self) -> Decimal:
        return round_hours(Decimal(self.break_minutes) / Decimal(60))

    @property
    def net_hours(self) -> Decimal:
        return round_hours(Decimal(self.net_minutes) / Decimal(60))


class OvertimeConfigError(ValueError):
    """Raised when overtime rules are internally inconsistent."""


@dataclass(frozen=True)
class OvertimeRules:
    """Per-restaurant overtime configuration.

    Attributes:
        weekly_threshold_hours: Regular hours allowed per week before weekly OT.
        weekly_ot_multiplier: Pay multiplier for weekly overtime.
        daily_threshold_hours: Regular hours allowed per day, None disables daily OT.
        daily_ot_multiplier: Pay multiplier for daily overtime.
        double_time_threshold_hours: Hours per day after which double time starts.
        double_time_multiplier: Pay multiplier for double time.
        exclude_tips_from_ot_rate: When False, tips are blended into the OT base rate.
    """

    weekly_threshold_hours: Decimal = Decimal("40")
    weekly_ot_multiplier: Decimal = Decimal("1.5")
    daily_threshold_hours: Decimal | None = None
    daily_ot_multiplier: Decimal = Decimal("1.5")
    double_time_threshold_hours: Decimal | None = None
    double_time_multiplier: Decimal = Decimal("2.0")
    exclude_tips_from_ot_rate: bool = True

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.weekly_threshold_hours <= 0:
            raise OvertimeConfigError("weekly_threshold_hours must be positive")
        if self.daily_threshold_hours is not None and self.daily_threshold_hours <= 0:
            raise OvertimeConfigError("daily_threshold_hours must be positive")
        if self.double_time_threshold_hours is not None:
            if self.daily_threshold_hours is None:
                raise OvertimeConfigError(
                    "double_time_threshold_hours requires daily_threshold_hours"
                )
            if self.double_time_threshold_hours < self.daily_threshold_hours:
                raise OvertimeConfigError(
                    "double_time_threshold_hours must be >= daily_threshold_hours"
                )
        for name in ("weekly_ot_multiplier", "daily_ot_multiplier", "double_time_multiplier"):
            if getattr(self, name) < 1:
                raise OvertimeConfigError(f"{name} must be at least 1")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OvertimeRules:
        """Build rules from a plain mapping (API payloads, CLI input)."""

        def optional(key: str) -> Decimal | None:
            value = data.get(key)
            return None if value is None else to_decimal(value)

        return cls(
            weekly_threshold_hours=to_decimal(data.get("weekly_threshold_hours", 40)),
            weekly_ot_multiplier=to_decimal(data.get("weekly_ot_multiplier", "1.5")),
            daily_threshold_hours=optional("daily_threshold_hours"),
            daily_ot_multiplier=to_decimal(data.get("daily_ot_multiplier", "1.5")),
            double_time_threshold_hours=optional("double_time_threshold_hours"),
            double_time_multiplier=to_decimal(data.get("double_time_multiplier", "2.0")),
            exclude_tips_from_ot_rate=bool(data.get("exclude_tips_from_ot_rate", True)),
        )


@dataclass(frozen=True)
class OvertimeAdjustment:
    """Manual reclassification of hours after automatic tiering."""

    employee_id: UUID
    work_date: date
    direction: AdjustmentDirection
    hours: Decimal
    reason: str


@dataclass(frozen=True)
class DailyOvertimeSplit:
    """One day's hours split into tiers."""

    regular_hours: Decimal = ZERO
    daily_overtime_hours: Decimal = ZERO
    double_time_hours: Decimal = ZERO


@dataclass(frozen=True)
class OvertimeHours:
    """Hour buckets after tiering."""

    regular_hours: Decimal = ZERO
    daily_overtime_hours: Decimal = ZERO
    double_time_hours: Decimal = ZERO
    weekly_overtime_hours: Decimal = ZERO

    @property
    def overtime_hours(self) -> Decimal:
        """All hours paid at an overtime multiplier below double time."""
        return self.daily_overtime_hours + self.weekly_overtime_hours

    @property
    def total_hours(self) -> Decimal:
        return (
            self.regular_hours
            + self.daily_overtime_hours
            + self.double_time_hours
            + self.weekly_overtime_hours
        )

    def __add__(self, other: OvertimeHours) -> OvertimeHours:
        return OvertimeHours(
            regular_hours=self.regular_hours + other.regular_hours,
            daily_overtime_hours=self.daily_overtime_hours + other.daily_overtime_hours,
            double_time_hours=self.double_time_hours + other.double_time_hours,
            weekly_overtime_hours=self.weekly_overtime_hours + other.weekly_overtime_hours,
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "regular_hours": str(self.regular_hours),
            "daily_overtime_hours": str(self.daily_overtime_hours),
            "double_time_hours": str(self.double_time_hours),
            "weekly_overtime_hours": str(self.weekly_overtime_hours),
        }


@dataclass(frozen=True)
class AppliedAdjustment:
    """An adjustment together with the hours actually moved."""

    adjustment: OvertimeAdjustment
    applied_hours: Decimal

    @property
    def was_clamped(self) -> bool:
        return self.applied_hours < self.adjustment.hours


@dataclass(frozen=True)
class OvertimePay:
    """Pay per tier in integer cents."""

    regular_pay_cents: int = 0
    daily_overtime_pay_cents: int = 0
    double_time_pay_cents: int = 0
    weekly_overtime_pay_cents: int = 0
    overtime_base_rate_cents: int = 0

    @property
    def overtime_pay_cents(self) -> int:
        return (
            self.daily_overtime_pay_cents
            + self.double_time_pay_cents
            + self.weekly_overtime_pay_cents
        )

    @property
    def total_pay_cents(self) -> int:
        return self.regular_pay_cents + self.overtime_pay_cents

    def __add__(self, other: OvertimePay) -> OvertimePay:
        return OvertimePay(
            regular_pay_cents=self.regular_pay_cents + other.regular_pay_cents,
            daily_overtime_pay_cents=self.daily_overtime_pay_cents
            + other.daily_overtime_pay_cents,
            double_time_pay_cents=self.double_time_pay_cents + other.double_time_pay_cents,
            weekly_overtime_pay_cents=self.weekly_overtime_pay_cents
            + other.weekly_overtime_pay_cents,
            overtime_base_rate_cents=max(
                self.overtime_base_rate_cents, other.overtime_base_rate_cents
            ),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "regular_pay_cents": self.regular_pay_cents,
            "daily_overtime_pay_cents": self.daily_overtime_pay_cents,
            "double_time_pay_cents": self.double_time_pay_cents,
            "weekly_overtime_pay_cents": self.weekly_overtime_pay_cents,
            "overtime_base_rate_cents": self.overtime_base_rate_cents,
            "total_pay_cents": self.total_pay_cents,
        }


@dataclass
class EmployeeOvertimeResult:
    """Tiered hours and pay for one employee over one week."""

    employee_id: UUID
    hours: OvertimeHours
    pay: OvertimePay
    is_exempt: bool = False
    applied_adjustments: list[AppliedAdjustment] = field(default_factory=list)
