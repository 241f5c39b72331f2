"""Overtime tiering and pay calculation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal

from labor_engine.calculators.rounding import ZERO, round_cents, round_hours
from labor_engine.calculators.types import (
    AdjustmentDirection,
    AppliedAdjustment,
    DailyOvertimeSplit,
    Employee,
    EmployeeOvertimeResult,
    OvertimeAdjustment,
    OvertimeHours,
    OvertimePay,
    OvertimeRules,
)


class OvertimeEngine:
    """Tiers worked hours and converts them to pay.

    Pipeline for a non-exempt employee and one workweek:
    1) Split each day into regular / daily OT / double time
    2) Sum the days; regular hours above the weekly threshold become weekly OT
    3) Apply manual adjustments between regular and weekly OT
    4) Price each tier independently in integer cents

    Daily splitting happens before the weekly check, so daily OT and weekly
    OT never count the same hour twice.
    """

    @staticmethod
    def calculate_daily_overtime(
        hours_worked: Decimal,
        daily_threshold: Decimal | None,
        double_time_threshold: Decimal | None = None,
    ) -> DailyOvertimeSplit:
        """Split a single day's hours into tiers."""
        if hours_worked < 0:
            raise ValueError(f"Negative hours worked: {hours_worked}")

        if daily_threshold is None:
            return DailyOvertimeSplit(regular_hours=hours_worked)

        if double_time_threshold is not None and double_time_threshold < daily_threshold:
            raise ValueError("double_time_threshold must be >= daily_threshold")

        regular = min(hours_worked, daily_threshold)
        excess = hours_worked - regular
        if excess <= 0:
            return DailyOvertimeSplit(regular_hours=regular)

        if double_time_threshold is None:
            return DailyOvertimeSplit(regular_hours=regular, daily_overtime_hours=excess)

        daily_ot = min(excess, double_time_threshold - daily_threshold)
        double_time = excess - daily_ot
        return DailyOvertimeSplit(
            regular_hours=regular,
            daily_overtime_hours=daily_ot,
            double_time_hours=double_time,
        )

    @classmethod
    def calculate_weekly_overtime(
        cls,
        daily_hours: Mapping[date, Decimal],
        rules: OvertimeRules,
    ) -> OvertimeHours:
        """Tier one workweek of per-day hours."""
        regular = ZERO
        daily_ot = ZERO
        double_time = ZERO

        for work_date in sorted(daily_hours):
            split = cls.calculate_daily_overtime(
                daily_hours[work_date],
                rules.daily_threshold_hours,
                rules.double_time_threshold_hours,
            )
            regular += split.regular_hours
            daily_ot += split.daily_overtime_hours
            double_time += split.double_time_hours

        weekly_ot = ZERO
        if regular > rules.weekly_threshold_hours:
            weekly_ot = regular - rules.weekly_threshold_hours
            regular = rules.weekly_threshold_hours

        return OvertimeHours(
            regular_hours=round_hours(regular),
            daily_overtime_hours=round_hours(daily_ot),
            double_time_hours=round_hours(double_time),
            weekly_overtime_hours=round_hours(weekly_ot),
        )

    @staticmethod
    def apply_overtime_adjustments(
        base: OvertimeHours,
        adjustments: Iterable[OvertimeAdjustment],
    ) -> tuple[OvertimeHours, list[AppliedAdjustment]]:
        """Move hours between regular and weekly OT, in order, clamped at zero.

        A request larger than the source bucket moves only what is there.
        Daily OT and double time are never touched.
        """
        regular = base.regular_hours
        weekly_ot = base.weekly_overtime_hours
        applied: list[AppliedAdjustment] = []

        for adjustment in adjustments:
            if adjustment.hours <= 0:
                raise ValueError(
                    f"Adjustment hours must be positive, got {adjustment.hours}"
                )

            if adjustment.direction == AdjustmentDirection.REGULAR_TO_OVERTIME:
                moved = min(adjustment.hours, regular)
                regular -= moved
                weekly_ot += moved
            elif adjustment.direction == AdjustmentDirection.OVERTIME_TO_REGULAR:
                moved = min(adjustment.hours, weekly_ot)
                weekly_ot -= moved
                regular += moved
            else:
                raise ValueError(f"Unknown adjustment direction: {adjustment.direction}")

            applied.append(AppliedAdjustment(adjustment=adjustment, applied_hours=moved))

        adjusted = OvertimeHours(
            regular_hours=round_hours(regular),
            daily_overtime_hours=base.daily_overtime_hours,
            double_time_hours=base.double_time_hours,
            weekly_overtime_hours=round_hours(weekly_ot),
        )
        return adjusted, applied

    @staticmethod
    def overtime_base_rate(
        hours: OvertimeHours,
        hourly_rate_cents: int,
        total_tips_cents: int,
        rules: OvertimeRules,
    ) -> int:
        """Rate used for overtime tiers, blended with tips when configured."""
        if rules.exclude_tips_from_ot_rate:
            return hourly_rate_cents
        total_hours = hours.total_hours
        if total_hours <= 0:
            return hourly_rate_cents
        return hourly_rate_cents + round_cents(Decimal(total_tips_cents) / total_hours)

    @classmethod
    def calculate_overtime_pay(
        cls,
        hours: OvertimeHours,
        hourly_rate_cents: int,
        total_tips_cents: int,
        rules: OvertimeRules,
    ) -> OvertimePay:
        """Price each tier; every multiplication is rounded on its own."""
        if hourly_rate_cents < 0:
            raise ValueError("hourly_rate_cents cannot be negative")

        rate = Decimal(hourly_rate_cents)
        ot_rate = Decimal(cls.overtime_base_rate(hours, hourly_rate_cents, total_tips_cents, rules))

        return OvertimePay(
            regular_pay_cents=round_cents(hours.regular_hours * rate),
            daily_overtime_pay_cents=round_cents(
                hours.daily_overtime_hours * ot_rate * rules.daily_ot_multiplier
            ),
            double_time_pay_cents=round_cents(
                hours.double_time_hours * ot_rate * rules.double_time_multiplier
            ),
            weekly_overtime_pay_cents=round_cents(
                hours.weekly_overtime_hours * ot_rate * rules.weekly_ot_multiplier
            ),
            overtime_base_rate_cents=int(ot_rate),
        )

    @classmethod
    def calculate_employee_overtime(
        cls,
        employee: Employee,
        daily_hours: Mapping[date, Decimal],
        rules: OvertimeRules,
        adjustments: Iterable[OvertimeAdjustment] = (),
        total_tips_cents: int = 0,
    ) -> EmployeeOvertimeResult:
        """Tier and price one employee's workweek.

        Exempt employees skip tiering: every hour is regular and no OT is paid.
        """
        if employee.is_exempt:
            total = round_hours(sum(daily_hours.values(), ZERO))
            hours = OvertimeHours(regular_hours=total)
            return EmployeeOvertimeResult(
                employee_id=employee.employee_id,
                hours=hours,
                pay=OvertimePay(
                    regular_pay_cents=round_cents(total * Decimal(employee.hourly_rate_cents)),
                    overtime_base_rate_cents=employee.hourly_rate_cents,
                ),
                is_exempt=True,
            )

        base = cls.calculate_weekly_overtime(daily_hours, rules)
        own_adjustments = [a for a in adjustments if a.employee_id == employee.employee_id]
        hours, applied = cls.apply_overtime_adjustments(base, own_adjustments)
        pay = cls.calculate_overtime_pay(
            hours, employee.hourly_rate_cents, total_tips_cents, rules
        )
        return EmployeeOvertimeResult(
            employee_id=employee.employee_id,
            hours=hours,
            pay=pay,
            applied_adjustments=applied,
        )
