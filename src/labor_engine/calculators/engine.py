"""Payroll period engine - batch orchestrator over all employees."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from labor_engine.calculators.overtime import OvertimeEngine
from labor_engine.calculators.rounding import ZERO, reconcile_to_total
from labor_engine.calculators.time_accumulator import PunchAnomaly, TimeAccumulator
from labor_engine.calculators.types import (
    AppliedAdjustment,
    Employee,
    OvertimeAdjustment,
    OvertimeHours,
    OvertimePay,
    OvertimeRules,
    TimePunch,
)
from labor_engine.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class WeekResult:
    """Tiered hours and pay for one workweek."""

    week_start: date
    hours: OvertimeHours
    pay: OvertimePay
    tips_cents: int = 0
    applied_adjustments: list[AppliedAdjustment] = field(default_factory=list)


@dataclass
class EmployeePeriodResult:
    """Result of calculating pay for one employee over a period."""

    employee_id: UUID
    calculation_id: UUID
    hours: OvertimeHours
    pay: OvertimePay
    weeks: list[WeekResult]
    daily_net_hours: dict[date, Decimal]
    open_punches: list[TimePunch]
    anomalies: list[PunchAnomaly]
    errors: list[str]
    inputs_fingerprint: str
    is_exempt: bool = False

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    @property
    def has_open_punches(self) -> bool:
        return len(self.open_punches) > 0


@dataclass
class PayPeriodSummary:
    """Result of calculating an entire pay period."""

    period_start: date
    period_end: date
    results: dict[UUID, EmployeePeriodResult]  # employee_id -> result, roster order
    total_pay_cents: int = 0
    total_hours: Decimal = ZERO
    error_count: int = 0

    @property
    def employees_with_open_punches(self) -> list[UUID]:
        return [r.employee_id for r in self.results.values() if r.has_open_punches]


class PayPeriodEngine:
    """Batch payroll calculation for a pay period.

    Pipeline (stable order per employee):
    1) Accumulate the employee's punches into per-day net hours
    2) Group days into workweeks
    3) Tier each week and apply that week's adjustments
    4) Price each week; period pay is the sum of weekly pay

    Employees share no mutable state, so each runs as an independent task on
    a bounded worker pool. Results are joined before the summary is built.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def calculate_period(
        self,
        employees: Iterable[Employee],
        punches: Iterable[TimePunch],
        rules: OvertimeRules,
        period_start: date,
        period_end: date,
        adjustments: Iterable[OvertimeAdjustment] = (),
        tips_cents: Mapping[UUID, int] | None = None,
    ) -> PayPeriodSummary:
        """Calculate pay for every employee on the roster."""
        if period_end < period_start:
            raise ValueError("period_end must be on or after period_start")

        roster = list(employees)
        tips_cents = tips_cents or {}

        punches_by_employee: dict[UUID, list[TimePunch]] = {e.employee_id: [] for e in roster}
        for punch in punches:
            if punch.employee_id in punches_by_employee:
                punches_by_employee[punch.employee_id].append(punch)

        adjustments_by_employee: dict[UUID, list[OvertimeAdjustment]] = {}
        for adj in adjustments:
            adjustments_by_employee.setdefault(adj.employee_id, []).append(adj)

        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
            futures = {
                employee.employee_id: pool.submit(
                    self._calculate_employee_safe,
                    employee,
                    punches_by_employee[employee.employee_id],
                    rules,
                    period_start,
                    period_end,
                    adjustments_by_employee.get(employee.employee_id, []),
                    tips_cents.get(employee.employee_id, 0),
                )
                for employee in roster
            }
            results = {employee_id: future.result() for employee_id, future in futures.items()}

        summary = PayPeriodSummary(
            period_start=period_start,
            period_end=period_end,
            results=results,
        )
        for result in results.values():
            if result.success:
                summary.total_pay_cents += result.pay.total_pay_cents
                summary.total_hours += result.hours.total_hours
            else:
                summary.error_count += 1

        logger.info(
            "Calculated pay period %s..%s: %d employees, %d errors, %d with open punches",
            period_start,
            period_end,
            len(results),
            summary.error_count,
            len(summary.employees_with_open_punches),
        )
        return summary

    def _calculate_employee_safe(
        self,
        employee: Employee,
        punches: list[TimePunch],
        rules: OvertimeRules,
        period_start: date,
        period_end: date,
        adjustments: list[OvertimeAdjustment],
        tips_cents: int,
    ) -> EmployeePeriodResult:
        """Calculate one employee; unexpected errors become an error result."""
        try:
            return self.calculate_employee(
                employee, punches, rules, period_start, period_end, adjustments, tips_cents
            )
        except Exception as e:
            logger.exception("Pay calculation failed for employee %s", employee.employee_id)
            return EmployeePeriodResult(
                employee_id=employee.employee_id,
                calculation_id=self._generate_calculation_id(
                    employee.employee_id, period_start, period_end, ""
                ),
                hours=OvertimeHours(),
                pay=OvertimePay(),
                weeks=[],
                daily_net_hours={},
                open_punches=[],
                anomalies=[],
                errors=[f"Unexpected error: {e}"],
                inputs_fingerprint="",
                is_exempt=employee.is_exempt,
            )

    def calculate_employee(
        self,
        employee: Employee,
        punches: list[TimePunch],
        rules: OvertimeRules,
        period_start: date,
        period_end: date,
        adjustments: list[OvertimeAdjustment] | None = None,
        tips_cents: int = 0,
    ) -> EmployeePeriodResult:
        """Calculate pay for a single employee over the period."""
        if tips_cents < 0:
            raise ValueError("tips_cents cannot be negative")

        accumulated = TimeAccumulator.accumulate(punches)
        daily = {
            day: hours
            for day, hours in accumulated.net_hours_by_day.items()
            if period_start <= day <= period_end
        }

        weeks: dict[date, dict[date, Decimal]] = {}
        for day, hours in daily.items():
            weeks.setdefault(self.week_start(day), {})[day] = hours

        tips_by_week = self.split_tips_by_week(weeks, tips_cents)
        week_results: list[WeekResult] = []
        total_hours = OvertimeHours()
        total_pay = OvertimePay()

        for week_start, week_days in sorted(weeks.items()):
            week_end = week_start + timedelta(days=6)
            week_adjustments = [
                a for a in adjustments or [] if week_start <= a.work_date <= week_end
            ]
            week_tips = tips_by_week[week_start]
            result = OvertimeEngine.calculate_employee_overtime(
                employee,
                week_days,
                rules,
                adjustments=week_adjustments,
                total_tips_cents=week_tips,
            )
            week_results.append(
                WeekResult(
                    week_start=week_start,
                    hours=result.hours,
                    pay=result.pay,
                    tips_cents=week_tips,
                    applied_adjustments=result.applied_adjustments,
                )
            )
            total_hours = total_hours + result.hours
            total_pay = total_pay + result.pay

        inputs_fingerprint = self._compute_inputs_fingerprint(
            employee, daily, adjustments or [], tips_cents, rules
        )

        return EmployeePeriodResult(
            employee_id=employee.employee_id,
            calculation_id=self._generate_calculation_id(
                employee.employee_id, period_start, period_end, inputs_fingerprint
            ),
            hours=total_hours,
            pay=total_pay,
            weeks=week_results,
            daily_net_hours=daily,
            open_punches=accumulated.open_punches,
            anomalies=accumulated.anomalies,
            errors=[],
            inputs_fingerprint=inputs_fingerprint,
            is_exempt=employee.is_exempt,
        )

    @staticmethod
    def split_tips_by_week(
        weeks: Mapping[date, Mapping[date, Decimal]],
        tips_cents: int,
    ) -> dict[date, int]:
        """Spread period tips over workweeks by hours; the weeks sum to ``tips_cents``."""
        ordered = sorted(weeks)
        week_hours = [sum(weeks[w].values(), ZERO) for w in ordered]
        period_hours = sum(week_hours, ZERO)
        if period_hours <= 0:
            return {w: 0 for w in ordered}
        exact = [Decimal(tips_cents) * hours / period_hours for hours in week_hours]
        return dict(zip(ordered, reconcile_to_total(exact, tips_cents)))

    def week_start(self, day: date) -> date:
        """First day of the workweek containing ``day``."""
        offset = (day.weekday() - self.settings.week_start_day) % 7
        return day - timedelta(days=offset)

    def _generate_calculation_id(
        self,
        employee_id: UUID,
        period_start: date,
        period_end: date,
        inputs_fingerprint: str,
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "employee_id": str(employee_id),
            "period_start": str(period_start),
            "period_end": str(period_end),
            "engine_version": self.settings.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])

    def _compute_inputs_fingerprint(
        self,
        employee: Employee,
        daily: Mapping[date, Decimal],
        adjustments: list[OvertimeAdjustment],
        tips_cents: int,
        rules: OvertimeRules,
    ) -> str:
        """Compute fingerprint of all inputs used in calculation."""
        data: dict[str, Any] = {
            "hourly_rate_cents": employee.hourly_rate_cents,
            "is_exempt": employee.is_exempt,
            "daily": {str(d): str(h) for d, h in daily.items()},
            "adjustments": [
                [str(a.work_date), a.direction.value, str(a.hours)] for a in adjustments
            ],
            "tips_cents": tips_cents,
            "rules": {
                "weekly_threshold_hours": str(rules.weekly_threshold_hours),
                "weekly_ot_multiplier": str(rules.weekly_ot_multiplier),
                "daily_threshold_hours": str(rules.daily_threshold_hours),
                "daily_ot_multiplier": str(rules.daily_ot_multiplier),
                "double_time_threshold_hours": str(rules.double_time_threshold_hours),
                "double_time_multiplier": str(rules.double_time_multiplier),
                "exclude_tips_from_ot_rate": rules.exclude_tips_from_ot_rate,
            },
        }
        json_str = json.dumps(data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]
