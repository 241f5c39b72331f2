"""Compliance evaluation of schedules against enabled rules."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from labor_engine.calculators.rounding import ZERO, round_hours
from labor_engine.calculators.time_accumulator import ShiftInvariantError, TimeAccumulator
from labor_engine.calculators.types import Employee, Shift
from labor_engine.compliance.rules import (
    CONFIG_TYPES,
    ComplianceRule,
    MinorRestrictionsConfig,
    OvertimeRuleConfig,
    RestPeriodConfig,
    RuleType,
    ShiftLengthConfig,
    parse_hhmm,
)
from labor_engine.compliance.violations import (
    ComplianceViolation,
    ReconcileResult,
    Severity,
    ViolationFinding,
    finding_fingerprint,
    reconcile_violations,
)
from labor_engine.config import Settings, get_settings

logger = logging.getLogger(__name__)


class EvaluationInvariantError(RuntimeError):
    """Raised when evaluation meets input it must not guess about."""

    def __init__(self, message: str, rule_type: str | None = None, shift_id: UUID | None = None):
        self.rule_type = rule_type
        self.shift_id = shift_id
        super().__init__(message)


def _hours_between(start: datetime, end: datetime) -> Decimal:
    return round_hours(Decimal(int((end - start).total_seconds())) / Decimal(3600))


def _num(value: Decimal) -> float:
    return float(value)


def overtime_severity(excess: Decimal, daily: bool) -> Severity:
    """Severity by magnitude of excess hours over the threshold."""
    warning_limit, error_limit = (Decimal("1"), Decimal("2")) if daily else (Decimal("2"), Decimal("4"))
    if excess <= warning_limit:
        return Severity.WARNING
    if excess <= error_limit:
        return Severity.ERROR
    return Severity.CRITICAL


class ComplianceEvaluator:
    """Evaluates enabled rules against employees and their shifts.

    Each rule is evaluated independently and produces zero or more findings.
    A finding's fingerprint identifies the exact occurrence (employee, rule,
    check and the shifts/dates involved), so an unchanged schedule yields the
    same fingerprints on every run and a changed one yields new ones.

    Cancelled shifts and shifts for employees not on the roster are ignored.
    A shift ending before it starts, or a rule whose config does not match its
    type, is an invariant error and aborts the run.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.closing_shift_end: time = parse_hhmm(self.settings.closing_shift_end)
        self.opening_shift_start: time = parse_hhmm(self.settings.opening_shift_start)

    def evaluate(
        self,
        rules: Iterable[ComplianceRule],
        employees: Iterable[Employee],
        shifts: Iterable[Shift],
    ) -> list[ViolationFinding]:
        """Run every enabled rule and return the findings."""
        roster = {e.employee_id: e for e in employees}
        by_employee = self._group_shifts(roster, shifts)

        findings: list[ViolationFinding] = []
        enabled = [r for r in rules if r.enabled]
        for rule in enabled:
            findings.extend(self.evaluate_rule(rule, roster, by_employee))

        logger.info(
            "Compliance evaluation: %d rules, %d employees, %d findings",
            len(enabled),
            len(by_employee),
            len(findings),
        )
        return findings

    def evaluate_and_reconcile(
        self,
        rules: Iterable[ComplianceRule],
        employees: Iterable[Employee],
        shifts: Iterable[Shift],
        existing: Iterable[ComplianceViolation],
        restaurant_id: UUID,
        now: datetime | None = None,
    ) -> ReconcileResult:
        """Evaluate, then merge findings into already-recorded violations."""
        rules = [r for r in rules if r.enabled]
        findings = self.evaluate(rules, employees, shifts)
        result = reconcile_violations(
            existing,
            findings,
            restaurant_id,
            now=now,
            rule_types={r.rule_type for r in rules},
        )
        logger.info(
            "Reconciled violations for restaurant %s: %d created, %d resolved, %d unchanged",
            restaurant_id,
            len(result.created),
            len(result.resolved),
            len(result.unchanged),
        )
        return result

    def evaluate_rule(
        self,
        rule: ComplianceRule,
        roster: dict[UUID, Employee],
        shifts_by_employee: dict[UUID, list[Shift]],
    ) -> list[ViolationFinding]:
        """Evaluate a single rule over pre-grouped, sorted shifts."""
        expected = CONFIG_TYPES.get(rule.rule_type)
        if expected is None or not isinstance(rule.config, expected):
            raise EvaluationInvariantError(
                f"Rule {rule.rule_id} has a {type(rule.config).__name__} config",
                rule_type=str(rule.rule_type),
            )

        findings: list[ViolationFinding] = []
        for employee_id, shifts in shifts_by_employee.items():
            employee = roster[employee_id]
            if rule.rule_type == RuleType.MINOR_RESTRICTIONS:
                findings.extend(self._check_minor(rule.config, employee, shifts))
            elif rule.rule_type == RuleType.REST_PERIOD:
                findings.extend(self._check_rest(rule.rule_type, rule.config, employee, shifts))
            elif rule.rule_type == RuleType.CLOPENING:
                findings.extend(self._check_rest(rule.rule_type, rule.config, employee, shifts))
            elif rule.rule_type == RuleType.SHIFT_LENGTH:
                findings.extend(self._check_shift_length(rule.config, employee, shifts))
            elif rule.rule_type == RuleType.OVERTIME:
                findings.extend(self._check_overtime(rule.config, employee, shifts))
            else:
                raise EvaluationInvariantError(
                    f"No evaluator for rule type {rule.rule_type}", rule_type=str(rule.rule_type)
                )
        return findings

    def week_start(self, day: date) -> date:
        offset = (day.weekday() - self.settings.week_start_day) % 7
        return day - timedelta(days=offset)

    def _group_shifts(
        self,
        roster: dict[UUID, Employee],
        shifts: Iterable[Shift],
    ) -> dict[UUID, list[Shift]]:
        grouped: dict[UUID, list[Shift]] = {}
        for shift in shifts:
            if shift.is_cancelled:
                continue
            if shift.end_time < shift.start_time:
                raise EvaluationInvariantError(
                    str(ShiftInvariantError(shift)), shift_id=shift.shift_id
                )
            if shift.employee_id not in roster:
                logger.warning(
                    "Ignoring shift %s for unknown employee %s", shift.shift_id, shift.employee_id
                )
                continue
            grouped.setdefault(shift.employee_id, []).append(shift)

        ordered: dict[UUID, list[Shift]] = {}
        for employee_id in sorted(grouped, key=str):
            ordered[employee_id] = sorted(
                grouped[employee_id], key=lambda s: (s.start_time, s.end_time, str(s.shift_id))
            )
        return ordered

    @staticmethod
    def _finding(
        rule_type: RuleType,
        check: str,
        severity: Severity,
        employee: Employee,
        scope: list[Any],
        message: str,
        details: dict[str, Any],
        shift_id: UUID | None = None,
    ) -> ViolationFinding:
        return ViolationFinding(
            rule_type=rule_type,
            check=check,
            severity=severity,
            employee_id=employee.employee_id,
            shift_id=shift_id,
            message=message,
            details={"check": check, **details},
            fingerprint=finding_fingerprint(rule_type, check, employee.employee_id, scope),
        )

    @staticmethod
    def _shift_scope(shift: Shift) -> list[Any]:
        return [shift.shift_id, shift.start_time.isoformat(), shift.end_time.isoformat()]

    @classmethod
    def _total_scope(cls, key: date, shifts: list[Shift]) -> list[Any]:
        """Scope of an hour total: its day or week plus every contributing shift."""
        scope: list[Any] = [key.isoformat()]
        for shift in shifts:
            scope.extend(cls._shift_scope(shift))
            scope.append(shift.break_minutes)
        return scope

    def _group_by_day_and_week(
        self, shifts: list[Shift]
    ) -> tuple[dict[date, list[Shift]], dict[date, list[Shift]]]:
        daily: dict[date, list[Shift]] = {}
        weekly: dict[date, list[Shift]] = {}
        for shift in shifts:
            day = shift.start_time.date()
            daily.setdefault(day, []).append(shift)
            weekly.setdefault(self.week_start(day), []).append(shift)
        return daily, weekly

    @staticmethod
    def _net_hours(shifts: list[Shift]) -> Decimal:
        return sum((TimeAccumulator.hours_from_shift(s) for s in shifts), ZERO)

    # Minor restrictions

    def _check_minor(
        self,
        config: MinorRestrictionsConfig,
        employee: Employee,
        shifts: list[Shift],
    ) -> list[ViolationFinding]:
        rule_type = RuleType.MINOR_RESTRICTIONS
        findings: list[ViolationFinding] = []
        minor_shifts = [s for s in shifts if employee.is_minor_on(s.start_time.date())]
        earliest = config.earliest_start_time.strftime("%H:%M")
        latest = config.latest_end_time.strftime("%H:%M")

        for shift in minor_shifts:
            start = shift.start_time.time()
            if start < config.earliest_start_time:
                findings.append(
                    self._finding(
                        rule_type,
                        "start_too_early",
                        Severity.ERROR,
                        employee,
                        self._shift_scope(shift),
                        f"Minor {employee.name} starts at {start.strftime('%H:%M')}, "
                        f"before the earliest allowed {earliest}",
                        {"measured": start.strftime("%H:%M"), "threshold": earliest},
                        shift_id=shift.shift_id,
                    )
                )
            crosses_midnight = shift.end_time.date() > shift.start_time.date()
            end = shift.end_time.time()
            if crosses_midnight or end > config.latest_end_time:
                findings.append(
                    self._finding(
                        rule_type,
                        "end_too_late",
                        Severity.ERROR,
                        employee,
                        self._shift_scope(shift),
                        f"Minor {employee.name} works until {end.strftime('%H:%M')}"
                        f"{' (next day)' if crosses_midnight else ''}, "
                        f"after the latest allowed {latest}",
                        {
                            "measured": end.strftime("%H:%M"),
                            "threshold": latest,
                            "crosses_midnight": crosses_midnight,
                        },
                        shift_id=shift.shift_id,
                    )
                )

        daily, weekly = self._group_by_day_and_week(minor_shifts)

        for day, day_shifts in sorted(daily.items()):
            hours = self._net_hours(day_shifts)
            if hours > config.max_hours_per_day:
                findings.append(
                    self._finding(
                        rule_type,
                        "daily_hours",
                        Severity.ERROR,
                        employee,
                        self._total_scope(day, day_shifts),
                        f"Minor {employee.name} scheduled {hours} hours on {day}, "
                        f"maximum is {config.max_hours_per_day}",
                        {
                            "date": day.isoformat(),
                            "measured": _num(hours),
                            "threshold": _num(config.max_hours_per_day),
                        },
                    )
                )
        for week, week_shifts in sorted(weekly.items()):
            hours = self._net_hours(week_shifts)
            if hours > config.max_hours_per_week:
                findings.append(
                    self._finding(
                        rule_type,
                        "weekly_hours",
                        Severity.ERROR,
                        employee,
                        self._total_scope(week, week_shifts),
                        f"Minor {employee.name} scheduled {hours} hours in week of {week}, "
                        f"maximum is {config.max_hours_per_week}",
                        {
                            "week_start": week.isoformat(),
                            "measured": _num(hours),
                            "threshold": _num(config.max_hours_per_week),
                        },
                    )
                )
        return findings

    # Rest period / clopening

    def is_closing_shift(self, shift: Shift) -> bool:
        if shift.end_time.date() > shift.start_time.date():
            return True
        return shift.end_time.time() >= self.closing_shift_end

    def is_opening_shift(self, shift: Shift) -> bool:
        return shift.start_time.time() <= self.opening_shift_start

    def _is_clopening_pair(self, first: Shift, second: Shift) -> bool:
        day_gap = (second.start_time.date() - first.start_time.date()).days
        return (
            day_gap in (0, 1)
            and self.is_closing_shift(first)
            and self.is_opening_shift(second)
        )

    def _check_rest(
        self,
        rule_type: RuleType,
        config: RestPeriodConfig,
        employee: Employee,
        shifts: list[Shift],
    ) -> list[ViolationFinding]:
        findings: list[ViolationFinding] = []
        for first, second in zip(shifts, shifts[1:]):
            if rule_type == RuleType.CLOPENING and not self._is_clopening_pair(first, second):
                continue
            gap = _hours_between(first.end_time, second.start_time)
            if gap >= config.min_hours_between_shifts:
                continue
            label = "Clopening" if rule_type == RuleType.CLOPENING else "Insufficient rest"
            findings.append(
                self._finding(
                    rule_type,
                    rule_type.value,
                    Severity.ERROR,
                    employee,
                    self._shift_scope(first) + self._shift_scope(second),
                    f"{label}: {employee.name} has {gap} hours between shifts, "
                    f"{config.min_hours_between_shifts} required",
                    {
                        "first_shift_id": str(first.shift_id),
                        "second_shift_id": str(second.shift_id),
                        "previous_shift_end": first.end_time.isoformat(),
                        "measured": _num(gap),
                        "threshold": _num(config.min_hours_between_shifts),
                        "allow_override": config.allow_override,
                    },
                    shift_id=second.shift_id,
                )
            )
        return findings

    # Shift length

    def _check_shift_length(
        self,
        config: ShiftLengthConfig,
        employee: Employee,
        shifts: list[Shift],
    ) -> list[ViolationFinding]:
        rule_type = RuleType.SHIFT_LENGTH
        findings: list[ViolationFinding] = []

        for shift in shifts:
            duration = _hours_between(shift.start_time, shift.end_time)
            if duration > config.max_hours:
                check, threshold, word = "too_long", config.max_hours, "exceeds maximum"
            elif duration < config.min_hours:
                check, threshold, word = "too_short", config.min_hours, "is below minimum"
            else:
                continue
            findings.append(
                self._finding(
                    rule_type,
                    check,
                    Severity.WARNING,
                    employee,
                    self._shift_scope(shift),
                    f"Shift length {duration} hours {word} of {threshold} hours",
                    {"measured": _num(duration), "threshold": _num(threshold)},
                    shift_id=shift.shift_id,
                )
            )

        if config.max_consecutive_days is not None:
            for streak in self._streaks({s.start_time.date() for s in shifts}):
                if len(streak) <= config.max_consecutive_days:
                    continue
                findings.append(
                    self._finding(
                        rule_type,
                        "consecutive_days",
                        Severity.WARNING,
                        employee,
                        [day.isoformat() for day in streak],
                        f"{employee.name} works {len(streak)} consecutive days "
                        f"({streak[0]} to {streak[-1]}), maximum is {config.max_consecutive_days}",
                        {
                            "streak_start": streak[0].isoformat(),
                            "streak_end": streak[-1].isoformat(),
                            "measured": len(streak),
                            "threshold": config.max_consecutive_days,
                        },
                    )
                )
        return findings

    @staticmethod
    def _streaks(days: set[date]) -> list[list[date]]:
        streaks: list[list[date]] = []
        for day in sorted(days):
            if streaks and streaks[-1][-1] + timedelta(days=1) == day:
                streaks[-1].append(day)
            else:
                streaks.append([day])
        return streaks

    # Overtime

    def _check_overtime(
        self,
        config: OvertimeRuleConfig,
        employee: Employee,
        shifts: list[Shift],
    ) -> list[ViolationFinding]:
        rule_type = RuleType.OVERTIME
        if employee.is_exempt:
            return []

        findings: list[ViolationFinding] = []
        daily, weekly = self._group_by_day_and_week(shifts)

        def severity(excess: Decimal, is_daily: bool) -> Severity:
            return Severity.WARNING if config.warn_only else overtime_severity(excess, is_daily)

        for week, week_shifts in sorted(weekly.items()):
            hours = self._net_hours(week_shifts)
            excess = hours - config.weekly_threshold
            if excess <= 0:
                continue
            findings.append(
                self._finding(
                    rule_type,
                    "weekly_overtime",
                    severity(excess, False),
                    employee,
                    self._total_scope(week, week_shifts),
                    f"{employee.name} is scheduled {hours} hours in week of {week}, "
                    f"{excess} over the {config.weekly_threshold} hour threshold",
                    {
                        "week_start": week.isoformat(),
                        "measured": _num(hours),
                        "threshold": _num(config.weekly_threshold),
                        "excess": _num(excess),
                        "warn_only": config.warn_only,
                    },
                )
            )

        if config.daily_threshold is not None:
            for day, day_shifts in sorted(daily.items()):
                hours = self._net_hours(day_shifts)
                excess = hours - config.daily_threshold
                if excess <= 0:
                    continue
                findings.append(
                    self._finding(
                        rule_type,
                        "daily_overtime",
                        severity(excess, True),
                        employee,
                        self._total_scope(day, day_shifts),
                        f"{employee.name} is scheduled {hours} hours on {day}, "
                        f"{excess} over the {config.daily_threshold} hour daily threshold",
                        {
                            "date": day.isoformat(),
                            "measured": _num(hours),
                            "threshold": _num(config.daily_threshold),
                            "excess": _num(excess),
                            "warn_only": config.warn_only,
                        },
                    )
                )
        return findings
