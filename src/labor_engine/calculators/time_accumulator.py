"""Time punch accumulation into per-day worked hours."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from labor_engine.calculators.rounding import minutes_to_hours
from labor_engine.calculators.types import PUNCH_ORDER, DailyHours, PunchType, Shift, TimePunch


class ShiftInvariantError(ValueError):
    """Raised when a shift ends before it starts."""

    def __init__(self, shift: Shift):
        self.shift_id = shift.shift_id
        super().__init__(
            f"Shift {shift.shift_id} ends ({shift.end_time}) before it starts ({shift.start_time})"
        )


@dataclass(frozen=True)
class PunchAnomaly:
    """A punch that could not be paired, reported instead of guessed."""

    code: str
    punch: TimePunch
    message: str

    def to_dict(self) -> dict[str, str]:
        return {
            "code": self.code,
            "punch_type": self.punch.punch_type.value,
            "punch_time": self.punch.punch_time.isoformat(),
            "message": self.message,
        }


@dataclass
class AccumulatedTime:
    """Per-day totals for one employee over a period."""

    employee_id: UUID | None
    days: dict[date, DailyHours] = field(default_factory=dict)
    open_punches: list[TimePunch] = field(default_factory=list)
    anomalies: list[PunchAnomaly] = field(default_factory=list)

    @property
    def has_open_punches(self) -> bool:
        return len(self.open_punches) > 0

    @property
    def net_hours_by_day(self) -> dict[date, Decimal]:
        return {day: hours.net_hours for day, hours in sorted(self.days.items())}

    @property
    def total_net_minutes(self) -> int:
        return sum(d.net_minutes for d in self.days.values())


def _minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


class TimeAccumulator:
    """Converts punches into per-day worked minutes.

    Walk order: punches sorted by (timestamp, kind); at equal timestamps a
    clock-out closes the previous session before the next clock-in opens one.

    Pairing:
    - clock_in opens a session; a second clock_in while open drops the first
    - break_start/break_end inside a session accumulate session break minutes
    - clock_out closes the session; its worked and break minutes are added
      to the day the session started on
    - anything unmatched contributes zero and is reported as an anomaly
    """

    @staticmethod
    def sort_punches(punches: Iterable[TimePunch]) -> list[TimePunch]:
        return sorted(punches, key=lambda p: (p.punch_time, PUNCH_ORDER[p.punch_type]))

    @classmethod
    def accumulate(cls, punches: Iterable[TimePunch]) -> AccumulatedTime:
        """Accumulate punches for a single employee."""
        ordered = cls.sort_punches(punches)
        employee_ids = {p.employee_id for p in ordered}
        if len(employee_ids) > 1:
            raise ValueError("accumulate() expects punches for a single employee")

        result = AccumulatedTime(employee_id=next(iter(employee_ids), None))
        open_in: TimePunch | None = None
        open_break: TimePunch | None = None
        session_break_minutes = 0

        def report(code: str, punch: TimePunch, message: str) -> None:
            result.anomalies.append(PunchAnomaly(code=code, punch=punch, message=message))

        for punch in ordered:
            kind = punch.punch_type

            if kind == PunchType.CLOCK_IN:
                if open_in is not None:
                    report(
                        "clock_in_without_clock_out",
                        open_in,
                        f"Clock-in at {open_in.punch_time} was never closed",
                    )
                if open_break is not None:
                    report(
                        "open_break_at_clock_out",
                        open_break,
                        f"Break started at {open_break.punch_time} was never ended",
                    )
                open_in = punch
                open_break = None
                session_break_minutes = 0

            elif kind == PunchType.CLOCK_OUT:
                if open_in is None:
                    report(
                        "clock_out_without_clock_in",
                        punch,
                        f"Clock-out at {punch.punch_time} has no matching clock-in",
                    )
                    continue
                if open_break is not None:
                    report(
                        "open_break_at_clock_out",
                        open_break,
                        f"Break started at {open_break.punch_time} was never ended",
                    )
                day = cls._day(result, open_in.punch_time.date())
                day.total_minutes += _minutes_between(open_in.punch_time, punch.punch_time)
                day.break_minutes += session_break_minutes
                open_in = None
                open_break = None
                session_break_minutes = 0

            elif kind == PunchType.BREAK_START:
                if open_in is None:
                    report(
                        "break_outside_session",
                        punch,
                        f"Break start at {punch.punch_time} is outside a clocked-in session",
                    )
                    continue
                if open_break is not None:
                    report(
                        "break_start_without_break_end",
                        open_break,
                        f"Break started at {open_break.punch_time} was started again",
                    )
                open_break = punch

            elif kind == PunchType.BREAK_END:
                if open_break is None:
                    report(
                        "break_end_without_break_start",
                        punch,
                        f"Break end at {punch.punch_time} has no matching break start",
                    )
                    continue
                session_break_minutes += _minutes_between(open_break.punch_time, punch.punch_time)
                open_break = None

        # Open sessions contribute nothing; surface them instead
        if open_break is not None:
            result.open_punches.append(open_break)
            report("open_break", open_break, f"Break started at {open_break.punch_time} is still open")
        if open_in is not None:
            result.open_punches.append(open_in)
            report("open_clock_in", open_in, f"Clock-in at {open_in.punch_time} is still open")

        result.days = dict(sorted(result.days.items()))
        return result

    @classmethod
    def accumulate_by_employee(
        cls,
        punches: Iterable[TimePunch],
    ) -> dict[UUID, AccumulatedTime]:
        """Group punches by employee and accumulate each group."""
        grouped: dict[UUID, list[TimePunch]] = {}
        for punch in punches:
            grouped.setdefault(punch.employee_id, []).append(punch)
        return {employee_id: cls.accumulate(group) for employee_id, group in grouped.items()}

    @staticmethod
    def shift_minutes(shift: Shift) -> int:
        """Net working minutes for a shift (duration minus break, never negative)."""
        if shift.end_time < shift.start_time:
            raise ShiftInvariantError(shift)
        return max(_minutes_between(shift.start_time, shift.end_time) - shift.break_minutes, 0)

    @classmethod
    def hours_from_shift(cls, shift: Shift) -> Decimal:
        return minutes_to_hours(cls.shift_minutes(shift))

    @classmethod
    def accumulate_shifts(cls, shifts: Iterable[Shift]) -> dict[date, DailyHours]:
        """Per-day totals from scheduled shifts, attributed to the start date."""
        days: dict[date, DailyHours] = {}
        for shift in shifts:
            if shift.is_cancelled:
                continue
            if shift.end_time < shift.start_time:
                raise ShiftInvariantError(shift)
            day = cls._day_in(days, shift.start_time.date())
            day.total_minutes += _minutes_between(shift.start_time, shift.end_time)
            day.break_minutes += shift.break_minutes
        return dict(sorted(days.items()))

    @classmethod
    def _day(cls, result: AccumulatedTime, work_date: date) -> DailyHours:
        return cls._day_in(result.days, work_date)

    @staticmethod
    def _day_in(days: dict[date, DailyHours], work_date: date) -> DailyHours:
        day = days.get(work_date)
        if day is None:
            day = DailyHours(work_date=work_date)
            days[work_date] = day
        return day
