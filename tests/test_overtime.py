"""Tests for overtime tiering and pay."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from labor_engine.calculators.overtime import OvertimeEngine
from labor_engine.calculators.types import (
    AdjustmentDirection,
    OvertimeAdjustment,
    OvertimeConfigError,
    OvertimeHours,
    OvertimeRules,
)

MONDAY = date(2024, 3, 4)


def week_of(*hours: str) -> dict[date, Decimal]:
    return {MONDAY + timedelta(days=i): Decimal(h) for i, h in enumerate(hours)}


def adjustment(employee_id, hours: str, direction=AdjustmentDirection.REGULAR_TO_OVERTIME):
    return OvertimeAdjustment(
        employee_id=employee_id,
        work_date=MONDAY,
        direction=direction,
        hours=Decimal(hours),
        reason="manager correction",
    )


class TestDailyOvertime:
    """Splitting one day into regular / daily OT / double time."""

    def test_fourteen_hour_day_three_tiers(self):
        split = OvertimeEngine.calculate_daily_overtime(
            Decimal("14"), Decimal("8"), Decimal("12")
        )

        assert split.regular_hours == Decimal("8")
        assert split.daily_overtime_hours == Decimal("4")
        assert split.double_time_hours == Decimal("2")

    def test_under_threshold_all_regular(self):
        split = OvertimeEngine.calculate_daily_overtime(Decimal("7.5"), Decimal("8"))

        assert split.regular_hours == Decimal("7.5")
        assert split.daily_overtime_hours == 0

    def test_no_daily_threshold(self):
        split = OvertimeEngine.calculate_daily_overtime(Decimal("13"), None)

        assert split.regular_hours == Decimal("13")
        assert split.double_time_hours == 0

    def test_negative_hours_rejected(self):
        with pytest.raises(ValueError):
            OvertimeEngine.calculate_daily_overtime(Decimal("-1"), Decimal("8"))


class TestWeeklyOvertime:
    """Weekly threshold applied after daily tiering."""

    @pytest.mark.parametrize(
        "total, expected_ot",
        [
            ("0", "0"),
            ("39.99", "0"),
            ("40", "0"),
            ("40.01", "0.01"),
            ("45.5", "5.5"),
            ("62.25", "22.25"),
        ],
    )
    def test_weekly_overtime_is_excess_over_forty(self, total, expected_ot):
        hours = OvertimeEngine.calculate_weekly_overtime(week_of(total), OvertimeRules())

        assert hours.weekly_overtime_hours == Decimal(expected_ot)
        assert hours.regular_hours == min(Decimal(total), Decimal("40"))

    def test_daily_hours_not_double_counted(self):
        """Five 10-hour days with an 8-hour daily threshold: 40 regular, 10 daily OT."""
        rules = OvertimeRules(daily_threshold_hours=Decimal("8"))

        hours = OvertimeEngine.calculate_weekly_overtime(week_of(*["10"] * 5), rules)

        assert hours.regular_hours == Decimal("40")
        assert hours.daily_overtime_hours == Decimal("10")
        assert hours.weekly_overtime_hours == 0
        assert hours.total_hours == Decimal("50")

    def test_daily_and_weekly_combined(self):
        """Six 9-hour days: 48 regular after daily tiering, 8 of them weekly OT."""
        rules = OvertimeRules(daily_threshold_hours=Decimal("8"))

        hours = OvertimeEngine.calculate_weekly_overtime(week_of(*["9"] * 6), rules)

        assert hours.regular_hours == Decimal("40")
        assert hours.daily_overtime_hours == Decimal("6")
        assert hours.weekly_overtime_hours == Decimal("8")


class TestAdjustments:
    """Manual reclassification between regular and weekly OT."""

    def test_clamped_at_available_regular(self, make_employee):
        emp = make_employee()
        base = OvertimeHours(regular_hours=Decimal("5"), weekly_overtime_hours=Decimal("2"))

        adjusted, applied = OvertimeEngine.apply_overtime_adjustments(
            base, [adjustment(emp.employee_id, "8")]
        )

        assert adjusted.regular_hours == 0
        assert adjusted.weekly_overtime_hours == Decimal("7")
        assert applied[0].applied_hours == Decimal("5")
        assert applied[0].was_clamped

    def test_overtime_to_regular(self, make_employee):
        emp = make_employee()
        base = OvertimeHours(regular_hours=Decimal("40"), weekly_overtime_hours=Decimal("3"))

        adjusted, applied = OvertimeEngine.apply_overtime_adjustments(
            base,
            [adjustment(emp.employee_id, "1.5", AdjustmentDirection.OVERTIME_TO_REGULAR)],
        )

        assert adjusted.regular_hours == Decimal("41.50")
        assert adjusted.weekly_overtime_hours == Decimal("1.50")
        assert not applied[0].was_clamped

    def test_daily_tiers_untouched(self, make_employee):
        emp = make_employee()
        base = OvertimeHours(
            regular_hours=Decimal("8"),
            daily_overtime_hours=Decimal("2"),
            double_time_hours=Decimal("1"),
        )

        adjusted, _ = OvertimeEngine.apply_overtime_adjustments(
            base, [adjustment(emp.employee_id, "4")]
        )

        assert adjusted.daily_overtime_hours == Decimal("2")
        assert adjusted.double_time_hours == Decimal("1")

    @pytest.mark.parametrize("hours", ["0", "-2"])
    def test_non_positive_hours_rejected(self, make_employee, hours):
        emp = make_employee()

        with pytest.raises(ValueError):
            OvertimeEngine.apply_overtime_adjustments(
                OvertimeHours(regular_hours=Decimal("10")), [adjustment(emp.employee_id, hours)]
            )


class TestOvertimePay:
    """Pricing each tier in integer cents."""

    def test_weekly_overtime_pay(self):
        hours = OvertimeHours(regular_hours=Decimal("40"), weekly_overtime_hours=Decimal("5"))

        pay = OvertimeEngine.calculate_overtime_pay(hours, 1500, 0, OvertimeRules())

        assert pay.regular_pay_cents == 60000
        assert pay.weekly_overtime_pay_cents == 11250
        assert pay.total_pay_cents == 71250
        assert pay.overtime_base_rate_cents == 1500

    def test_each_tier_rounded_independently(self):
        hours = OvertimeHours(regular_hours=Decimal("0.33"), weekly_overtime_hours=Decimal("0.33"))

        pay = OvertimeEngine.calculate_overtime_pay(hours, 1001, 0, OvertimeRules())

        # 0.33 * 1001 = 330.33; 0.33 * 1001 * 1.5 = 495.495
        assert pay.regular_pay_cents == 330
        assert pay.weekly_overtime_pay_cents == 495

    def test_tips_blended_into_overtime_rate(self):
        rules = OvertimeRules(exclude_tips_from_ot_rate=False)
        hours = OvertimeHours(regular_hours=Decimal("40"), weekly_overtime_hours=Decimal("5"))

        pay = OvertimeEngine.calculate_overtime_pay(hours, 1500, 9000, rules)

        # 9000 cents over 45 hours adds 200 cents/hour to the OT base rate
        assert pay.overtime_base_rate_cents == 1700
        assert pay.regular_pay_cents == 60000
        assert pay.weekly_overtime_pay_cents == 12750

    def test_tips_excluded_by_default(self):
        hours = OvertimeHours(regular_hours=Decimal("40"), weekly_overtime_hours=Decimal("5"))

        pay = OvertimeEngine.calculate_overtime_pay(hours, 1500, 9000, OvertimeRules())

        assert pay.overtime_base_rate_cents == 1500

    def test_double_time_multiplier(self):
        rules = OvertimeRules(
            daily_threshold_hours=Decimal("8"), double_time_threshold_hours=Decimal("12")
        )
        hours = OvertimeEngine.calculate_weekly_overtime(week_of("14"), rules)

        pay = OvertimeEngine.calculate_overtime_pay(hours, 2000, 0, rules)

        assert pay.regular_pay_cents == 16000
        assert pay.daily_overtime_pay_cents == 12000
        assert pay.double_time_pay_cents == 8000


class TestEmployeeOvertime:
    """Full pipeline for one employee-week."""

    def test_exempt_employee_skips_tiering(self, make_employee):
        emp = make_employee(is_exempt=True, hourly_rate_cents=3000)

        result = OvertimeEngine.calculate_employee_overtime(
            emp, week_of(*["10"] * 5), OvertimeRules(daily_threshold_hours=Decimal("8"))
        )

        assert result.is_exempt
        assert result.hours.regular_hours == Decimal("50.00")
        assert result.hours.overtime_hours == 0
        assert result.pay.overtime_pay_cents == 0
        assert result.pay.regular_pay_cents == 150000

    def test_only_own_adjustments_applied(self, make_employee):
        emp, other = make_employee("A"), make_employee("B")

        result = OvertimeEngine.calculate_employee_overtime(
            emp,
            week_of("8", "8"),
            OvertimeRules(),
            adjustments=[adjustment(other.employee_id, "2")],
        )

        assert result.hours.regular_hours == Decimal("16.00")
        assert result.applied_adjustments == []


class TestOvertimeRules:
    """Rule validation on construction."""

    def test_defaults(self):
        rules = OvertimeRules()

        assert rules.weekly_threshold_hours == Decimal("40")
        assert rules.weekly_ot_multiplier == Decimal("1.5")
        assert rules.daily_threshold_hours is None
        assert rules.exclude_tips_from_ot_rate is True

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"weekly_threshold_hours": Decimal("0")},
            {"daily_threshold_hours": Decimal("-8")},
            {"double_time_threshold_hours": Decimal("12")},
            {
                "daily_threshold_hours": Decimal("8"),
                "double_time_threshold_hours": Decimal("6"),
            },
            {"weekly_ot_multiplier": Decimal("0.5")},
        ],
    )
    def test_invalid_rules_rejected(self, kwargs):
        with pytest.raises(OvertimeConfigError):
            OvertimeRules(**kwargs)

    def test_from_dict(self):
        rules = OvertimeRules.from_dict(
            {"weekly_threshold_hours": 44, "daily_threshold_hours": "8.5"}
        )

        assert rules.weekly_threshold_hours == Decimal("44")
        assert rules.daily_threshold_hours == Decimal("8.5")
        assert rules.double_time_threshold_hours is None
