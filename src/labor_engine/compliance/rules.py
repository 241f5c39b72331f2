"""Compliance rule catalogue and typed rule configurations.

Each rule type carries exactly one configuration shape. Raw mappings (API
payloads, stored JSON) are parsed into these frozen dataclasses once, at
rule-save time; evaluation only ever sees validated configs.

    rule = ComplianceRule(
        rule_id=...,
        restaurant_id=...,
        rule_type=RuleType.REST_PERIOD,
        config=parse_rule_config(
            RuleType.REST_PERIOD,
            {"min_hours_between_shifts": 11, "allow_override": True},
        ),
    )
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from datetime import time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union
from uuid import UUID

from labor_engine.calculators.rounding import to_decimal


class RuleType(str, Enum):
    """The fixed catalogue of compliance rule kinds."""

    MINOR_RESTRICTIONS = "minor_restrictions"
    CLOPENING = "clopening"
    REST_PERIOD = "rest_period"
    SHIFT_LENGTH = "shift_length"
    OVERTIME = "overtime"


class RuleConfigError(ValueError):
    """Raised when a rule configuration is missing, malformed or inconsistent."""

    def __init__(self, rule_type: str, field_name: str | None, message: str):
        self.rule_type = rule_type
        self.field_name = field_name
        self.message = message
        where = f"{rule_type}.{field_name}" if field_name else rule_type
        super().__init__(f"Invalid rule config {where}: {message}")


def parse_hhmm(value: str) -> time:
    """Parse an "HH:MM" wall-clock string."""
    hours, sep, minutes = value.partition(":")
    if not sep or len(minutes) != 2 or not hours.isdigit() or not minutes.isdigit():
        raise ValueError(f"Expected HH:MM, got {value!r}")
    return time(int(hours), int(minutes))


@dataclass(frozen=True)
class MinorRestrictionsConfig:
    """Working limits for employees under 18."""

    max_hours_per_day: Decimal
    max_hours_per_week: Decimal
    earliest_start_time: time
    latest_end_time: time

    def __post_init__(self) -> None:
        rule = RuleType.MINOR_RESTRICTIONS.value
        if self.max_hours_per_day <= 0:
            raise RuleConfigError(rule, "max_hours_per_day", "must be positive")
        if self.max_hours_per_week <= 0:
            raise RuleConfigError(rule, "max_hours_per_week", "must be positive")
        if self.max_hours_per_day > self.max_hours_per_week:
            raise RuleConfigError(
                rule, "max_hours_per_day", "cannot exceed max_hours_per_week"
            )
        if self.earliest_start_time >= self.latest_end_time:
            raise RuleConfigError(
                rule, "earliest_start_time", "must be before latest_end_time"
            )


@dataclass(frozen=True)
class RestPeriodConfig:
    """Minimum rest between consecutive shifts (rest_period and clopening)."""

    min_hours_between_shifts: Decimal
    allow_override: bool = False

    def __post_init__(self) -> None:
        if self.min_hours_between_shifts <= 0:
            raise RuleConfigError(
                "rest_period", "min_hours_between_shifts", "must be positive"
            )


@dataclass(frozen=True)
class ShiftLengthConfig:
    """Shift duration bounds and an optional consecutive-day cap."""

    min_hours: Decimal
    max_hours: Decimal
    max_consecutive_days: int | None = None

    def __post_init__(self) -> None:
        rule = RuleType.SHIFT_LENGTH.value
        if self.min_hours < 0:
            raise RuleConfigError(rule, "min_hours", "cannot be negative")
        if self.max_hours <= 0:
            raise RuleConfigError(rule, "max_hours", "must be positive")
        if self.min_hours > self.max_hours:
            raise RuleConfigError(rule, "min_hours", "cannot exceed max_hours")
        if self.max_consecutive_days is not None and self.max_consecutive_days < 1:
            raise RuleConfigError(rule, "max_consecutive_days", "must be at least 1")


@dataclass(frozen=True)
class OvertimeRuleConfig:
    """Scheduling-time overtime warnings."""

    weekly_threshold: Decimal
    daily_threshold: Decimal | None = None
    warn_only: bool = False

    def __post_init__(self) -> None:
        rule = RuleType.OVERTIME.value
        if self.weekly_threshold <= 0:
            raise RuleConfigError(rule, "weekly_threshold", "must be positive")
        if self.daily_threshold is not None and self.daily_threshold <= 0:
            raise RuleConfigError(rule, "daily_threshold", "must be positive")


RuleConfig = Union[MinorRestrictionsConfig, RestPeriodConfig, ShiftLengthConfig, OvertimeRuleConfig]

CONFIG_TYPES: dict[RuleType, type] = {
    RuleType.MINOR_RESTRICTIONS: MinorRestrictionsConfig,
    RuleType.CLOPENING: RestPeriodConfig,
    RuleType.REST_PERIOD: RestPeriodConfig,
    RuleType.SHIFT_LENGTH: ShiftLengthConfig,
    RuleType.OVERTIME: OvertimeRuleConfig,
}


class _Fields:
    """Typed field readers over a raw config mapping."""

    def __init__(self, rule_type: RuleType, raw: Mapping[str, Any]):
        self.rule_type = rule_type
        self.raw = raw

    def _error(self, name: str, message: str) -> RuleConfigError:
        return RuleConfigError(self.rule_type.value, name, message)

    def number(self, name: str, required: bool = True) -> Decimal | None:
        value = self.raw.get(name)
        if value is None:
            if required:
                raise self._error(name, "is required")
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
            raise self._error(name, f"expected a number, got {type(value).__name__}")
        try:
            number = to_decimal(value)
        except InvalidOperation:
            raise self._error(name, f"expected a number, got {value!r}") from None
        if not number.is_finite():
            raise self._error(name, "must be finite")
        return number

    def integer(self, name: str, required: bool = True) -> int | None:
        value = self.raw.get(name)
        if value is None:
            if required:
                raise self._error(name, "is required")
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise self._error(name, f"expected an integer, got {value!r}")
        return value

    def boolean(self, name: str, default: bool = False) -> bool:
        value = self.raw.get(name, default)
        if not isinstance(value, bool):
            raise self._error(name, f"expected true/false, got {value!r}")
        return value

    def wall_time(self, name: str) -> time:
        value = self.raw.get(name)
        if value is None:
            raise self._error(name, "is required")
        if not isinstance(value, str):
            raise self._error(name, f"expected HH:MM, got {value!r}")
        try:
            return parse_hhmm(value)
        except ValueError as e:
            raise self._error(name, str(e)) from None


def parse_rule_config(rule_type: RuleType | str, raw: Mapping[str, Any]) -> RuleConfig:
    """Validate a raw mapping into the config shape for ``rule_type``.

    Unknown fields are rejected so a config written for one rule kind cannot
    be saved under another.

    Raises:
        RuleConfigError: On unknown rule type, unknown/missing fields, bad
            types or inconsistent values.
    """
    try:
        rule_type = RuleType(rule_type)
    except ValueError:
        raise RuleConfigError(str(rule_type), None, "unknown rule type") from None

    if not isinstance(raw, Mapping):
        raise RuleConfigError(rule_type.value, None, "config must be an object")

    config_cls = CONFIG_TYPES[rule_type]
    allowed = {f.name for f in fields(config_cls)}
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise RuleConfigError(rule_type.value, unknown[0], "unknown field")

    f = _Fields(rule_type, raw)

    if rule_type == RuleType.MINOR_RESTRICTIONS:
        return MinorRestrictionsConfig(
            max_hours_per_day=f.number("max_hours_per_day"),
            max_hours_per_week=f.number("max_hours_per_week"),
            earliest_start_time=f.wall_time("earliest_start_time"),
            latest_end_time=f.wall_time("latest_end_time"),
        )
    if rule_type in (RuleType.CLOPENING, RuleType.REST_PERIOD):
        try:
            return RestPeriodConfig(
                min_hours_between_shifts=f.number("min_hours_between_shifts"),
                allow_override=f.boolean("allow_override"),
            )
        except RuleConfigError as e:
            # Report under the rule kind actually being saved
            raise RuleConfigError(rule_type.value, e.field_name, e.message) from None
    if rule_type == RuleType.SHIFT_LENGTH:
        return ShiftLengthConfig(
            min_hours=f.number("min_hours"),
            max_hours=f.number("max_hours"),
            max_consecutive_days=f.integer("max_consecutive_days", required=False),
        )
    if rule_type == RuleType.OVERTIME:
        return OvertimeRuleConfig(
            weekly_threshold=f.number("weekly_threshold"),
            daily_threshold=f.number("daily_threshold", required=False),
            warn_only=f.boolean("warn_only"),
        )

    raise RuleConfigError(rule_type.value, None, "no config parser registered")


def config_to_dict(config: RuleConfig) -> dict[str, Any]:
    """JSON-safe representation of a validated config (floats, HH:MM strings)."""
    data: dict[str, Any] = {}
    for f in fields(config):
        value = getattr(config, f.name)
        if isinstance(value, Decimal):
            value = float(value)
        elif isinstance(value, time):
            value = value.strftime("%H:%M")
        data[f.name] = value
    return data


@dataclass(frozen=True)
class ComplianceRule:
    """An enabled-or-disabled rule instance for one restaurant."""

    rule_id: UUID
    restaurant_id: UUID
    rule_type: RuleType
    config: RuleConfig
    enabled: bool = True

    def __post_init__(self) -> None:
        expected = CONFIG_TYPES[self.rule_type]
        if not isinstance(self.config, expected):
            raise RuleConfigError(
                self.rule_type.value,
                None,
                f"expected {expected.__name__}, got {type(self.config).__name__}",
            )

    def updated(self, config: RuleConfig | None = None, enabled: bool | None = None) -> ComplianceRule:
        """Return a new rule with an explicit update applied."""
        return replace(
            self,
            config=self.config if config is None else config,
            enabled=self.enabled if enabled is None else enabled,
        )

    @classmethod
    def from_raw(
        cls,
        rule_id: UUID,
        restaurant_id: UUID,
        rule_type: RuleType | str,
        raw_config: Mapping[str, Any],
        enabled: bool = True,
    ) -> ComplianceRule:
        config = parse_rule_config(rule_type, raw_config)
        return cls(
            rule_id=rule_id,
            restaurant_id=restaurant_id,
            rule_type=RuleType(rule_type),
            config=config,
            enabled=enabled,
        )
