"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from labor_engine.calculators.engine import EmployeePeriodResult, PayPeriodSummary
from labor_engine.calculators.types import (
    AdjustmentDirection,
    CompensationType,
    Employee,
    OvertimeAdjustment,
    OvertimeRules,
    PunchType,
    Shift,
    TimePunch,
)
from labor_engine.compliance.rules import RuleType
from labor_engine.compliance.violations import Severity, ViolationStatus
from labor_engine.tips.distributor import (
    ShareMethod,
    SplitCadence,
    TipPoolSettings,
    TipShareInput,
    TipSource,
)


# ============================================================================
# Roster / schedule input schemas
# ============================================================================


class EmployeeIn(BaseModel):
    """Employee record supplied by the caller."""

    employee_id: UUID
    name: str
    role: str | None = None
    compensation_type: CompensationType = CompensationType.HOURLY
    hourly_rate_cents: int = Field(default=0, ge=0)
    is_exempt: bool = False
    tip_eligible: bool = True
    is_active: bool = True
    is_minor: bool = False
    birth_date: date | None = None

    def to_domain(self) -> Employee:
        return Employee(**self.model_dump())


class ShiftIn(BaseModel):
    """Scheduled shift supplied by the caller."""

    shift_id: UUID
    employee_id: UUID
    start_time: datetime
    end_time: datetime
    break_minutes: int = Field(default=0, ge=0)
    position: str | None = None
    status: str = "scheduled"

    def to_domain(self) -> Shift:
        return Shift(**self.model_dump())


class PunchIn(BaseModel):
    """Time clock punch."""

    employee_id: UUID
    punch_time: datetime
    punch_type: PunchType
    punch_id: UUID | None = None

    def to_domain(self) -> TimePunch:
        return TimePunch(**self.model_dump())


# ============================================================================
# Compliance schemas
# ============================================================================


class RuleCreate(BaseModel):
    """Schema for saving a compliance rule."""

    rule_type: RuleType
    config: dict[str, Any]
    enabled: bool = True


class RuleUpdate(BaseModel):
    """Schema for an explicit rule update."""

    config: dict[str, Any] | None = None
    enabled: bool | None = None


class RuleResponse(BaseModel):
    """Schema for a stored rule."""

    model_config = ConfigDict(from_attributes=True)

    rule_id: UUID
    restaurant_id: UUID
    rule_type: RuleType
    rule_config: dict[str, Any]
    enabled: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class EvaluateRequest(BaseModel):
    """Schedule data to evaluate against the restaurant's enabled rules."""

    employees: list[EmployeeIn]
    shifts: list[ShiftIn]
    actor_id: UUID | None = None


class ViolationResponse(BaseModel):
    """Schema for a violation."""

    model_config = ConfigDict(from_attributes=True)

    violation_id: UUID
    restaurant_id: UUID
    rule_type: RuleType
    severity: Severity
    employee_id: UUID
    shift_id: UUID | None = None
    message: str
    details: dict[str, Any]
    status: ViolationStatus
    detected_at: datetime | None = None
    override_reason: str | None = None
    overridden_by: UUID | None = None
    overridden_at: datetime | None = None
    resolved_at: datetime | None = None


class EvaluateResponse(BaseModel):
    """Outcome of an evaluation run."""

    created: list[ViolationResponse]
    resolved: list[UUID]
    unchanged: int


class ViolationListResponse(BaseModel):
    items: list[ViolationResponse]
    total: int


class OverrideRequest(BaseModel):
    """Override of an active violation."""

    reason: str = ""
    actor_id: UUID | None = None


# ============================================================================
# Payroll schemas
# ============================================================================


class OvertimeRulesIn(BaseModel):
    """Overtime configuration for a payroll calculation."""

    weekly_threshold_hours: Decimal = Decimal("40")
    weekly_ot_multiplier: Decimal = Decimal("1.5")
    daily_threshold_hours: Decimal | None = None
    daily_ot_multiplier: Decimal = Decimal("1.5")
    double_time_threshold_hours: Decimal | None = None
    double_time_multiplier: Decimal = Decimal("2.0")
    exclude_tips_from_ot_rate: bool = True

    def to_domain(self) -> OvertimeRules:
        return OvertimeRules(**self.model_dump())


class AdjustmentIn(BaseModel):
    """Manual overtime reclassification."""

    employee_id: UUID
    work_date: date
    direction: AdjustmentDirection
    hours: Decimal = Field(gt=0)
    reason: str = Field(min_length=1)

    def to_domain(self) -> OvertimeAdjustment:
        return OvertimeAdjustment(**self.model_dump())


class PayrollRequest(BaseModel):
    """Inputs for a pay period calculation."""

    period_start: date
    period_end: date
    employees: list[EmployeeIn]
    punches: list[PunchIn]
    rules: OvertimeRulesIn = Field(default_factory=OvertimeRulesIn)
    adjustments: list[AdjustmentIn] = []
    tips_cents: dict[UUID, int] = {}

    @model_validator(mode="after")
    def check_period(self) -> "PayrollRequest":
        if self.period_end < self.period_start:
            raise ValueError("period_end must be on or after period_start")
        return self


class WeekResponse(BaseModel):
    week_start: date
    hours: dict[str, str]
    pay: dict[str, int]
    tips_cents: int


class EmployeePayResponse(BaseModel):
    """Pay figures for one employee."""

    employee_id: UUID
    calculation_id: UUID
    success: bool
    errors: list[str]
    is_exempt: bool
    hours: dict[str, str]
    pay: dict[str, int]
    weeks: list[WeekResponse]
    daily_net_hours: dict[date, Decimal]
    has_open_punches: bool
    anomalies: list[dict[str, str]]

    @classmethod
    def from_result(cls, result: EmployeePeriodResult) -> "EmployeePayResponse":
        return cls(
            employee_id=result.employee_id,
            calculation_id=result.calculation_id,
            success=result.success,
            errors=result.errors,
            is_exempt=result.is_exempt,
            hours=result.hours.to_dict(),
            pay=result.pay.to_dict(),
            weeks=[
                WeekResponse(
                    week_start=w.week_start,
                    hours=w.hours.to_dict(),
                    pay=w.pay.to_dict(),
                    tips_cents=w.tips_cents,
                )
                for w in result.weeks
            ],
            daily_net_hours=result.daily_net_hours,
            has_open_punches=result.has_open_punches,
            anomalies=[a.to_dict() for a in result.anomalies],
        )


class PayrollResponse(BaseModel):
    """Pay period summary."""

    period_start: date
    period_end: date
    total_pay_cents: int
    total_hours: Decimal
    error_count: int
    employees_with_open_punches: list[UUID]
    results: list[EmployeePayResponse]

    @classmethod
    def from_summary(cls, summary: PayPeriodSummary) -> "PayrollResponse":
        return cls(
            period_start=summary.period_start,
            period_end=summary.period_end,
            total_pay_cents=summary.total_pay_cents,
            total_hours=summary.total_hours,
            error_count=summary.error_count,
            employees_with_open_punches=summary.employees_with_open_punches,
            results=[EmployeePayResponse.from_result(r) for r in summary.results.values()],
        )


# ============================================================================
# Tip pool schemas
# ============================================================================


class TipPoolSettingsIn(BaseModel):
    """Tip pool configuration used for a distribution."""

    tip_source: TipSource = TipSource.MANUAL
    share_method: ShareMethod = ShareMethod.HOURS
    split_cadence: SplitCadence = SplitCadence.DAILY
    role_weights: dict[str, Annotated[Decimal, Field(ge=0)]] = {}
    eligible_employee_ids: list[UUID] = []

    def to_domain(self) -> TipPoolSettings:
        return TipPoolSettings(
            tip_source=self.tip_source,
            share_method=self.share_method,
            split_cadence=self.split_cadence,
            role_weights=dict(self.role_weights),
            eligible_employee_ids=frozenset(self.eligible_employee_ids),
        )


class ParticipantIn(BaseModel):
    employee_id: UUID
    hours: Decimal = Field(default=Decimal("0"), ge=0)
    role: str | None = None

    def to_domain(self) -> TipShareInput:
        return TipShareInput(employee_id=self.employee_id, hours=self.hours, role=self.role)


class DistributeRequest(BaseModel):
    """Tip total and participants for one period."""

    total_cents: int = Field(ge=0)
    participants: list[ParticipantIn]
    settings: TipPoolSettingsIn = Field(default_factory=TipPoolSettingsIn)
    actor_id: UUID | None = None


class RebalanceRequest(BaseModel):
    employee_id: UUID
    amount_cents: int
    actor_id: UUID | None = None


class LockRequest(BaseModel):
    actor_id: UUID | None = None


class TipSplitItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    amount_cents: int
    hours: Decimal
    role: str | None = None
    role_weight: Decimal | None = None
    share_fraction: Decimal | None = None
    manually_edited: bool


class TipSplitResponse(BaseModel):
    """Schema for a stored split."""

    model_config = ConfigDict(from_attributes=True)

    split_id: UUID
    period_key: str
    total_cents: int
    share_method: ShareMethod
    tip_source: TipSource
    status: str
    computed_at: datetime
    items: list[TipSplitItemResponse]


class TipLockResponse(BaseModel):
    """Schema for a period lock."""

    model_config = ConfigDict(from_attributes=True)

    lock_id: UUID
    period_key: str
    split_id: UUID
    locked_by: UUID
    locked_at: datetime
    snapshot: dict[str, int]
    snapshot_hash: str


class TipPeriodResponse(BaseModel):
    split: TipSplitResponse
    lock: TipLockResponse | None = None


# ============================================================================
# Dispute schemas
# ============================================================================


class DisputeCreate(BaseModel):
    employee_id: UUID
    split_id: UUID
    dispute_type: str
    message: str = ""


class DisputeResolve(BaseModel):
    resolved_by: UUID | None = None
    notes: str | None = None


class DisputeResponse(BaseModel):
    """Schema for a dispute."""

    model_config = ConfigDict(from_attributes=True)

    dispute_id: UUID
    restaurant_id: UUID
    employee_id: UUID
    split_id: UUID
    dispute_type: str
    message: str
    status: str
    created_at: datetime | None = None
    resolved_by: UUID | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None


class DisputeListResponse(BaseModel):
    items: list[DisputeResponse]
    total: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
