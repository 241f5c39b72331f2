"""Tip pool distribution with exact reconciliation and period locking."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from labor_engine.calculators.rounding import ZERO, reconcile_to_total, to_decimal
from labor_engine.calculators.types import CompensationType, Employee

logger = logging.getLogger(__name__)


class TipSource(str, Enum):
    """Where the tip total came from."""

    MANUAL = "manual"
    POS = "pos"


class ShareMethod(str, Enum):
    """How a pool is divided."""

    HOURS = "hours"
    ROLE = "role"
    MANUAL = "manual"  # even split


class SplitCadence(str, Enum):
    """How often a pool is split."""

    DAILY = "daily"
    WEEKLY = "weekly"
    SHIFT = "shift"


class TipSplitStatus(str, Enum):
    """Tip split lifecycle status."""

    DRAFT = "draft"
    LOCKED = "locked"


class TipDistributionError(ValueError):
    """Raised when a pool cannot be split exactly."""


class PeriodLockedError(Exception):
    """Raised when a locked period would be recomputed or edited."""

    def __init__(self, period_key: str):
        self.period_key = period_key
        super().__init__(f"Tip period '{period_key}' is locked")


class LockValidationError(ValueError):
    """Raised when a lock request is incomplete."""


class LockConflictError(Exception):
    """Raised when another lock of the same period won."""

    def __init__(self, period_key: str):
        self.period_key = period_key
        super().__init__(f"Tip period '{period_key}' was already locked")


@dataclass(frozen=True)
class TipPoolSettings:
    """Per-restaurant tip pool configuration.

    Attributes:
        tip_source: Manual entry or POS-declared totals.
        share_method: hours, role or manual (even).
        split_cadence: daily, weekly or per shift.
        role_weights: role -> weight, used only by the role method. Roles not
            listed weigh 1.
        eligible_employee_ids: Employees sharing the pool. Empty means every
            participant passed to the distributor.
    """

    tip_source: TipSource = TipSource.MANUAL
    share_method: ShareMethod = ShareMethod.HOURS
    split_cadence: SplitCadence = SplitCadence.DAILY
    role_weights: Mapping[str, Decimal] = field(default_factory=dict)
    eligible_employee_ids: frozenset[UUID] = frozenset()

    def __post_init__(self) -> None:
        for role, weight in self.role_weights.items():
            if weight < 0:
                raise ValueError(f"Role weight for '{role}' cannot be negative")

    def weight_for(self, role: str | None) -> Decimal:
        if role is None:
            return Decimal("1")
        return self.role_weights.get(role, Decimal("1"))

    def is_eligible(self, employee_id: UUID) -> bool:
        return not self.eligible_employee_ids or employee_id in self.eligible_employee_ids

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TipPoolSettings:
        return cls(
            tip_source=TipSource(data.get("tip_source", TipSource.MANUAL.value)),
            share_method=ShareMethod(data.get("share_method", ShareMethod.HOURS.value)),
            split_cadence=SplitCadence(data.get("split_cadence", SplitCadence.DAILY.value)),
            role_weights={
                role: to_decimal(weight) for role, weight in (data.get("role_weights") or {}).items()
            },
            eligible_employee_ids=frozenset(
                UUID(str(e)) for e in data.get("eligible_employee_ids") or []
            ),
        )


@dataclass(frozen=True)
class TipShareInput:
    """One participant in a pool: hours worked and role for the period."""

    employee_id: UUID
    hours: Decimal = ZERO
    role: str | None = None


@dataclass(frozen=True)
class TipShare:
    """A computed share with the inputs that produced it."""

    employee_id: UUID
    amount_cents: int
    hours: Decimal = ZERO
    role: str | None = None
    role_weight: Decimal | None = None
    share_fraction: Decimal | None = None
    manually_edited: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": str(self.employee_id),
            "amount_cents": self.amount_cents,
            "hours": str(self.hours),
            "role": self.role,
            "role_weight": None if self.role_weight is None else str(self.role_weight),
            "share_fraction": None if self.share_fraction is None else str(self.share_fraction),
            "manually_edited": self.manually_edited,
        }


@dataclass(frozen=True)
class TipSplit:
    """All shares of one pool for one period."""

    split_id: UUID
    period_key: str
    total_cents: int
    share_method: ShareMethod
    tip_source: TipSource
    shares: tuple[TipShare, ...]
    status: TipSplitStatus = TipSplitStatus.DRAFT
    computed_at: datetime | None = None

    @property
    def allocated_cents(self) -> int:
        return sum(s.amount_cents for s in self.shares)

    @property
    def is_reconciled(self) -> bool:
        return self.allocated_cents == self.total_cents

    def share_for(self, employee_id: UUID) -> TipShare | None:
        for share in self.shares:
            if share.employee_id == employee_id:
                return share
        return None


@dataclass(frozen=True)
class TipPeriodLock:
    """Payroll-of-record snapshot of a locked period."""

    period_key: str
    split_id: UUID
    locked_by: UUID
    locked_at: datetime
    snapshot: dict[str, int]
    snapshot_hash: str
    locked: bool = True


def period_key(cadence: SplitCadence, day: date, shift_id: UUID | None = None) -> str:
    """Identifier of the pool period containing ``day``."""
    if cadence == SplitCadence.DAILY:
        return day.isoformat()
    if cadence == SplitCadence.WEEKLY:
        year, week, _ = day.isocalendar()
        return f"{year}-W{week:02d}"
    if cadence == SplitCadence.SHIFT:
        if shift_id is None:
            raise ValueError("Per-shift cadence requires a shift_id")
        return f"shift:{shift_id}"
    raise ValueError(f"Unknown split cadence: {cadence}")


def filter_tip_eligible(employees: Iterable[Employee]) -> list[Employee]:
    """Active, tip-eligible, non-salaried employees, in roster order."""
    return [
        e
        for e in employees
        if e.is_active and e.tip_eligible and e.compensation_type != CompensationType.SALARY
    ]


def snapshot_of(split: TipSplit) -> dict[str, int]:
    return {str(s.employee_id): s.amount_cents for s in split.shares}


def snapshot_hash(snapshot: Mapping[str, int]) -> str:
    """Deterministic hash of a lock snapshot."""
    json_str = json.dumps(dict(snapshot), sort_keys=True)
    return hashlib.sha256(json_str.encode()).hexdigest()


def split_evenly(total_cents: int, count: int) -> list[int]:
    """Equal shares; the remainder cents go one each to the first recipients."""
    if count <= 0:
        if total_cents:
            raise TipDistributionError("No eligible employees to share the pool")
        return []
    base, remainder = divmod(total_cents, count)
    return [base + (1 if i < remainder else 0) for i in range(count)]


def split_by_weights(total_cents: int, weights: Sequence[Decimal]) -> list[int]:
    """Shares proportional to weights, reconciled to the exact total."""
    if any(w < 0 for w in weights):
        raise TipDistributionError("Weights cannot be negative")
    weight_sum = sum(weights, ZERO)
    if weight_sum <= 0:
        if total_cents:
            raise TipDistributionError("No recipient has a positive share weight")
        return [0] * len(weights)
    exact = [Decimal(total_cents) * w / weight_sum for w in weights]
    return reconcile_to_total(exact, total_cents)


def compute_shares(
    total_cents: int,
    participants: Sequence[TipShareInput],
    settings: TipPoolSettings,
) -> list[TipShare]:
    """Split ``total_cents`` across eligible participants using the configured method."""
    if total_cents < 0:
        raise TipDistributionError("Tip total cannot be negative")

    seen: set[UUID] = set()
    eligible: list[TipShareInput] = []
    for p in participants:
        if p.employee_id in seen:
            raise TipDistributionError(f"Employee {p.employee_id} listed twice")
        seen.add(p.employee_id)
        if p.hours < 0:
            raise TipDistributionError(f"Negative hours for employee {p.employee_id}")
        if settings.is_eligible(p.employee_id):
            eligible.append(p)

    method = settings.share_method
    if method == ShareMethod.MANUAL:
        amounts = split_evenly(total_cents, len(eligible))
        fraction = Decimal(1) / Decimal(len(eligible)) if eligible else None
        return [
            TipShare(
                employee_id=p.employee_id,
                amount_cents=amount,
                hours=p.hours,
                role=p.role,
                share_fraction=fraction,
            )
            for p, amount in zip(eligible, amounts)
        ]

    if method == ShareMethod.HOURS:
        weights = [p.hours for p in eligible]
    elif method == ShareMethod.ROLE:
        weights = [settings.weight_for(p.role) for p in eligible]
    else:
        raise TipDistributionError(f"Unknown share method: {method}")

    amounts = split_by_weights(total_cents, weights)
    weight_sum = sum(weights, ZERO)
    return [
        TipShare(
            employee_id=p.employee_id,
            amount_cents=amount,
            hours=p.hours,
            role=p.role,
            role_weight=weight if method == ShareMethod.ROLE else None,
            share_fraction=(weight / weight_sum) if weight_sum > 0 else ZERO,
        )
        for p, weight, amount in zip(eligible, weights, amounts)
    ]


def rebalance_allocations(split: TipSplit, employee_id: UUID, new_amount_cents: int) -> TipSplit:
    """Manually set one share and spread the rest over the others.

    The other recipients keep their relative proportions (even when all of
    them are at zero). The edited share is flagged ``manually_edited``.
    """
    if split.status == TipSplitStatus.LOCKED:
        raise PeriodLockedError(split.period_key)
    if not 0 <= new_amount_cents <= split.total_cents:
        raise TipDistributionError(
            f"Amount must be between 0 and the pool total {split.total_cents}"
        )
    if split.share_for(employee_id) is None:
        raise TipDistributionError(f"Employee {employee_id} has no share in this split")

    others = [s for s in split.shares if s.employee_id != employee_id]
    remaining = split.total_cents - new_amount_cents
    if not others:
        if remaining:
            raise TipDistributionError("A sole recipient must receive the full pool")
        other_amounts: list[int] = []
    elif all(s.amount_cents == 0 for s in others):
        other_amounts = split_evenly(remaining, len(others))
    else:
        other_amounts = split_by_weights(remaining, [Decimal(s.amount_cents) for s in others])

    rebalanced = iter(other_amounts)
    shares = tuple(
        replace(s, amount_cents=new_amount_cents, manually_edited=True)
        if s.employee_id == employee_id
        else replace(s, amount_cents=next(rebalanced))
        for s in split.shares
    )
    return replace(split, shares=shares, computed_at=datetime.now(timezone.utc))


class TipPoolDistributor:
    """Computes and holds tip splits per period; locked periods are frozen.

    Usage:
        distributor = TipPoolDistributor(TipPoolSettings(share_method=ShareMethod.HOURS))
        split = distributor.distribute("2024-03-01", 1001, participants)
        distributor.lock("2024-03-01", actor_id=manager_id)
    """

    def __init__(self, settings: TipPoolSettings):
        self.settings = settings
        self._splits: dict[str, TipSplit] = {}
        self._locks: dict[str, TipPeriodLock] = {}

    def is_locked(self, key: str) -> bool:
        return key in self._locks

    def get_split(self, key: str) -> TipSplit | None:
        return self._splits.get(key)

    def get_lock(self, key: str) -> TipPeriodLock | None:
        return self._locks.get(key)

    def distribute(
        self,
        key: str,
        total_cents: int,
        participants: Sequence[TipShareInput],
    ) -> TipSplit:
        """Compute (or recompute) the split for a period."""
        if self.is_locked(key):
            raise PeriodLockedError(key)

        shares = compute_shares(total_cents, participants, self.settings)
        split = TipSplit(
            split_id=uuid4(),
            period_key=key,
            total_cents=total_cents,
            share_method=self.settings.share_method,
            tip_source=self.settings.tip_source,
            shares=tuple(shares),
            computed_at=datetime.now(timezone.utc),
        )
        if not split.is_reconciled:
            raise TipDistributionError(
                f"Shares sum to {split.allocated_cents}, expected {total_cents}"
            )
        self._splits[key] = split
        logger.info(
            "Distributed %d cents over %d recipients for period %s (%s)",
            total_cents,
            len(shares),
            key,
            self.settings.share_method.value,
        )
        return split

    def rebalance(self, key: str, employee_id: UUID, new_amount_cents: int) -> TipSplit:
        if self.is_locked(key):
            raise PeriodLockedError(key)
        split = self._splits.get(key)
        if split is None:
            raise TipDistributionError(f"No split for period '{key}'")
        split = rebalance_allocations(split, employee_id, new_amount_cents)
        self._splits[key] = split
        return split

    def lock(self, key: str, actor_id: UUID | None, at: datetime | None = None) -> TipPeriodLock:
        """Freeze the period's split as the payroll-of-record snapshot."""
        split = self._splits.get(key)
        validate_lock(split, actor_id, key)
        if self.is_locked(key):
            raise LockConflictError(key)

        snapshot = snapshot_of(split)
        lock = TipPeriodLock(
            period_key=key,
            split_id=split.split_id,
            locked_by=actor_id,
            locked_at=at or datetime.now(timezone.utc),
            snapshot=snapshot,
            snapshot_hash=snapshot_hash(snapshot),
        )
        self._locks[key] = lock
        self._splits[key] = replace(split, status=TipSplitStatus.LOCKED)
        logger.info("Locked tip period %s by %s", key, actor_id)
        return lock


def validate_lock(split: TipSplit | None, actor_id: UUID | None, key: str) -> None:
    if actor_id is None:
        raise LockValidationError("An acting user is required to lock a period")
    if split is None:
        raise LockValidationError(f"No split to lock for period '{key}'")
    if not split.shares:
        raise LockValidationError("Cannot lock a split without shares")
    if split.allocated_cents <= 0:
        raise LockValidationError("Cannot lock a split with no allocated tips")
