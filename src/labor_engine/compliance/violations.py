"""Compliance violations, overrides and run-to-run reconciliation."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from labor_engine.compliance.rules import RuleType


class Severity(str, Enum):
    """Violation severity."""

    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ViolationStatus(str, Enum):
    """Violation lifecycle status."""

    ACTIVE = "active"
    OVERRIDDEN = "overridden"
    RESOLVED = "resolved"


class OverrideValidationError(ValueError):
    """Raised when an override is missing its reason or acting user."""

    def __init__(self, field_name: str, message: str):
        self.field_name = field_name
        super().__init__(f"{field_name}: {message}")


class OverrideNotAllowedError(Exception):
    """Raised when the violated rule does not permit overrides."""

    def __init__(self, violation_id: UUID, rule_type: str):
        self.violation_id = violation_id
        self.rule_type = rule_type
        super().__init__(f"Rule '{rule_type}' does not allow overriding violation {violation_id}")


class OverrideConflictError(Exception):
    """Raised when the violation is no longer active (another override won)."""

    def __init__(self, violation_id: UUID, current_status: str | None = None):
        self.violation_id = violation_id
        self.current_status = current_status
        msg = f"Violation {violation_id} is not active"
        if current_status:
            msg += f" (status: {current_status})"
        super().__init__(msg)


def finding_fingerprint(
    rule_type: RuleType,
    check: str,
    employee_id: UUID,
    scope: Iterable[Any],
) -> str:
    """Deterministic identity of one occurrence of a condition."""
    data = {
        "rule_type": rule_type.value,
        "check": check,
        "employee_id": str(employee_id),
        "scope": [str(s) for s in scope],
    }
    json_str = json.dumps(data, sort_keys=True)
    return hashlib.sha256(json_str.encode()).hexdigest()[:32]


@dataclass(frozen=True)
class ViolationFinding:
    """A condition found by one evaluation run, before persistence."""

    rule_type: RuleType
    check: str
    severity: Severity
    employee_id: UUID
    message: str
    fingerprint: str
    shift_id: UUID | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ComplianceViolation:
    """A recorded violation. Never deleted, only transitioned."""

    violation_id: UUID
    restaurant_id: UUID
    rule_type: RuleType
    severity: Severity
    employee_id: UUID
    message: str
    fingerprint: str
    shift_id: UUID | None = None
    details: dict[str, Any] = field(default_factory=dict)
    status: ViolationStatus = ViolationStatus.ACTIVE
    detected_at: datetime | None = None
    override_reason: str | None = None
    overridden_by: UUID | None = None
    overridden_at: datetime | None = None
    resolved_at: datetime | None = None

    @classmethod
    def from_finding(
        cls,
        finding: ViolationFinding,
        restaurant_id: UUID,
        detected_at: datetime | None = None,
    ) -> ComplianceViolation:
        return cls(
            violation_id=uuid4(),
            restaurant_id=restaurant_id,
            rule_type=finding.rule_type,
            severity=finding.severity,
            employee_id=finding.employee_id,
            shift_id=finding.shift_id,
            message=finding.message,
            details=dict(finding.details),
            fingerprint=finding.fingerprint,
            detected_at=detected_at or datetime.now(timezone.utc),
        )

    @property
    def allows_override(self) -> bool:
        return bool(self.details.get("allow_override", True))

    def override(self, reason: str, actor_id: UUID | None, at: datetime | None = None) -> None:
        """Transition active -> overridden. Permanent; there is no un-override."""
        validate_override(self, reason, actor_id)
        if self.status != ViolationStatus.ACTIVE:
            raise OverrideConflictError(self.violation_id, self.status.value)
        self.status = ViolationStatus.OVERRIDDEN
        self.override_reason = reason.strip()
        self.overridden_by = actor_id
        self.overridden_at = at or datetime.now(timezone.utc)

    def resolve(self, at: datetime | None = None) -> None:
        """Transition active -> resolved when the condition no longer holds."""
        if self.status != ViolationStatus.ACTIVE:
            raise ValueError(f"Only active violations can be resolved (status: {self.status.value})")
        self.status = ViolationStatus.RESOLVED
        self.resolved_at = at or datetime.now(timezone.utc)


def validate_override(violation: ComplianceViolation, reason: str | None, actor_id: UUID | None) -> None:
    """Check override inputs and rule permission, independent of current status."""
    if reason is None or not reason.strip():
        raise OverrideValidationError("reason", "an override reason is required")
    if actor_id is None:
        raise OverrideValidationError("actor_id", "an acting user is required")
    if not violation.allows_override:
        raise OverrideNotAllowedError(violation.violation_id, violation.rule_type.value)


@dataclass
class ReconcileResult:
    """Outcome of reconciling one run's findings with stored violations."""

    created: list[ComplianceViolation] = field(default_factory=list)
    resolved: list[ComplianceViolation] = field(default_factory=list)
    unchanged: list[ComplianceViolation] = field(default_factory=list)


def reconcile_violations(
    existing: Iterable[ComplianceViolation],
    findings: Iterable[ViolationFinding],
    restaurant_id: UUID,
    now: datetime | None = None,
    rule_types: Iterable[RuleType] | None = None,
) -> ReconcileResult:
    """Merge a run's findings into stored violations.

    - A finding whose fingerprint matches an active or overridden violation
      is already recorded: nothing is created.
    - An active violation with no matching finding is resolved.
    - Overridden violations stay overridden and suppress their occurrence.
    - A finding matching only resolved violations means the condition came
      back; a new active violation is created.

    When ``rule_types`` is given, only stored violations of those kinds are
    eligible for resolution (rules that were not evaluated stay untouched).
    Resolution mutates the passed violations in place.
    """
    now = now or datetime.now(timezone.utc)
    evaluated = None if rule_types is None else set(rule_types)
    result = ReconcileResult()

    open_by_fingerprint: dict[str, ComplianceViolation] = {}
    active: list[ComplianceViolation] = []
    for violation in existing:
        if violation.status == ViolationStatus.RESOLVED:
            continue
        open_by_fingerprint.setdefault(violation.fingerprint, violation)
        if violation.status == ViolationStatus.ACTIVE:
            active.append(violation)

    seen: set[str] = set()
    for finding in findings:
        if finding.fingerprint in seen:
            continue
        seen.add(finding.fingerprint)
        if finding.fingerprint in open_by_fingerprint:
            result.unchanged.append(open_by_fingerprint[finding.fingerprint])
            continue
        result.created.append(
            ComplianceViolation.from_finding(finding, restaurant_id, detected_at=now)
        )

    for violation in active:
        if violation.fingerprint in seen:
            continue
        if evaluated is not None and violation.rule_type not in evaluated:
            continue
        violation.resolve(now)
        result.resolved.append(violation)

    return result
