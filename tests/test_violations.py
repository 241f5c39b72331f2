"""Tests for violation records, overrides and reconciliation."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from labor_engine.compliance.rules import RuleType
from labor_engine.compliance.violations import (
    ComplianceViolation,
    OverrideConflictError,
    OverrideNotAllowedError,
    OverrideValidationError,
    Severity,
    ViolationFinding,
    ViolationStatus,
    finding_fingerprint,
    reconcile_violations,
)

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_finding(employee_id=None, scope=("2024-03-04",), rule_type=RuleType.OVERTIME, details=None):
    employee_id = employee_id or uuid4()
    return ViolationFinding(
        rule_type=rule_type,
        check="weekly_overtime",
        severity=Severity.WARNING,
        employee_id=employee_id,
        message="Scheduled over threshold",
        fingerprint=finding_fingerprint(rule_type, "weekly_overtime", employee_id, scope),
        details={"check": "weekly_overtime", **(details or {})},
    )


class TestFingerprint:
    """Fingerprints identify one occurrence."""

    def test_deterministic(self):
        eid = uuid4()
        assert finding_fingerprint(RuleType.REST_PERIOD, "rest_period", eid, ["a", "b"]) == (
            finding_fingerprint(RuleType.REST_PERIOD, "rest_period", eid, ["a", "b"])
        )

    def test_scope_changes_fingerprint(self):
        eid = uuid4()
        assert finding_fingerprint(RuleType.OVERTIME, "weekly_overtime", eid, ["2024-03-04"]) != (
            finding_fingerprint(RuleType.OVERTIME, "weekly_overtime", eid, ["2024-03-11"])
        )


class TestOverride:
    """In-memory override transitions."""

    def test_override_active(self):
        violation = ComplianceViolation.from_finding(make_finding(), uuid4(), NOW)
        actor = uuid4()

        violation.override("  Approved coverage gap ", actor, at=NOW)

        assert violation.status == ViolationStatus.OVERRIDDEN
        assert violation.override_reason == "Approved coverage gap"
        assert violation.overridden_by == actor
        assert violation.overridden_at == NOW

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, reason):
        violation = ComplianceViolation.from_finding(make_finding(), uuid4(), NOW)

        with pytest.raises(OverrideValidationError) as exc_info:
            violation.override(reason, uuid4())

        assert exc_info.value.field_name == "reason"
        assert violation.status == ViolationStatus.ACTIVE

    def test_actor_required(self):
        violation = ComplianceViolation.from_finding(make_finding(), uuid4(), NOW)

        with pytest.raises(OverrideValidationError) as exc_info:
            violation.override("ok", None)

        assert exc_info.value.field_name == "actor_id"

    def test_rule_disallows_override(self):
        finding = make_finding(rule_type=RuleType.REST_PERIOD, details={"allow_override": False})
        violation = ComplianceViolation.from_finding(finding, uuid4(), NOW)

        with pytest.raises(OverrideNotAllowedError):
            violation.override("Manager approved", uuid4())

    def test_second_override_conflicts(self):
        violation = ComplianceViolation.from_finding(make_finding(), uuid4(), NOW)
        violation.override("first", uuid4())

        with pytest.raises(OverrideConflictError) as exc_info:
            violation.override("second", uuid4())

        assert exc_info.value.current_status == "overridden"

    def test_resolve_only_from_active(self):
        violation = ComplianceViolation.from_finding(make_finding(), uuid4(), NOW)
        violation.override("ok", uuid4())

        with pytest.raises(ValueError):
            violation.resolve(NOW)


class TestReconcile:
    """Merging a run's findings into recorded violations."""

    def test_new_findings_created_active(self):
        restaurant_id = uuid4()
        finding = make_finding()

        result = reconcile_violations([], [finding], restaurant_id, now=NOW)

        assert len(result.created) == 1
        created = result.created[0]
        assert created.status == ViolationStatus.ACTIVE
        assert created.restaurant_id == restaurant_id
        assert created.fingerprint == finding.fingerprint
        assert created.detected_at == NOW

    def test_recorded_active_not_duplicated(self):
        finding = make_finding()
        existing = ComplianceViolation.from_finding(finding, uuid4(), NOW)

        result = reconcile_violations([existing], [finding], existing.restaurant_id, now=NOW)

        assert result.created == []
        assert result.unchanged == [existing]
        assert result.resolved == []

    def test_duplicate_findings_in_one_run_created_once(self):
        finding = make_finding()

        result = reconcile_violations([], [finding, finding], uuid4(), now=NOW)

        assert len(result.created) == 1

    def test_missing_condition_resolves_active(self):
        existing = ComplianceViolation.from_finding(make_finding(), uuid4(), NOW)

        result = reconcile_violations([existing], [], existing.restaurant_id, now=NOW)

        assert result.resolved == [existing]
        assert existing.status == ViolationStatus.RESOLVED
        assert existing.resolved_at == NOW

    def test_overridden_suppresses_and_is_never_resolved(self):
        finding = make_finding()
        overridden = ComplianceViolation.from_finding(finding, uuid4(), NOW)
        overridden.override("Approved", uuid4())

        still_there = reconcile_violations([overridden], [finding], overridden.restaurant_id)
        gone = reconcile_violations([overridden], [], overridden.restaurant_id)

        assert still_there.created == []
        assert gone.resolved == []
        assert overridden.status == ViolationStatus.OVERRIDDEN

    def test_recurrence_after_resolution_creates_new(self):
        finding = make_finding()
        resolved = ComplianceViolation.from_finding(finding, uuid4(), NOW)
        resolved.resolve(NOW)

        result = reconcile_violations([resolved], [finding], resolved.restaurant_id, now=NOW)

        assert len(result.created) == 1
        assert result.created[0].violation_id != resolved.violation_id

    def test_unevaluated_rule_types_left_alone(self):
        existing = ComplianceViolation.from_finding(make_finding(), uuid4(), NOW)

        result = reconcile_violations(
            [existing], [], existing.restaurant_id, now=NOW, rule_types={RuleType.REST_PERIOD}
        )

        assert result.resolved == []
        assert existing.status == ViolationStatus.ACTIVE
