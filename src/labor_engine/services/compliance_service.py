"""Compliance service - rule storage, evaluation runs and overrides."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from labor_engine.calculators.types import Employee, Shift
from labor_engine.compliance.evaluator import ComplianceEvaluator
from labor_engine.compliance.rules import (
    ComplianceRule,
    RuleType,
    config_to_dict,
    parse_rule_config,
)
from labor_engine.compliance.violations import (
    ComplianceViolation,
    OverrideConflictError,
    ReconcileResult,
    Severity,
    ViolationStatus,
    validate_override,
)
from labor_engine.models import ComplianceRuleRecord, ComplianceViolationRecord
from labor_engine.services.audit import record_audit
from labor_engine.services.state_machine import ViolationStateMachine

logger = logging.getLogger(__name__)


class RuleNotFoundError(LookupError):
    """Raised when a rule does not exist for the restaurant."""


class ViolationNotFoundError(LookupError):
    """Raised when a violation does not exist for the restaurant."""


def rule_from_record(record: ComplianceRuleRecord) -> ComplianceRule:
    return ComplianceRule.from_raw(
        rule_id=record.rule_id,
        restaurant_id=record.restaurant_id,
        rule_type=record.rule_type,
        raw_config=record.rule_config,
        enabled=record.enabled,
    )


def violation_from_record(record: ComplianceViolationRecord) -> ComplianceViolation:
    return ComplianceViolation(
        violation_id=record.violation_id,
        restaurant_id=record.restaurant_id,
        rule_type=RuleType(record.rule_type),
        severity=Severity(record.severity),
        employee_id=record.employee_id,
        shift_id=record.shift_id,
        message=record.message,
        details=dict(record.details or {}),
        fingerprint=record.fingerprint,
        status=ViolationStatus(record.status),
        detected_at=record.detected_at,
        override_reason=record.override_reason,
        overridden_by=record.overridden_by,
        overridden_at=record.overridden_at,
        resolved_at=record.resolved_at,
    )


def record_from_violation(violation: ComplianceViolation) -> ComplianceViolationRecord:
    return ComplianceViolationRecord(
        violation_id=violation.violation_id,
        restaurant_id=violation.restaurant_id,
        rule_type=violation.rule_type.value,
        severity=violation.severity.value,
        employee_id=violation.employee_id,
        shift_id=violation.shift_id,
        message=violation.message,
        details=violation.details,
        fingerprint=violation.fingerprint,
        status=violation.status.value,
        detected_at=violation.detected_at,
    )


class ComplianceService:
    """Service for the compliance persistence boundary.

    Operations:
    - save_rule / update_rule: validate config before it is stored
    - run_evaluation: evaluate enabled rules and persist created/resolved
    - override_violation: compare-and-set active → overridden
    """

    def __init__(self, session: AsyncSession, evaluator: ComplianceEvaluator | None = None):
        self.session = session
        self.evaluator = evaluator or ComplianceEvaluator()

    # Rules

    async def save_rule(
        self,
        restaurant_id: UUID,
        rule_type: RuleType | str,
        config: dict[str, Any],
        enabled: bool = True,
        actor_id: UUID | None = None,
    ) -> ComplianceRuleRecord:
        """Validate and store a new rule. Raises RuleConfigError."""
        parsed = parse_rule_config(rule_type, config)
        record = ComplianceRuleRecord(
            restaurant_id=restaurant_id,
            rule_type=RuleType(rule_type).value,
            rule_config=config_to_dict(parsed),
            enabled=enabled,
        )
        self.session.add(record)
        await self.session.flush()
        await record_audit(
            self.session,
            restaurant_id,
            "compliance_rule",
            record.rule_id,
            "created",
            actor_id,
            {"rule_type": record.rule_type, "config": record.rule_config, "enabled": enabled},
        )
        logger.info("Saved %s rule %s for restaurant %s", record.rule_type, record.rule_id, restaurant_id)
        return record

    async def update_rule(
        self,
        restaurant_id: UUID,
        rule_id: UUID,
        config: dict[str, Any] | None = None,
        enabled: bool | None = None,
        actor_id: UUID | None = None,
    ) -> ComplianceRuleRecord:
        """Explicit rule update; a new config is re-validated."""
        record = await self.get_rule(restaurant_id, rule_id)
        if record is None:
            raise RuleNotFoundError(f"Rule {rule_id} not found")

        before = {"config": record.rule_config, "enabled": record.enabled}
        if config is not None:
            record.rule_config = config_to_dict(parse_rule_config(record.rule_type, config))
        if enabled is not None:
            record.enabled = enabled
        record.updated_at = datetime.now(timezone.utc)
        await self.session.flush()

        await record_audit(
            self.session,
            restaurant_id,
            "compliance_rule",
            rule_id,
            "updated",
            actor_id,
            {"before": before, "after": {"config": record.rule_config, "enabled": record.enabled}},
        )
        return record

    async def get_rule(self, restaurant_id: UUID, rule_id: UUID) -> ComplianceRuleRecord | None:
        result = await self.session.execute(
            select(ComplianceRuleRecord).where(
                ComplianceRuleRecord.restaurant_id == restaurant_id,
                ComplianceRuleRecord.rule_id == rule_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_rules(
        self,
        restaurant_id: UUID,
        enabled_only: bool = False,
    ) -> list[ComplianceRuleRecord]:
        query = select(ComplianceRuleRecord).where(
            ComplianceRuleRecord.restaurant_id == restaurant_id
        )
        if enabled_only:
            query = query.where(ComplianceRuleRecord.enabled.is_(True))
        result = await self.session.execute(query.order_by(ComplianceRuleRecord.created_at))
        return list(result.scalars().all())

    # Evaluation

    async def run_evaluation(
        self,
        restaurant_id: UUID,
        employees: Iterable[Employee],
        shifts: Iterable[Shift],
        actor_id: UUID | None = None,
        now: datetime | None = None,
    ) -> ReconcileResult:
        """Evaluate enabled rules and persist the reconciliation."""
        now = now or datetime.now(timezone.utc)
        rules = [rule_from_record(r) for r in await self.list_rules(restaurant_id, enabled_only=True)]

        existing_records = await self.list_violations(restaurant_id)
        existing = [violation_from_record(r) for r in existing_records]

        result = self.evaluator.evaluate_and_reconcile(
            rules, employees, shifts, existing, restaurant_id, now=now
        )

        for violation in result.created:
            self.session.add(record_from_violation(violation))

        resolved: list[ComplianceViolation] = []
        for violation in result.resolved:
            update_result = await self.session.execute(
                update(ComplianceViolationRecord)
                .where(
                    ComplianceViolationRecord.violation_id == violation.violation_id,
                    ComplianceViolationRecord.status == ViolationStatus.ACTIVE.value,
                )
                .values(status=ViolationStatus.RESOLVED.value, resolved_at=now)
            )
            if update_result.rowcount == 0:
                logger.warning(
                    "Violation %s changed status during evaluation; not resolved",
                    violation.violation_id,
                )
                continue
            resolved.append(violation)
        result.resolved = resolved

        await self.session.flush()
        await record_audit(
            self.session,
            restaurant_id,
            "compliance_evaluation",
            restaurant_id,
            "evaluated",
            actor_id,
            {
                "rules": len(rules),
                "created": [str(v.violation_id) for v in result.created],
                "resolved": [str(v.violation_id) for v in result.resolved],
                "unchanged": len(result.unchanged),
            },
        )
        return result

    # Violations

    async def get_violation(
        self,
        restaurant_id: UUID,
        violation_id: UUID,
    ) -> ComplianceViolationRecord | None:
        result = await self.session.execute(
            select(ComplianceViolationRecord).where(
                ComplianceViolationRecord.restaurant_id == restaurant_id,
                ComplianceViolationRecord.violation_id == violation_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_violations(
        self,
        restaurant_id: UUID,
        status: ViolationStatus | str | None = None,
        employee_id: UUID | None = None,
    ) -> list[ComplianceViolationRecord]:
        query = select(ComplianceViolationRecord).where(
            ComplianceViolationRecord.restaurant_id == restaurant_id
        )
        if status is not None:
            query = query.where(ComplianceViolationRecord.status == ViolationStatus(status).value)
        if employee_id is not None:
            query = query.where(ComplianceViolationRecord.employee_id == employee_id)
        result = await self.session.execute(
            query.order_by(
                ComplianceViolationRecord.detected_at, ComplianceViolationRecord.fingerprint
            )
        )
        return list(result.scalars().all())

    async def override_violation(
        self,
        restaurant_id: UUID,
        violation_id: UUID,
        reason: str | None,
        actor_id: UUID | None,
    ) -> ComplianceViolationRecord:
        """Override an active violation.

        The status check and the write are one conditional UPDATE, so of two
        concurrent overrides exactly one succeeds; the other gets
        OverrideConflictError.
        """
        record = await self.get_violation(restaurant_id, violation_id)
        if record is None:
            raise ViolationNotFoundError(f"Violation {violation_id} not found")

        validate_override(violation_from_record(record), reason, actor_id)
        if not ViolationStateMachine.can_transition(record.status, ViolationStatus.OVERRIDDEN):
            raise OverrideConflictError(violation_id, record.status)

        overridden_at = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(ComplianceViolationRecord)
            .where(
                ComplianceViolationRecord.violation_id == violation_id,
                ComplianceViolationRecord.restaurant_id == restaurant_id,
                ComplianceViolationRecord.status == ViolationStatus.ACTIVE.value,
            )
            .values(
                status=ViolationStatus.OVERRIDDEN.value,
                override_reason=reason.strip(),
                overridden_by=actor_id,
                overridden_at=overridden_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.refresh(record)
            logger.warning(
                "Override of violation %s lost: status is %s", violation_id, record.status
            )
            raise OverrideConflictError(violation_id, record.status)

        await self.session.refresh(record)
        await record_audit(
            self.session,
            restaurant_id,
            "compliance_violation",
            violation_id,
            "overridden",
            actor_id,
            {"reason": record.override_reason, "rule_type": record.rule_type},
        )
        logger.info("Violation %s overridden by %s", violation_id, actor_id)
        return record
