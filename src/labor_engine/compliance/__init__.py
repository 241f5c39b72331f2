"""Labor-law compliance rules, evaluation and violations."""

from labor_engine.compliance.evaluator import ComplianceEvaluator, EvaluationInvariantError
from labor_engine.compliance.rules import ComplianceRule, RuleConfigError, RuleType, parse_rule_config
from labor_engine.compliance.violations import (
    ComplianceViolation,
    Severity,
    ViolationFinding,
    ViolationStatus,
    reconcile_violations,
)

__all__ = [
    "ComplianceEvaluator",
    "EvaluationInvariantError",
    "ComplianceRule",
    "RuleConfigError",
    "RuleType",
    "parse_rule_config",
    "ComplianceViolation",
    "Severity",
    "ViolationFinding",
    "ViolationStatus",
    "reconcile_violations",
]
