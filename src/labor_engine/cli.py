"""Labor Engine Command Line Interface.

Offline runs against JSON input files, plus schema creation:
- Pay period calculation
- Compliance evaluation
- Tip pool split

Usage:
    python -m labor_engine.cli payroll --input period.json
    python -m labor_engine.cli evaluate --input schedule.json
    python -m labor_engine.cli split --input tips.json
    python -m labor_engine.cli init-db

Results are written to stdout as JSON. Exit code is 0 on success, 1 on error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable
from uuid import UUID

from pydantic import BaseModel

from labor_engine.api.schemas import (
    DistributeRequest,
    EmployeeIn,
    PayrollRequest,
    PayrollResponse,
    RuleCreate,
    ShiftIn,
)
from labor_engine.calculators import PayPeriodEngine
from labor_engine.compliance.evaluator import ComplianceEvaluator, EvaluationInvariantError
from labor_engine.compliance.rules import ComplianceRule
from labor_engine.compliance.violations import ViolationFinding
from labor_engine.config import get_settings
from labor_engine.database import create_schema, dispose_db
from labor_engine.tips.distributor import PeriodLockedError, TipPoolDistributor

logger = logging.getLogger(__name__)

NIL_UUID = UUID(int=0)


class EvaluateInput(BaseModel):
    """Input file for the evaluate command."""

    restaurant_id: UUID = NIL_UUID
    rules: list[RuleCreate]
    employees: list[EmployeeIn]
    shifts: list[ShiftIn]


class SplitInput(DistributeRequest):
    """Input file for the split command."""

    period_key: str


def finding_to_dict(finding: ViolationFinding) -> dict[str, Any]:
    return {
        "rule_type": finding.rule_type.value,
        "check": finding.check,
        "severity": finding.severity.value,
        "employee_id": str(finding.employee_id),
        "shift_id": None if finding.shift_id is None else str(finding.shift_id),
        "message": finding.message,
        "fingerprint": finding.fingerprint,
        "details": finding.details,
    }


class LaborCli:
    """Labor Engine Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m labor_engine.cli",
            description="Restaurant labor payroll and compliance tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        payroll = subparsers.add_parser(
            "payroll",
            help="Calculate tiered hours and pay for a pay period",
        )
        payroll.add_argument(
            "--input",
            type=Path,
            required=True,
            help="JSON file with period dates, employees, punches, rules, adjustments, tips",
        )

        evaluate = subparsers.add_parser(
            "evaluate",
            help="Evaluate compliance rules against a schedule",
        )
        evaluate.add_argument(
            "--input",
            type=Path,
            required=True,
            help="JSON file with rules, employees and shifts",
        )

        split = subparsers.add_parser(
            "split",
            help="Split a tip pool for one period",
        )
        split.add_argument(
            "--input",
            type=Path,
            required=True,
            help="JSON file with period_key, total_cents, participants and settings",
        )

        subparsers.add_parser(
            "init-db",
            help="Create database tables",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "payroll": self._cmd_payroll,
            "evaluate": self._cmd_evaluate,
            "split": self._cmd_split,
            "init-db": self._cmd_init_db,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except (OSError, ValueError, EvaluationInvariantError, PeriodLockedError) as e:
            # pydantic.ValidationError and json.JSONDecodeError are ValueErrors
            logger.debug("Command %s failed", parsed.command, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1

    @staticmethod
    def _load(path: Path) -> Any:
        with path.open(encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _emit(payload: Any) -> None:
        json.dump(payload, sys.stdout, indent=2, sort_keys=True)
        sys.stdout.write("\n")

    def _cmd_payroll(self, args: argparse.Namespace) -> int:
        """Calculate a pay period."""
        request = PayrollRequest.model_validate(self._load(args.input))
        summary = PayPeriodEngine().calculate_period(
            employees=[e.to_domain() for e in request.employees],
            punches=[p.to_domain() for p in request.punches],
            rules=request.rules.to_domain(),
            period_start=request.period_start,
            period_end=request.period_end,
            adjustments=[a.to_domain() for a in request.adjustments],
            tips_cents=request.tips_cents,
        )
        self._emit(PayrollResponse.from_summary(summary).model_dump(mode="json"))
        return 0 if summary.error_count == 0 else 1

    def _cmd_evaluate(self, args: argparse.Namespace) -> int:
        """Evaluate compliance rules."""
        data = EvaluateInput.model_validate(self._load(args.input))
        rules = [
            ComplianceRule.from_raw(
                rule_id=UUID(int=i + 1),
                restaurant_id=data.restaurant_id,
                rule_type=r.rule_type,
                raw_config=r.config,
                enabled=r.enabled,
            )
            for i, r in enumerate(data.rules)
        ]
        findings = ComplianceEvaluator().evaluate(
            rules,
            [e.to_domain() for e in data.employees],
            [s.to_domain() for s in data.shifts],
        )
        self._emit({"findings": [finding_to_dict(f) for f in findings], "total": len(findings)})
        return 0

    def _cmd_split(self, args: argparse.Namespace) -> int:
        """Split a tip pool."""
        data = SplitInput.model_validate(self._load(args.input))
        distributor = TipPoolDistributor(data.settings.to_domain())
        split = distributor.distribute(
            data.period_key,
            data.total_cents,
            [p.to_domain() for p in data.participants],
        )
        self._emit(
            {
                "period_key": split.period_key,
                "total_cents": split.total_cents,
                "share_method": split.share_method.value,
                "shares": [s.to_dict() for s in split.shares],
            }
        )
        return 0

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create database tables."""

        async def _create() -> None:
            try:
                await create_schema()
            finally:
                await dispose_db()

        asyncio.run(_create())
        print("Schema created.", file=sys.stderr)
        return 0


def main() -> None:
    """CLI entry point."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    cli = LaborCli()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
