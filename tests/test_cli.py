"""Tests for the command line interface."""

import json
from uuid import uuid4

from labor_engine.cli import LaborCli


def write(tmp_path, name, payload):
    path = tmp_path / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


class TestPayrollCommand:
    def test_outputs_summary(self, tmp_path, capsys):
        employee_id = str(uuid4())
        punches = [
            {"employee_id": employee_id, "punch_time": "2024-03-04T09:00:00", "punch_type": "clock_in"},
            {"employee_id": employee_id, "punch_time": "2024-03-04T17:00:00", "punch_type": "clock_out"},
        ]
        path = write(
            tmp_path,
            "period.json",
            {
                "period_start": "2024-03-04",
                "period_end": "2024-03-10",
                "employees": [{"employee_id": employee_id, "name": "Alex", "hourly_rate_cents": 1500}],
                "punches": punches,
            },
        )

        code = LaborCli().run(["payroll", "--input", path])

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["total_pay_cents"] == 12000
        assert output["results"][0]["employee_id"] == employee_id

    def test_missing_file(self, tmp_path, capsys):
        code = LaborCli().run(["payroll", "--input", str(tmp_path / "missing.json")])

        assert code == 1
        assert "Error" in capsys.readouterr().err

    def test_invalid_input(self, tmp_path):
        path = write(tmp_path, "period.json", {"period_start": "2024-03-04"})

        assert LaborCli().run(["payroll", "--input", path]) == 1


class TestEvaluateCommand:
    def test_outputs_findings(self, tmp_path, capsys):
        employee_id = str(uuid4())
        path = write(
            tmp_path,
            "schedule.json",
            {
                "rules": [{"rule_type": "rest_period", "config": {"min_hours_between_shifts": 11}}],
                "employees": [{"employee_id": employee_id, "name": "Alex"}],
                "shifts": [
                    {
                        "shift_id": str(uuid4()),
                        "employee_id": employee_id,
                        "start_time": "2024-03-04T15:00:00",
                        "end_time": "2024-03-04T23:00:00",
                    },
                    {
                        "shift_id": str(uuid4()),
                        "employee_id": employee_id,
                        "start_time": "2024-03-05T08:00:00",
                        "end_time": "2024-03-05T16:00:00",
                    },
                ],
            },
        )

        code = LaborCli().run(["evaluate", "--input", path])

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["total"] == 1
        assert output["findings"][0]["check"] == "rest_period"

    def test_bad_rule_config(self, tmp_path):
        path = write(
            tmp_path,
            "schedule.json",
            {
                "rules": [{"rule_type": "overtime", "config": {"weekly_threshold": 0}}],
                "employees": [],
                "shifts": [],
            },
        )

        assert LaborCli().run(["evaluate", "--input", path]) == 1


class TestSplitCommand:
    def test_outputs_shares(self, tmp_path, capsys):
        path = write(
            tmp_path,
            "tips.json",
            {
                "period_key": "2024-03-04",
                "total_cents": 1001,
                "participants": [
                    {"employee_id": str(uuid4()), "hours": "5"},
                    {"employee_id": str(uuid4()), "hours": "5"},
                    {"employee_id": str(uuid4()), "hours": "5"},
                ],
            },
        )

        code = LaborCli().run(["split", "--input", path])

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert [s["amount_cents"] for s in output["shares"]] == [334, 334, 333]


class TestNoCommand:
    def test_prints_help(self, capsys):
        assert LaborCli().run([]) == 1
        assert "usage" in capsys.readouterr().out
