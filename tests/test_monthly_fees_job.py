"""Tests for the cron entry point."""

import asyncio
import json

from tuition_ledger.jobs import monthly_fees


def test_run_returns_json_summary(db, monthly_schedule, add_student) -> None:
    add_student("s1")
    summary = asyncio.run(monthly_fees.run(preview=False, period="2025-03", db=db))
    assert summary["period"] == "2025-03"
    assert summary["students_updated"] == 1
    assert summary["total_fees_added"] == "500.00"
    json.dumps(summary)


def test_preview_writes_nothing(db, monthly_schedule, add_student) -> None:
    add_student("s1")
    summary = asyncio.run(monthly_fees.run(preview=True, period="2025-03", db=db))
    assert summary["students_to_update"] == 1
    assert db.writes == []


def test_main_exits_nonzero_on_bad_period(monkeypatch) -> None:
    async def failing_run(preview, period, db=None):
        raise ValueError(f"Invalid accrual period '{period}', expected YYYY-MM")

    monkeypatch.setattr(monthly_fees, "run", failing_run)
    assert monthly_fees.main(["--period", "bogus"]) == 1


def test_main_prints_summary(monkeypatch, capsys) -> None:
    async def fake_run(preview, period, db=None):
        return {"period": period, "students_to_update": 0, "preview": preview}

    monkeypatch.setattr(monthly_fees, "run", fake_run)
    assert monthly_fees.main(["--preview", "--period", "2025-03"]) == 0
    assert json.loads(capsys.readouterr().out) == {
        "period": "2025-03", "students_to_update": 0, "preview": True
    }
