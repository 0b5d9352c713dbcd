"""Tests for enrollment-date fee calculation."""

import asyncio
import calendar
from datetime import date
from decimal import Decimal

import pytest

from tuition_ledger.core.clock import fixed_clock
from tuition_ledger.core.exceptions import (
    DatabaseError,
    FeeStructureNotFoundError,
    InvalidEnrollmentDateError,
    InvalidFeeStructureError,
    StudentNotFoundError,
)
from tuition_ledger.models.schemas import CourseType, PaymentStatus
from tuition_ledger.services.fee_calculation_service import (
    FeeCalculationService,
    calculate_monthly_breakdown,
    enrollment_month_fee,
)

FEE = Decimal("500.00")


class TestEnrollmentMonthTiering:
    """Day-of-month tiers apply to the enrollment month only."""

    @pytest.mark.parametrize("day", range(1, 11))
    def test_days_1_to_10_full_fee(self, day: int) -> None:
        amount, reason = enrollment_month_fee(day, FEE)
        assert amount == FEE
        assert f"day {day}" in reason

    @pytest.mark.parametrize("day", range(11, 21))
    def test_days_11_to_20_half_fee(self, day: int) -> None:
        amount, reason = enrollment_month_fee(day, FEE)
        assert amount == Decimal("250.00")
        assert reason.startswith("Half monthly fee")

    @pytest.mark.parametrize("day", range(21, 32))
    def test_days_21_onwards_no_fee(self, day: int) -> None:
        amount, reason = enrollment_month_fee(day, FEE)
        assert amount == Decimal("0.00")
        assert f"day {day}" in reason

    def test_half_of_odd_fee_is_exact(self) -> None:
        amount, _ = enrollment_month_fee(15, Decimal("501.00"))
        assert amount == Decimal("250.50")

    @pytest.mark.parametrize("day", [1, 10, 11, 20, 21, 28])
    def test_later_months_always_full(self, day: int) -> None:
        breakdown = calculate_monthly_breakdown(date(2024, 2, day), FEE, date(2024, 6, 30))
        assert [e.amount for e in breakdown[1:]] == [FEE] * 4
        assert all(e.reason == "Regular monthly fee" for e in breakdown[1:])


class TestMonthlyBreakdown:
    def test_one_entry_per_month_inclusive(self) -> None:
        breakdown = calculate_monthly_breakdown(date(2025, 1, 5), FEE, date(2025, 3, 1))
        assert [(e.month, e.year) for e in breakdown] == [
            ("January", 2025), ("February", 2025), ("March", 2025)
        ]

    def test_crosses_year_boundary(self) -> None:
        breakdown = calculate_monthly_breakdown(date(2024, 11, 25), FEE, date(2025, 2, 10))
        assert [(e.month_number, e.year) for e in breakdown] == [
            (11, 2024), (12, 2024), (1, 2025), (2, 2025)
        ]
        assert breakdown[0].amount == Decimal("0.00")

    def test_last_day_of_month_enrollment(self) -> None:
        last = calendar.monthrange(2024, 2)[1]
        breakdown = calculate_monthly_breakdown(date(2024, 2, last), FEE, date(2024, 2, last))
        assert len(breakdown) == 1
        assert breakdown[0].amount == Decimal("0.00")


class TestCalculateRetroactiveFees:
    def test_scenario_full_fee_three_months(self, db, class_id, monthly_schedule) -> None:
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))
        result = asyncio.run(
            service.calculate_retroactive_fees(date(2025, 1, 5), class_id, CourseType.MONTHLY, False)
        )
        assert [(e.month, e.amount) for e in result.monthly_breakdown] == [
            ("January", FEE), ("February", FEE), ("March", FEE)
        ]
        assert "day 5" in result.monthly_breakdown[0].reason
        assert result.total_monthly_fees == Decimal("1500.00")
        assert result.admission_fee == Decimal("1000.00")
        assert result.total_due_amount == Decimal("2500.00")

    def test_scenario_half_fee_admission_paid(self, db, class_id, monthly_schedule) -> None:
        service = FeeCalculationService(db, fixed_clock(date(2025, 1, 31)))
        result = asyncio.run(
            service.calculate_retroactive_fees(date(2025, 1, 15), class_id, CourseType.MONTHLY, True)
        )
        assert len(result.monthly_breakdown) == 1
        assert result.monthly_breakdown[0].amount == Decimal("250.00")
        assert "day 15" in result.monthly_breakdown[0].reason
        assert result.admission_fee == Decimal("0.00")
        assert result.total_due_amount == Decimal("250.00")

    def test_scenario_late_enrollment_admission_only(self, db, class_id, monthly_schedule) -> None:
        service = FeeCalculationService(db, fixed_clock(date(2025, 1, 31)))
        result = asyncio.run(
            service.calculate_retroactive_fees(date(2025, 1, 25), class_id, CourseType.MONTHLY, False)
        )
        assert result.monthly_breakdown[0].amount == Decimal("0.00")
        assert "day 25" in result.monthly_breakdown[0].reason
        assert result.total_due_amount == Decimal("1000.00")

    @pytest.mark.parametrize("admission_fee_paid", [True, False])
    @pytest.mark.parametrize("day", [3, 14, 27])
    def test_total_is_breakdown_plus_unpaid_admission(
        self, db, class_id, monthly_schedule, admission_fee_paid: bool, day: int
    ) -> None:
        service = FeeCalculationService(db, fixed_clock(date(2025, 5, 20)))
        result = asyncio.run(
            service.calculate_retroactive_fees(date(2025, 2, day), class_id, "monthly", admission_fee_paid)
        )
        expected_admission = Decimal("0.00") if admission_fee_paid else Decimal("1000.00")
        assert result.total_monthly_fees == sum(e.amount for e in result.monthly_breakdown)
        assert result.total_due_amount == result.total_monthly_fees + expected_admission

    def test_yearly_course_is_flat_fee(self, db, class_id, yearly_schedule) -> None:
        service = FeeCalculationService(db, fixed_clock(date(2025, 6, 1)))
        result = asyncio.run(
            service.calculate_retroactive_fees(date(2025, 1, 25), class_id, CourseType.YEARLY, False)
        )
        assert len(result.monthly_breakdown) == 1
        assert result.total_monthly_fees == Decimal("5000.00")
        assert result.total_due_amount == Decimal("6000.00")

    def test_missing_schedule_is_fatal(self, db, class_id) -> None:
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))
        with pytest.raises(FeeStructureNotFoundError, match=class_id):
            asyncio.run(service.calculate_retroactive_fees(date(2025, 1, 5), class_id, "monthly"))

    def test_schedule_without_monthly_fee_is_rejected(self, db, class_id) -> None:
        db.seed("class_fees", class_id=class_id, course_type="monthly", admission_fee="100", monthly_fee=None)
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))
        with pytest.raises(InvalidFeeStructureError):
            asyncio.run(service.calculate_retroactive_fees(date(2025, 1, 5), class_id, "monthly"))

    def test_future_enrollment_rejected(self, db, class_id, monthly_schedule) -> None:
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))
        with pytest.raises(InvalidEnrollmentDateError):
            asyncio.run(service.calculate_retroactive_fees(date(2025, 3, 2), class_id, "monthly"))

    def test_calculation_writes_nothing(self, db, class_id, monthly_schedule) -> None:
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))
        asyncio.run(service.calculate_retroactive_fees(date(2025, 1, 5), class_id, "monthly"))
        assert db.writes == []


class TestCommittingFees:
    def test_update_student_fee_amounts(self, db, class_id, monthly_schedule, add_student) -> None:
        add_student("s1", pending="0.00")
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))

        async def scenario():
            result = await service.calculate_retroactive_fees(date(2025, 1, 5), class_id, "monthly")
            return await service.update_student_fee_amounts("s1", result)

        student = asyncio.run(scenario())
        assert student.total_fee_amount == Decimal("2500.00")
        assert student.pending_amount == Decimal("2500.00")
        assert student.paid_amount == Decimal("0.00")
        assert student.payment_status == PaymentStatus.PENDING
        row = db.rows("students")[0]
        assert row["pending_amount"] == "2500.00"
        assert row["payment_status"] == "pending"

    def test_zero_due_is_paid(self, db, class_id, monthly_schedule, add_student) -> None:
        add_student("s1")
        service = FeeCalculationService(db, fixed_clock(date(2025, 1, 31)))

        async def scenario():
            result = await service.calculate_retroactive_fees(date(2025, 1, 25), class_id, "monthly", True)
            return await service.update_student_fee_amounts("s1", result)

        student = asyncio.run(scenario())
        assert student.pending_amount == Decimal("0.00")
        assert student.payment_status == PaymentStatus.PAID

    def test_commit_marks_every_billed_month_charged(self, db, class_id, monthly_schedule, add_student) -> None:
        add_student("s1")
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))

        async def scenario():
            result = await service.calculate_retroactive_fees(date(2025, 1, 25), class_id, "monthly")
            await service.update_student_fee_amounts("s1", result)

        asyncio.run(scenario())
        markers = db.rows("fee_accruals")
        assert [(m["student_id"], m["period"], m["amount"], m["source"]) for m in markers] == [
            ("s1", "2025-01", "0.00", "calculation"),
            ("s1", "2025-02", "500.00", "calculation"),
            ("s1", "2025-03", "500.00", "calculation"),
        ]

    def test_yearly_commit_writes_no_markers(self, db, class_id, yearly_schedule, add_student) -> None:
        add_student("s1", course_type="yearly")
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))
        asyncio.run(service.recalculate_student_fees("s1"))
        assert db.rows("fee_accruals") == []

    def test_marker_write_failure_propagates(self, db, class_id, monthly_schedule, add_student) -> None:
        add_student("s1")
        db.failing_inserts.add("fee_accruals")
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))
        with pytest.raises(DatabaseError):
            asyncio.run(service.recalculate_student_fees("s1"))

    def test_recalculation_keeps_paid_amount(self, db, class_id, monthly_schedule, add_student) -> None:
        add_student("s1", total="1500.00", paid="1200.00", pending="300.00")
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))

        student, result = asyncio.run(service.recalculate_student_fees("s1"))

        assert result.total_due_amount == Decimal("2500.00")
        assert student.paid_amount == Decimal("1200.00")
        assert student.pending_amount == Decimal("1300.00")

    def test_recalculation_twice_writes_each_marker_once(self, db, class_id, monthly_schedule, add_student) -> None:
        add_student("s1")
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))
        asyncio.run(service.recalculate_student_fees("s1"))
        asyncio.run(service.recalculate_student_fees("s1"))
        assert sorted(m["period"] for m in db.rows("fee_accruals")) == ["2025-01", "2025-02", "2025-03"]

    def test_recalculation_unknown_student(self, db) -> None:
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))
        with pytest.raises(StudentNotFoundError):
            asyncio.run(service.recalculate_student_fees("missing"))

    def test_recalculation_without_enrollment_date(self, db, monthly_schedule, add_student) -> None:
        row = add_student("s1")
        row["enrollment_date"] = None
        service = FeeCalculationService(db, fixed_clock(date(2025, 3, 1)))
        with pytest.raises(InvalidEnrollmentDateError):
            asyncio.run(service.recalculate_student_fees("s1"))

    def test_registration_fee_fields(self, db, class_id, monthly_schedule) -> None:
        service = FeeCalculationService(db, fixed_clock(date(2025, 1, 31)))
        result, columns = asyncio.run(
            service.build_registration_fee_fields(date(2025, 1, 15), class_id, "monthly", True)
        )
        assert result.total_due_amount == Decimal("250.00")
        assert columns == {
            "total_fee_amount": "250.00",
            "paid_amount": "0.00",
            "pending_amount": "250.00",
            "payment_status": "pending",
        }
