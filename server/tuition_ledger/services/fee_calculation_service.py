"""
tuition_ledger/services/fee_calculation_service.py
Retroactive fee calculation from a student's enrollment date.

Only the enrollment month is tiered by day of month:

    day 1-10   full monthly fee
    day 11-20  half the monthly fee
    day 21+    no fee

Every later month up to and including the current month is charged the full
monthly fee. Yearly courses are charged their flat yearly fee once.
"""
import calendar
import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from tuition_ledger.core.clock import Clock, accrual_period, system_clock
from tuition_ledger.core.exceptions import (
    DuplicateRecordError,
    FeeStructureNotFoundError,
    InvalidEnrollmentDateError,
    InvalidFeeStructureError,
    StudentNotFoundError,
)
from tuition_ledger.db.supabase import SupabaseQueries
from tuition_ledger.models.schemas import (
    CENTS,
    ClassFeeSchedule,
    CourseType,
    FeeCalculationResult,
    MonthlyBreakdownEntry,
    StudentBalance,
)
from tuition_ledger.services import ledger

logger = logging.getLogger(__name__)

FULL_FEE_LAST_DAY = 10
HALF_FEE_LAST_DAY = 20


def enrollment_month_fee(enrollment_day: int, monthly_fee: Decimal) -> Tuple[Decimal, str]:
    """Amount and reason for the month the student enrolled in"""
    if enrollment_day <= FULL_FEE_LAST_DAY:
        return (
            monthly_fee,
            f"Full monthly fee - enrolled on day {enrollment_day} (1st-10th: full fee)",
        )
    if enrollment_day <= HALF_FEE_LAST_DAY:
        return (
            (monthly_fee / 2).quantize(CENTS, rounding=ROUND_HALF_UP),
            f"Half monthly fee - enrolled on day {enrollment_day} (11th-20th: half fee)",
        )
    return (
        Decimal("0.00"),
        f"No fee - enrolled on day {enrollment_day} (21st onwards: no fee for enrollment month)",
    )


def calculate_monthly_breakdown(
    enrollment_date: date,
    monthly_fee: Decimal,
    today: date,
) -> List[MonthlyBreakdownEntry]:
    """
    One entry per calendar month from the enrollment month through the month of ``today``

    Args:
        enrollment_date: Day the student enrolled
        monthly_fee: Full monthly fee from the class fee schedule
        today: Reference date for "current month"

    Returns:
        list: Breakdown entries, oldest first; empty if enrollment is after today's month
    """
    breakdown: List[MonthlyBreakdownEntry] = []
    year, month = enrollment_date.year, enrollment_date.month

    while (year, month) <= (today.year, today.month):
        if (year, month) == (enrollment_date.year, enrollment_date.month):
            amount, reason = enrollment_month_fee(enrollment_date.day, monthly_fee)
        else:
            amount, reason = monthly_fee, "Regular monthly fee"

        breakdown.append(MonthlyBreakdownEntry(
            month=calendar.month_name[month],
            month_number=month,
            year=year,
            amount=amount,
            reason=reason,
        ))
        logger.debug(f"{calendar.month_name[month]} {year}: {amount} ({reason})")

        month += 1
        if month > 12:
            year, month = year + 1, 1

    return breakdown


def calculate_from_schedule(
    schedule: ClassFeeSchedule,
    enrollment_date: date,
    admission_fee_paid: bool,
    today: date,
) -> FeeCalculationResult:
    """Pure fee calculation against an already-resolved fee schedule"""
    if schedule.course_type == CourseType.YEARLY:
        # Flat charge, no day-of-month tiering for yearly courses
        breakdown = [MonthlyBreakdownEntry(
            month=calendar.month_name[enrollment_date.month],
            month_number=enrollment_date.month,
            year=enrollment_date.year,
            amount=schedule.yearly_fee,
            reason="Yearly course fee (flat, charged once)",
        )]
    else:
        breakdown = calculate_monthly_breakdown(enrollment_date, schedule.monthly_fee, today)

    total_monthly_fees = sum((entry.amount for entry in breakdown), Decimal("0.00"))
    admission_fee = Decimal("0.00") if admission_fee_paid else schedule.admission_fee

    return FeeCalculationResult(
        total_due_amount=total_monthly_fees + admission_fee,
        monthly_breakdown=breakdown,
        admission_fee=admission_fee,
        total_monthly_fees=total_monthly_fees,
    )


class FeeCalculationService:
    """Computes and commits a student's enrollment-to-date fee totals"""

    def __init__(self, db: SupabaseQueries, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    async def get_class_fee(self, class_id: str, course_type: CourseType) -> Optional[ClassFeeSchedule]:
        """
        Look up the fee schedule for a class and course type

        Returns:
            ClassFeeSchedule: The schedule, None if no row exists

        Raises:
            InvalidFeeStructureError: If the row lacks the fee its course type needs
        """
        course_type = CourseType(course_type)
        row = await self.db.select_one(
            "class_fees",
            {"class_id": class_id, "course_type": course_type.value}
        )
        if not row:
            return None
        try:
            return ClassFeeSchedule.model_validate(row)
        except ValidationError as e:
            raise InvalidFeeStructureError(
                f"Fee structure for class {class_id} ({course_type.value}) is incomplete: {e}"
            )

    async def calculate_retroactive_fees(
        self,
        enrollment_date: date,
        class_id: str,
        course_type: CourseType,
        admission_fee_paid: bool = False,
    ) -> FeeCalculationResult:
        """
        Calculate total due from enrollment through the current month

        Raises:
            InvalidEnrollmentDateError: If enrollment_date is after today
            FeeStructureNotFoundError: If no schedule exists for (class_id, course_type)
            InvalidFeeStructureError: If the schedule is incomplete
        """
        course_type = CourseType(course_type)
        today = self.clock()
        logger.info(
            f"Starting retroactive fee calculation: enrollment={enrollment_date.isoformat()}, "
            f"class={class_id}, course_type={course_type.value}, admission_fee_paid={admission_fee_paid}"
        )

        if enrollment_date > today:
            raise InvalidEnrollmentDateError(
                f"Enrollment date {enrollment_date.isoformat()} is in the future"
            )

        schedule = await self.get_class_fee(class_id, course_type)
        if schedule is None:
            raise FeeStructureNotFoundError(class_id, course_type.value)

        result = calculate_from_schedule(schedule, enrollment_date, admission_fee_paid, today)

        logger.info(
            f"Fee calculation complete: total_due={result.total_due_amount}, "
            f"admission_fee={result.admission_fee}, monthly_fees={result.total_monthly_fees}, "
            f"months={len(result.monthly_breakdown)}"
        )
        return result

    async def build_registration_fee_fields(
        self,
        enrollment_date: date,
        class_id: str,
        course_type: CourseType,
        admission_fee_paid: bool = False,
    ) -> Tuple[FeeCalculationResult, Dict[str, Any]]:
        """
        Fee calculation plus the balance columns for a new students row

        The columns are meant to be written in the same insert as the student,
        so a student never exists without fee data.
        """
        result = await self.calculate_retroactive_fees(
            enrollment_date, class_id, course_type, admission_fee_paid
        )
        balance = ledger.seed(StudentBalance(id="new"), result.total_due_amount)
        return result, ledger.balance_columns(balance)

    async def update_student_fee_amounts(
        self,
        student_id: str,
        result: FeeCalculationResult,
        paid_amount: Decimal = ledger.ZERO,
    ) -> StudentBalance:
        """
        Commit a calculation result to the student's row

        Raises:
            StudentNotFoundError: If the student row does not exist
            DatabaseError: If the billed periods cannot be marked charged
        """
        logger.info(f"Updating fee amounts for student {student_id}: total_due={result.total_due_amount}")

        row = await self.db.select_by_id("students", "id", student_id)
        if not row:
            raise StudentNotFoundError(student_id)

        student = ledger.seed(StudentBalance.model_validate(row), result.total_due_amount, paid_amount)
        await self.db.update_by_id("students", "id", student_id, ledger.balance_columns(student))
        await self.mark_periods_charged(student_id, student.course_type, result)

        logger.info(f"Student {student.label} fee amounts updated: pending={student.pending_amount}")
        return student

    async def mark_periods_charged(
        self,
        student_id: str,
        course_type: CourseType,
        result: FeeCalculationResult,
    ) -> List[str]:
        """
        Record every month of a committed calculation as already charged

        The breakdown bills each month from enrollment through the current
        month (the enrollment month possibly at half or no fee), so the
        monthly accrual must not post any of those periods again, including
        catch-up runs for past periods.

        Returns:
            list: Periods newly marked; periods that already had a marker are left alone

        Raises:
            DatabaseError: If a marker cannot be written
        """
        if CourseType(course_type) != CourseType.MONTHLY:
            return []

        written: List[str] = []
        for entry in result.monthly_breakdown:
            period = accrual_period(date(entry.year, entry.month_number, 1))
            try:
                await self.db.insert_one("fee_accruals", {
                    "student_id": student_id,
                    "period": period,
                    "amount": str(entry.amount),
                    "source": "calculation",
                })
            except DuplicateRecordError:
                logger.info(f"Student {student_id} already has an accrual marker for {period}")
                continue
            written.append(period)

        logger.info(f"Marked {len(written)} periods charged for student {student_id}")
        return written

    async def recalculate_student_fees(self, student_id: str) -> Tuple[StudentBalance, FeeCalculationResult]:
        """
        Recalculate fees for an existing student (enrollment date changes, repair of
        registrations whose fee calculation failed). Amounts already paid are kept.

        Raises:
            StudentNotFoundError: If the student does not exist
            InvalidEnrollmentDateError: If the student has no enrollment date
        """
        logger.info(f"Recalculating fees for existing student {student_id}")

        row = await self.db.select_by_id("students", "id", student_id)
        if not row:
            raise StudentNotFoundError(student_id)

        student = StudentBalance.model_validate(row)
        if not student.enrollment_date:
            raise InvalidEnrollmentDateError(f"No enrollment date found for student: {student_id}")
        if not student.class_id:
            raise FeeStructureNotFoundError("<none>", student.course_type.value)

        result = await self.calculate_retroactive_fees(
            student.enrollment_date,
            student.class_id,
            student.course_type,
            student.admission_fee_paid,
        )
        updated = await self.update_student_fee_amounts(student_id, result, student.paid_amount)
        return updated, result
