"""
tuition_ledger/services/monthly_fee_scheduler.py
Monthly fee accrual for all active students.

Meant to run once per month (cron / scheduled task) or on manual trigger for
catch-up. Each posting is recorded in ``fee_accruals`` keyed by
(student_id, period) before the balance changes, so re-running a period only
charges students that were not charged yet.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from tuition_ledger.core.clock import Clock, accrual_period, parse_accrual_period, system_clock
from tuition_ledger.core.config import settings
from tuition_ledger.core.exceptions import (
    AccrualInProgressError,
    ActiveStudentsUnavailableError,
    DatabaseError,
    DuplicateRecordError,
    InvalidFeeStructureError,
    StudentNotFoundError,
)
from tuition_ledger.db.supabase import SupabaseQueries
from tuition_ledger.models.schemas import (
    ClassFeeSchedule,
    CourseType,
    MonthlyFeePreview,
    MonthlyFeeRunResult,
    StudentBalance,
    StudentFeePreview,
)
from tuition_ledger.services import ledger
from tuition_ledger.services.fee_calculation_service import FeeCalculationService

logger = logging.getLogger(__name__)

# Periods with a run in progress in this process
_running_periods: Set[str] = set()


class MonthlyFeeScheduler:
    """Adds one month's fee to every active student's balance"""

    def __init__(self, db: SupabaseQueries, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.fees = FeeCalculationService(db, clock)

    # ============================================
    # PUBLIC OPERATIONS
    # ============================================

    async def add_monthly_fees_to_all_students(self, period: Optional[str] = None) -> MonthlyFeeRunResult:
        """
        Post one month's fee for ``period`` (default: current month) to every active student

        Raises:
            AccrualInProgressError: If a run for the same period is already executing
            ActiveStudentsUnavailableError: If the active students cannot be read
        """
        period = self._resolve_period(period)
        if period in _running_periods:
            raise AccrualInProgressError(period)

        _running_periods.add(period)
        try:
            logger.info(f"Starting monthly fee update for {period}...")
            result = MonthlyFeeRunResult(period=period)
            billable = await self._plan(period, result)

            for student, monthly_fee in billable:
                try:
                    await self._post_accrual(student, monthly_fee, period)
                except DuplicateRecordError:
                    logger.info(f"Student {student.label} was charged for {period} by another run")
                    result.students_already_charged += 1
                    continue
                except Exception as e:
                    logger.error(f"Error updating student {student.label}: {e}")
                    result.students_failed += 1
                    continue

                result.students_updated += 1
                result.total_fees_added += monthly_fee

            logger.info(
                f"Monthly fee update for {period} completed: {result.students_updated} students updated, "
                f"{settings.CURRENCY_SYMBOL}{result.total_fees_added} total fees added, "
                f"{result.students_skipped} skipped, {result.students_already_charged} already charged, "
                f"{result.students_failed} failed"
            )
            return result
        finally:
            _running_periods.discard(period)

    async def preview_monthly_fee_update(self, period: Optional[str] = None) -> MonthlyFeePreview:
        """Dry run of add_monthly_fees_to_all_students; writes nothing"""
        period = self._resolve_period(period)
        logger.info(f"Previewing monthly fee update for {period}...")

        billable = await self._plan(period, MonthlyFeeRunResult(period=period))
        preview = MonthlyFeePreview(period=period)

        for student, monthly_fee in billable:
            after = ledger.accrue(student, monthly_fee)
            preview.students_to_update += 1
            preview.total_fees_to_add += monthly_fee
            preview.student_details.append(StudentFeePreview(
                student_id=student.id,
                student_code=student.student_code,
                name=student.name,
                current_pending=student.pending_amount,
                monthly_fee=monthly_fee,
                new_pending=after.pending_amount,
            ))

        logger.info(
            f"Preview complete: {preview.students_to_update} students, "
            f"{settings.CURRENCY_SYMBOL}{preview.total_fees_to_add} total fees"
        )
        return preview

    # ============================================
    # HELPERS
    # ============================================

    def _resolve_period(self, period: Optional[str]) -> str:
        current = accrual_period(self.clock())
        if period is None:
            return current
        start = parse_accrual_period(period)
        if accrual_period(start) > current:
            raise ValueError(f"Cannot accrue fees for future period {period}")
        return accrual_period(start)

    async def _load_active_students(self) -> List[dict]:
        try:
            return await self.db.select_all("students", {"is_active": True})
        except DatabaseError as e:
            logger.error(f"Monthly fee update failed: {e}")
            raise ActiveStudentsUnavailableError(f"Could not read active students: {e}")

    async def _charged_student_ids(self, period: str) -> Set[str]:
        try:
            rows = await self.db.select_all("fee_accruals", {"period": period})
        except DatabaseError as e:
            raise ActiveStudentsUnavailableError(f"Could not read fee accruals for {period}: {e}")
        return {row["student_id"] for row in rows}

    async def _plan(self, period: str, result: MonthlyFeeRunResult) -> List[Tuple[StudentBalance, Decimal]]:
        """
        Resolve which active students are billable for ``period`` and their monthly fee

        Skipped and already-charged students are counted on ``result``.
        """
        rows = await self._load_active_students()
        charged = await self._charged_student_ids(period)
        period_start = parse_accrual_period(period)
        schedules: Dict[Tuple[str, str], Optional[ClassFeeSchedule]] = {}
        billable: List[Tuple[StudentBalance, Decimal]] = []

        logger.info(f"Found {len(rows)} active students to process for {period}")

        for row in rows:
            try:
                student = StudentBalance.model_validate(row)
            except ValidationError as e:
                logger.warning(f"Skipping malformed student row {row.get('id')}: {e}")
                result.students_skipped += 1
                continue

            if student.id in charged:
                result.students_already_charged += 1
                continue

            if student.enrollment_date and _month_start(student.enrollment_date) > period_start:
                logger.info(f"Student {student.label} enrolled after {period}, not charged")
                result.students_skipped += 1
                continue

            key = (student.class_id, student.course_type.value)
            try:
                if key not in schedules:
                    schedules[key] = await self.fees.get_class_fee(student.class_id, student.course_type)
                schedule = schedules[key]
            except (InvalidFeeStructureError, DatabaseError) as e:
                logger.warning(f"No usable fee structure for student {student.label}: {e}")
                schedules[key] = None
                result.students_skipped += 1
                continue

            if schedule is None:
                logger.warning(
                    f"No fee structure found for student {student.label} "
                    f"(Class: {student.class_id}, Type: {student.course_type.value})"
                )
                result.students_skipped += 1
                continue

            if schedule.course_type == CourseType.YEARLY:
                logger.info(f"Student {student.label} is on a yearly course, no monthly fee")
                result.students_skipped += 1
                continue

            billable.append((student, schedule.monthly_fee))

        return billable

    async def _post_accrual(self, student: StudentBalance, monthly_fee: Decimal, period: str) -> StudentBalance:
        """
        Write the period marker, then the new balance; the marker is removed if the
        balance update fails so a later run can retry the student.
        """
        marker = await self.db.insert_one("fee_accruals", {
            "student_id": student.id,
            "period": period,
            "amount": str(monthly_fee),
            "source": "scheduler",
        })

        try:
            # Fresh read so a payment recorded since the batch read is not overwritten
            row = await self.db.select_by_id("students", "id", student.id)
            if not row:
                raise StudentNotFoundError(student.id)
            updated = ledger.accrue(StudentBalance.model_validate(row), monthly_fee)
            await self.db.update_by_id("students", "id", student.id, ledger.balance_columns(updated))
        except Exception:
            await self._remove_marker(student, period, marker)
            raise

        logger.info(
            f"Updated {student.label} ({student.name}): added {settings.CURRENCY_SYMBOL}{monthly_fee}, "
            f"new pending {settings.CURRENCY_SYMBOL}{updated.pending_amount}"
        )
        return updated

    async def _remove_marker(self, student: StudentBalance, period: str, marker: Optional[dict]) -> None:
        """
        Roll back the period marker of a failed posting so a rerun retries the student.
        Never raises; the caller re-raises the posting error.
        """
        try:
            marker_id = marker.get("id") if marker else None
            if not marker_id:
                # Insert returned no row; find it by its key
                row = await self.db.select_one("fee_accruals", {"student_id": student.id, "period": period})
                marker_id = row.get("id") if row else None
            if marker_id:
                await self.db.delete_by_id("fee_accruals", "id", marker_id)
        except Exception as e:
            logger.error(
                f"Orphaned accrual marker for student {student.label} ({student.id}) in {period}: {e}. "
                f"Delete it from fee_accruals before rerunning or the student stays uncharged"
            )


def _month_start(day: date) -> date:
    return day.replace(day=1)
