"""
tuition_ledger/api/v1/endpoints/students.py
Student registration with fee seeding, and balance lookup
"""
from fastapi import APIRouter, HTTPException, status, Depends
from tuition_ledger.models.schemas import (
    StudentBalance, StudentCreate, StudentRegistrationResponse, TokenPayload, UserRole
)
from tuition_ledger.core.dependencies import get_db, get_fee_service, get_payment_service
from tuition_ledger.core.exceptions import FeeEngineError
from tuition_ledger.core.security import require_center_staff
from tuition_ledger.db.supabase import SupabaseQueries
from tuition_ledger.services.fee_calculation_service import FeeCalculationService
from tuition_ledger.services.payment_service import PaymentService
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


def _check_center_access(current_user: TokenPayload, so_center_id: str):
    if current_user.role == UserRole.SO_CENTER and current_user.so_center_id != so_center_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this SO Center's students"
        )


@router.post("/", response_model=StudentRegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register_student(
    student_data: StudentCreate,
    current_user: TokenPayload = Depends(require_center_staff),
    db: SupabaseQueries = Depends(get_db),
    fees: FeeCalculationService = Depends(get_fee_service),
    payments: PaymentService = Depends(get_payment_service)
):
    """
    Register a student and seed their fee balance.
    - Fees are calculated before the insert; the student row carries them
    - Fee calculation failures return 422 with code FEE_CALCULATION_FAILED
    - Insert failures return 500 with code STUDENT_REGISTRATION_FAILED
    - Accrual marker failures return 500 with code ACCRUAL_MARKER_FAILED and the new student_id
    """
    _check_center_access(current_user, student_data.so_center_id)

    # 1. Fees first; nothing is written if this fails
    try:
        fee_calculation, fee_columns = await fees.build_registration_fee_fields(
            student_data.enrollment_date,
            student_data.class_id,
            student_data.course_type,
            student_data.admission_fee_paid
        )
    except FeeEngineError as e:
        logger.error(f"Fee calculation failed during registration: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "FEE_CALCULATION_FAILED", "message": str(e)}
        )
    except Exception as e:
        logger.error(f"Fee calculation error during registration: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "FEE_CALCULATION_FAILED", "message": str(e)}
        )

    # 2. Student row and fee data in a single insert
    student_dict = student_data.model_dump(exclude={"receipt_number"})
    student_dict["course_type"] = student_data.course_type.value
    student_dict["enrollment_date"] = student_data.enrollment_date.isoformat()
    student_dict["is_active"] = True
    student_dict.update(fee_columns)

    try:
        new_student = await db.insert_one("students", student_dict)
        if not new_student:
            raise Exception("insert returned no data")
        student = StudentBalance.model_validate(new_student)
    except Exception as e:
        logger.error(f"Create student error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": "STUDENT_REGISTRATION_FAILED", "message": f"Failed to create student: {str(e)}"}
        )

    logger.info(f"Student registered: {student.label}, pending {student.pending_amount}")

    # 3. Billed months are marked so the monthly run does not charge them again
    marker_error = None
    try:
        await fees.mark_periods_charged(student.id, student.course_type, fee_calculation)
    except Exception as e:
        logger.error(f"Accrual markers for {student.label} not written, recalculate to repair: {e}")
        marker_error = e

    # 4. Admission fee collected at the counter
    transaction_id = None
    if student_data.admission_fee_paid and student_data.receipt_number:
        try:
            schedule = await fees.get_class_fee(student_data.class_id, student_data.course_type)
            if schedule and schedule.admission_fee > 0:
                transaction_id = await payments.record_admission_fee(
                    student, schedule.admission_fee, student_data.receipt_number, current_user.sub
                )
        except Exception as e:
            logger.error(f"Error processing admission fee for {student.label}: {e}")

    processed = transaction_id is not None
    if marker_error is not None:
        # Student exists; the caller must repair via POST /fees/students/{id}/recalculate
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "code": "ACCRUAL_MARKER_FAILED",
                "message": f"Student created but billed months were not marked charged: {str(marker_error)}",
                "student_id": student.id,
                "admission_fee_processed": processed,
                "transaction_id": transaction_id,
            }
        )

    return StudentRegistrationResponse(
        student=student,
        fee_calculation=fee_calculation,
        admission_fee_processed=processed,
        transaction_id=transaction_id,
        message=(
            "Student registered successfully with admission fee processed!"
            if processed else "Student registered successfully!"
        )
    )


@router.get("/{student_id}/balance", response_model=StudentBalance)
async def get_student_balance(
    student_id: str,
    current_user: TokenPayload = Depends(require_center_staff),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Get a student's fee totals and payment status
    """
    try:
        row = await db.select_by_id("students", "id", student_id)
        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Student not found"
            )

        student = StudentBalance.model_validate(row)
        if student.so_center_id:
            _check_center_access(current_user, student.so_center_id)
        return student

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get student balance error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve student balance"
        )
