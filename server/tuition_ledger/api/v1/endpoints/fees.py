"""
tuition_ledger/api/v1/endpoints/fees.py
Class fee schedules, fee calculation and fee recalculation endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends
from typing import List, Optional
from tuition_ledger.models.schemas import (
    ClassFeeSchedule, ClassFeeScheduleCreate, ClassFeeScheduleUpdate,
    CourseType, FeeCalculationRequest, FeeCalculationResult, FeeRecalculationResponse,
    TokenPayload
)
from tuition_ledger.core.dependencies import get_db, get_fee_service
from tuition_ledger.core.exceptions import (
    FeeStructureNotFoundError, InvalidEnrollmentDateError, InvalidFeeStructureError,
    StudentNotFoundError, DuplicateRecordError
)
from tuition_ledger.core.security import require_admin, require_center_staff
from tuition_ledger.db.supabase import SupabaseQueries
from tuition_ledger.services.fee_calculation_service import FeeCalculationService
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


def _schedule_row(schedule: ClassFeeScheduleCreate) -> dict:
    return {
        "class_id": schedule.class_id,
        "course_type": schedule.course_type.value,
        "admission_fee": str(schedule.admission_fee),
        "monthly_fee": str(schedule.monthly_fee) if schedule.monthly_fee is not None else None,
        "yearly_fee": str(schedule.yearly_fee) if schedule.yearly_fee is not None else None,
    }


@router.post("/calculate", response_model=FeeCalculationResult)
async def calculate_fees(
    request: FeeCalculationRequest,
    current_user: TokenPayload = Depends(require_center_staff),
    fees: FeeCalculationService = Depends(get_fee_service)
):
    """
    Calculate what a student enrolling on the given date owes today.
    Nothing is written.
    """
    try:
        return await fees.calculate_retroactive_fees(
            request.enrollment_date,
            request.class_id,
            request.course_type,
            request.admission_fee_paid
        )
    except FeeStructureNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (InvalidEnrollmentDateError, InvalidFeeStructureError) as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except Exception as e:
        logger.error(f"Fee calculation error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to calculate fees: {str(e)}"
        )


@router.get("/class-fees", response_model=List[ClassFeeSchedule])
async def list_class_fees(
    class_id: Optional[str] = None,
    course_type: Optional[CourseType] = None,
    current_user: TokenPayload = Depends(require_center_staff),
    db: SupabaseQueries = Depends(get_db)
):
    """
    List class fee schedules, optionally filtered by class and course type
    """
    filters = {}
    if class_id:
        filters["class_id"] = class_id
    if course_type:
        filters["course_type"] = course_type.value

    try:
        rows = await db.select_all("class_fees", filters, "class_id")
        return [ClassFeeSchedule.model_validate(row) for row in rows]
    except Exception as e:
        logger.error(f"List class fees error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve class fees"
        )


@router.post("/class-fees", response_model=ClassFeeSchedule, status_code=status.HTTP_201_CREATED)
async def create_class_fee(
    schedule: ClassFeeScheduleCreate,
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Create the fee schedule for a class and course type (Admin only)
    """
    try:
        if await db.select_one(
            "class_fees",
            {"class_id": schedule.class_id, "course_type": schedule.course_type.value}
        ):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Fee structure already exists for this class and course type"
            )

        new_row = await db.insert_one("class_fees", _schedule_row(schedule))
        logger.info(f"Fee structure created for class {schedule.class_id} ({schedule.course_type.value})")
        return ClassFeeSchedule.model_validate(new_row)

    except HTTPException:
        raise
    except DuplicateRecordError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Fee structure already exists for this class and course type"
        )
    except Exception as e:
        logger.error(f"Create class fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create fee structure: {str(e)}"
        )


@router.put("/class-fees/{fee_id}", response_model=ClassFeeSchedule)
async def update_class_fee(
    fee_id: str,
    fee_data: ClassFeeScheduleUpdate,
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Edit the amounts of a fee schedule (Admin only).
    Existing student balances are not touched; use recalculation for that.
    """
    try:
        existing = await db.select_by_id("class_fees", "id", fee_id)
        if not existing:
            raise HTTPException(status_code=404, detail="Fee structure not found")

        update_data = fee_data.model_dump(exclude_unset=True)
        if not update_data:
            raise HTTPException(status_code=400, detail="No fields to update")

        merged = {**existing, **update_data}
        try:
            checked = ClassFeeScheduleCreate.model_validate(merged)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

        row = _schedule_row(checked)
        updated = await db.update_by_id(
            "class_fees", "id", fee_id, {key: row[key] for key in update_data}
        )
        logger.info(f"Fee structure updated: {fee_id}")
        return ClassFeeSchedule.model_validate(updated)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update class fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update fee structure: {str(e)}"
        )


@router.post("/students/{student_id}/recalculate", response_model=FeeRecalculationResponse)
async def recalculate_student_fees(
    student_id: str,
    current_user: TokenPayload = Depends(require_center_staff),
    fees: FeeCalculationService = Depends(get_fee_service)
):
    """
    Recalculate a student's fees from the enrollment date.
    Repairs registrations whose fee calculation failed.
    """
    try:
        student, result = await fees.recalculate_student_fees(student_id)
        return FeeRecalculationResponse(
            message="Fees recalculated successfully",
            student=student,
            fee_calculation=result
        )
    except StudentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except FeeStructureNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (InvalidEnrollmentDateError, InvalidFeeStructureError) as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except Exception as e:
        logger.error(f"Recalculate fees error for {student_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to recalculate fees: {str(e)}"
        )
