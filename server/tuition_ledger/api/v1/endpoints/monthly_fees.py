"""
tuition_ledger/api/v1/endpoints/monthly_fees.py
Manual trigger and preview of the monthly fee accrual (Admin only)
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import Optional
from tuition_ledger.models.schemas import MonthlyFeePreview, MonthlyFeeRunResult, TokenPayload
from tuition_ledger.core.dependencies import get_scheduler
from tuition_ledger.core.exceptions import AccrualInProgressError, ActiveStudentsUnavailableError
from tuition_ledger.core.security import require_admin
from tuition_ledger.services.monthly_fee_scheduler import MonthlyFeeScheduler
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

PERIOD_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


@router.get("/preview", response_model=MonthlyFeePreview)
async def preview_monthly_fees(
    period: Optional[str] = Query(None, pattern=PERIOD_PATTERN),
    current_user: TokenPayload = Depends(require_admin),
    scheduler: MonthlyFeeScheduler = Depends(get_scheduler)
):
    """
    Show what a monthly fee run would add, without changing any balance
    """
    logger.info(f"Admin {current_user.sub} previewing monthly fee update")
    try:
        return await scheduler.preview_monthly_fee_update(period)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ActiveStudentsUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except Exception as e:
        logger.error(f"Error previewing monthly fees: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to preview monthly fees: {str(e)}"
        )


@router.post("/run", response_model=MonthlyFeeRunResult)
async def run_monthly_fees(
    period: Optional[str] = Query(None, pattern=PERIOD_PATTERN),
    current_user: TokenPayload = Depends(require_admin),
    scheduler: MonthlyFeeScheduler = Depends(get_scheduler)
):
    """
    Add one month's fee to every active student.
    Students already charged for the period are left alone.
    """
    logger.info(f"Admin {current_user.sub} manually running monthly fee update")
    try:
        return await scheduler.add_monthly_fees_to_all_students(period)
    except AccrualInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ActiveStudentsUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except Exception as e:
        logger.error(f"Error running monthly fee update: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to run monthly fee update: {str(e)}"
        )
