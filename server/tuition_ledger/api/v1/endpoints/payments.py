"""
tuition_ledger/api/v1/endpoints/payments.py
Fee payment endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends
from typing import List
from tuition_ledger.models.schemas import PaymentCreate, PaymentReceipt, PaymentResponse, TokenPayload
from tuition_ledger.core.dependencies import get_payment_service
from tuition_ledger.core.exceptions import InvalidPaymentError, StudentNotFoundError
from tuition_ledger.core.security import require_center_staff
from tuition_ledger.services.payment_service import PaymentService
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=PaymentReceipt, status_code=status.HTTP_201_CREATED)
async def record_payment(
    payment_data: PaymentCreate,
    current_user: TokenPayload = Depends(require_center_staff),
    payments: PaymentService = Depends(get_payment_service)
):
    """
    Record a fee payment.
    Reduces the student's pending amount and credits the SO Center wallet.
    """
    try:
        return await payments.record_payment(payment_data, recorded_by=current_user.sub)
    except StudentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidPaymentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Record payment error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to record payment: {str(e)}"
        )


@router.get("/students/{student_id}", response_model=List[PaymentResponse])
async def get_student_payments(
    student_id: str,
    current_user: TokenPayload = Depends(require_center_staff),
    payments: PaymentService = Depends(get_payment_service)
):
    """
    Payment history for a student, newest first
    """
    try:
        return await payments.get_student_payments(student_id)
    except Exception as e:
        logger.error(f"Payment history error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch payment history"
        )
