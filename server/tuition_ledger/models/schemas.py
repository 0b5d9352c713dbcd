"""
tuition_ledger/models/schemas.py
Pydantic schemas for the SO Center fee engine
"""
from __future__ import annotations

from enum import Enum
from typing import List, Optional, Any
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

from pydantic import BaseModel, Field, field_validator, model_validator


CENTS = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Coerce a numeric column value (str/int/float/None) into a 2-place Decimal"""
    if value is None or value == "":
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


# ============================================
# ENUMS
# ============================================

class UserRole(str, Enum):
    ADMIN = "admin"
    SO_CENTER = "so_center"


class CourseType(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"


class WalletTransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


# ============================================
# AUTH MODELS
# ============================================

class TokenPayload(BaseModel):
    sub: str
    role: UserRole
    exp: datetime
    so_center_id: Optional[str] = None


# ============================================
# FEE SCHEDULE MODELS
# ============================================

class ClassFeeScheduleBase(BaseModel):
    class_id: str
    course_type: CourseType
    admission_fee: Decimal = Field(Decimal("0.00"), ge=0)
    monthly_fee: Optional[Decimal] = Field(None, ge=0)
    yearly_fee: Optional[Decimal] = Field(None, ge=0)

    @field_validator("admission_fee", mode="before")
    @classmethod
    def _admission_fee_money(cls, v):
        return to_money(v)

    @field_validator("monthly_fee", "yearly_fee", mode="before")
    @classmethod
    def _optional_money(cls, v):
        return None if v is None or v == "" else to_money(v)

    @model_validator(mode="after")
    def _fee_matches_course_type(self):
        if self.course_type == CourseType.MONTHLY and self.monthly_fee is None:
            raise ValueError("monthly_fee is required for monthly courses")
        if self.course_type == CourseType.YEARLY and self.yearly_fee is None:
            raise ValueError("yearly_fee is required for yearly courses")
        return self


class ClassFeeScheduleCreate(ClassFeeScheduleBase):
    pass


class ClassFeeScheduleUpdate(BaseModel):
    admission_fee: Optional[Decimal] = Field(None, ge=0)
    monthly_fee: Optional[Decimal] = Field(None, ge=0)
    yearly_fee: Optional[Decimal] = Field(None, ge=0)


class ClassFeeSchedule(ClassFeeScheduleBase):
    """A class_fees row as read at calculation time"""
    id: Optional[str] = None

    model_config = {"from_attributes": True}


# ============================================
# STUDENT BALANCE MODELS
# ============================================

class StudentBalance(BaseModel):
    """The slice of a students row the fee engine reads and writes"""
    id: str
    name: Optional[str] = None
    student_code: Optional[str] = None
    so_center_id: Optional[str] = None
    enrollment_date: Optional[date] = None
    class_id: Optional[str] = None
    course_type: CourseType = CourseType.MONTHLY
    admission_fee_paid: bool = False
    total_fee_amount: Decimal = Decimal("0.00")
    paid_amount: Decimal = Decimal("0.00")
    pending_amount: Decimal = Decimal("0.00")
    payment_status: PaymentStatus = PaymentStatus.PENDING
    is_active: bool = True

    model_config = {"from_attributes": True}

    @field_validator("total_fee_amount", "paid_amount", "pending_amount", mode="before")
    @classmethod
    def _money(cls, v):
        return to_money(v)

    @field_validator("admission_fee_paid", "is_active", mode="before")
    @classmethod
    def _null_bool(cls, v):
        # Nullable boolean columns
        return bool(v) if v is not None else False

    @property
    def label(self) -> str:
        """Identifier used in log lines"""
        return self.student_code or self.id


class StudentCreate(BaseModel):
    name: str = Field(..., min_length=1)
    class_id: str
    course_type: CourseType
    so_center_id: str
    enrollment_date: date
    parent_name: Optional[str] = None
    parent_phone: str = Field(..., min_length=5)
    student_code: Optional[str] = None
    admission_fee_paid: bool = False
    receipt_number: Optional[str] = None

    @model_validator(mode="after")
    def _receipt_for_paid_admission(self):
        if self.admission_fee_paid and not self.receipt_number:
            raise ValueError("receipt_number is required when admission_fee_paid is true")
        return self


class StudentRegistrationResponse(BaseModel):
    student: StudentBalance
    fee_calculation: FeeCalculationResult
    admission_fee_processed: bool = False
    transaction_id: Optional[str] = None
    message: str


# ============================================
# FEE CALCULATION MODELS
# ============================================

class MonthlyBreakdownEntry(BaseModel):
    month: str
    month_number: int = Field(..., ge=1, le=12)
    year: int
    amount: Decimal
    reason: str


class FeeCalculationRequest(BaseModel):
    enrollment_date: date
    class_id: str
    course_type: CourseType
    admission_fee_paid: bool = False


class FeeCalculationResult(BaseModel):
    total_due_amount: Decimal
    monthly_breakdown: List[MonthlyBreakdownEntry] = []
    admission_fee: Decimal
    total_monthly_fees: Decimal


class FeeRecalculationResponse(BaseModel):
    message: str
    student: StudentBalance
    fee_calculation: FeeCalculationResult


# ============================================
# MONTHLY ACCRUAL MODELS
# ============================================

class StudentFeePreview(BaseModel):
    student_id: str
    student_code: Optional[str] = None
    name: Optional[str] = None
    current_pending: Decimal
    monthly_fee: Decimal
    new_pending: Decimal


class MonthlyFeePreview(BaseModel):
    period: str
    students_to_update: int = 0
    total_fees_to_add: Decimal = Decimal("0.00")
    student_details: List[StudentFeePreview] = []


class MonthlyFeeRunResult(BaseModel):
    period: str
    students_updated: int = 0
    total_fees_added: Decimal = Decimal("0.00")
    students_skipped: int = 0
    students_already_charged: int = 0
    students_failed: int = 0


# ============================================
# PAYMENT & WALLET MODELS
# ============================================

class PaymentCreate(BaseModel):
    student_id: str
    amount: Decimal = Field(..., gt=0)
    payment_method: str = "cash"
    fee_type: str = "monthly"
    receipt_number: Optional[str] = None
    description: Optional[str] = None
    month: Optional[str] = None
    year: Optional[int] = None


class PaymentResponse(BaseModel):
    id: str
    student_id: str
    amount: Decimal
    payment_method: str
    fee_type: Optional[str] = None
    description: Optional[str] = None
    receipt_number: Optional[str] = None
    transaction_id: Optional[str] = None
    month: Optional[str] = None
    year: Optional[int] = None
    recorded_by: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentReceipt(BaseModel):
    payment: PaymentResponse
    student_name: Optional[str] = None
    new_paid_amount: Decimal
    new_pending_amount: Decimal
    total_fee_amount: Decimal
    payment_status: PaymentStatus
    wallet_credited: bool = False


StudentRegistrationResponse.model_rebuild()


# ============================================
# EXPORTS
# ============================================

__all__ = [
    "to_money",
    # Enums
    "UserRole",
    "CourseType",
    "PaymentStatus",
    "WalletTransactionType",
    # Auth
    "TokenPayload",
    # Fee schedule
    "ClassFeeScheduleBase",
    "ClassFeeScheduleCreate",
    "ClassFeeScheduleUpdate",
    "ClassFeeSchedule",
    # Student
    "StudentBalance",
    "StudentCreate",
    "StudentRegistrationResponse",
    # Fee calculation
    "MonthlyBreakdownEntry",
    "FeeCalculationRequest",
    "FeeCalculationResult",
    "FeeRecalculationResponse",
    # Monthly accrual
    "StudentFeePreview",
    "MonthlyFeePreview",
    "MonthlyFeeRunResult",
    # Payments
    "PaymentCreate",
    "PaymentResponse",
    "PaymentReceipt",
]
