"""
tuition_ledger/core/exceptions.py
Exception hierarchy for the fee engine and its storage layer
"""


class FeeEngineError(Exception):
    """Base exception for all fee engine errors."""


class FeeStructureNotFoundError(FeeEngineError):
    """Raised when no class fee schedule exists for a (class, course type) pair."""

    def __init__(self, class_id: str, course_type: str):
        self.class_id = class_id
        self.course_type = course_type
        super().__init__(
            f"No fee structure found for class {class_id} with course type {course_type}"
        )


class InvalidFeeStructureError(FeeEngineError):
    """Raised when a fee schedule lacks the fee its course type requires."""


class InvalidEnrollmentDateError(FeeEngineError):
    """Raised when an enrollment date is missing or lies in the future."""


class StudentNotFoundError(FeeEngineError):
    """Raised when a student record does not exist."""

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"Student not found: {student_id}")


class ActiveStudentsUnavailableError(FeeEngineError):
    """Raised when the active student set cannot be read; aborts a batch run."""


class AccrualInProgressError(FeeEngineError):
    """Raised when a monthly accrual run for the same period is already running."""

    def __init__(self, period: str):
        self.period = period
        super().__init__(f"Monthly fee accrual for {period} is already running")


class InvalidPaymentError(FeeEngineError):
    """Raised when a payment cannot be applied to a student's balance."""


class DatabaseError(Exception):
    """Raised when a Supabase operation fails."""


class DuplicateRecordError(DatabaseError):
    """Raised when an insert violates a unique constraint."""
