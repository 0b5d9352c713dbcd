"""
tuition_ledger/services/ledger.py
Balance rules shared by every path that mutates a student's fee totals.

Every mutation goes through ``settle`` so that

    pending_amount = max(0, total_fee_amount - paid_amount)
    payment_status = paid  iff  pending_amount <= 0

holds after fee seeding, monthly accrual and payment recording alike.
"""
from decimal import Decimal
from typing import Any, Dict

from tuition_ledger.core.exceptions import InvalidPaymentError
from tuition_ledger.models.schemas import PaymentStatus, StudentBalance, to_money

ZERO = Decimal("0.00")


def pending_for(total_fee_amount: Decimal, paid_amount: Decimal) -> Decimal:
    """Outstanding amount; overpayment never shows up as a negative balance"""
    return max(ZERO, to_money(total_fee_amount) - to_money(paid_amount))


def status_for(pending_amount: Decimal) -> PaymentStatus:
    return PaymentStatus.PAID if pending_amount <= 0 else PaymentStatus.PENDING


def settle(student: StudentBalance, total_fee_amount: Decimal, paid_amount: Decimal) -> StudentBalance:
    """Return a copy of ``student`` with new totals and derived pending/status"""
    total = to_money(total_fee_amount)
    paid = to_money(paid_amount)
    pending = pending_for(total, paid)
    return student.model_copy(update={
        "total_fee_amount": total,
        "paid_amount": paid,
        "pending_amount": pending,
        "payment_status": status_for(pending),
    })


def seed(student: StudentBalance, total_due_amount: Decimal, paid_amount: Decimal = ZERO) -> StudentBalance:
    """Fee totals as committed right after a (re)calculation"""
    return settle(student, total_due_amount, paid_amount)


def accrue(student: StudentBalance, monthly_fee: Decimal) -> StudentBalance:
    """Add one month's fee to the student's total"""
    return settle(student, student.total_fee_amount + to_money(monthly_fee), student.paid_amount)


def apply_payment(student: StudentBalance, amount: Decimal) -> StudentBalance:
    """
    Apply a collected payment to the student's balance

    Raises:
        InvalidPaymentError: If the amount is not positive or exceeds the pending balance
    """
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidPaymentError("Payment amount must be greater than zero")
    if amount > student.pending_amount:
        raise InvalidPaymentError(
            f"Payment ({amount}) exceeds balance due ({student.pending_amount})"
        )
    return settle(student, student.total_fee_amount, student.paid_amount + amount)


def balance_columns(student: StudentBalance) -> Dict[str, Any]:
    """Serialize the balance fields for a students row update"""
    return {
        "total_fee_amount": str(student.total_fee_amount),
        "paid_amount": str(student.paid_amount),
        "pending_amount": str(student.pending_amount),
        "payment_status": student.payment_status.value,
    }
