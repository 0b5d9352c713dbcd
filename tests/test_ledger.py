"""Tests for the student balance rules."""

from decimal import Decimal

import pytest

from tuition_ledger.core.exceptions import InvalidPaymentError
from tuition_ledger.models.schemas import PaymentStatus, StudentBalance
from tuition_ledger.services import ledger


@pytest.fixture
def student() -> StudentBalance:
    return StudentBalance(
        id="s1",
        total_fee_amount="2500.00",
        paid_amount="1000.00",
        pending_amount="1500.00",
        payment_status="pending",
    )


def assert_invariants(s: StudentBalance) -> None:
    assert s.pending_amount == max(Decimal("0"), s.total_fee_amount - s.paid_amount)
    assert s.pending_amount >= 0
    assert (s.payment_status == PaymentStatus.PAID) == (s.pending_amount <= 0)


class TestSettle:
    def test_seed_resets_totals(self, student: StudentBalance) -> None:
        seeded = ledger.seed(student, Decimal("750"))
        assert seeded.total_fee_amount == Decimal("750.00")
        assert seeded.paid_amount == Decimal("0.00")
        assert seeded.pending_amount == Decimal("750.00")
        assert_invariants(seeded)

    def test_overpayment_never_negative(self, student: StudentBalance) -> None:
        settled = ledger.settle(student, Decimal("100"), Decimal("300"))
        assert settled.pending_amount == Decimal("0.00")
        assert settled.payment_status == PaymentStatus.PAID

    def test_settle_does_not_mutate_input(self, student: StudentBalance) -> None:
        ledger.settle(student, Decimal("0"), Decimal("0"))
        assert student.total_fee_amount == Decimal("2500.00")


class TestAccrue:
    def test_adds_monthly_fee(self, student: StudentBalance) -> None:
        accrued = ledger.accrue(student, Decimal("500"))
        assert accrued.total_fee_amount == Decimal("3000.00")
        assert accrued.pending_amount == Decimal("2000.00")
        assert_invariants(accrued)

    def test_accrual_on_paid_up_student_reopens_balance(self) -> None:
        paid_up = ledger.seed(StudentBalance(id="s2"), Decimal("1000"), Decimal("1000"))
        assert paid_up.payment_status == PaymentStatus.PAID
        accrued = ledger.accrue(paid_up, Decimal("500"))
        assert accrued.pending_amount == Decimal("500.00")
        assert accrued.payment_status == PaymentStatus.PENDING


class TestApplyPayment:
    def test_partial_payment(self, student: StudentBalance) -> None:
        paid = ledger.apply_payment(student, Decimal("500"))
        assert paid.paid_amount == Decimal("1500.00")
        assert paid.pending_amount == Decimal("1000.00")
        assert_invariants(paid)

    def test_full_payment_marks_paid(self, student: StudentBalance) -> None:
        paid = ledger.apply_payment(student, Decimal("1500"))
        assert paid.pending_amount == Decimal("0.00")
        assert paid.payment_status == PaymentStatus.PAID

    def test_overpayment_rejected(self, student: StudentBalance) -> None:
        with pytest.raises(InvalidPaymentError, match="exceeds balance due"):
            ledger.apply_payment(student, Decimal("1500.01"))

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    def test_non_positive_rejected(self, student: StudentBalance, amount: Decimal) -> None:
        with pytest.raises(InvalidPaymentError):
            ledger.apply_payment(student, amount)


def test_balance_columns(student: StudentBalance) -> None:
    assert ledger.balance_columns(ledger.accrue(student, Decimal("500"))) == {
        "total_fee_amount": "3000.00",
        "paid_amount": "1000.00",
        "pending_amount": "2000.00",
        "payment_status": "pending",
    }
