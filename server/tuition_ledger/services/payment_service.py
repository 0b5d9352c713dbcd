"""
tuition_ledger/services/payment_service.py
Payment recording and SO Center wallet bookkeeping
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from tuition_ledger.core.config import settings
from tuition_ledger.core.exceptions import DatabaseError, StudentNotFoundError
from tuition_ledger.db.supabase import SupabaseQueries
from tuition_ledger.models.schemas import (
    PaymentCreate,
    PaymentReceipt,
    PaymentResponse,
    StudentBalance,
    WalletTransactionType,
    to_money,
)
from tuition_ledger.services import ledger

logger = logging.getLogger(__name__)


def new_transaction_id(student_id: str) -> str:
    return f"TXN-{int(datetime.now().timestamp() * 1000)}-{student_id[:8]}"


class PaymentService:
    """Applies collected money to student balances and center wallets"""

    def __init__(self, db: SupabaseQueries):
        self.db = db

    async def _get_student(self, student_id: str) -> StudentBalance:
        row = await self.db.select_by_id("students", "id", student_id)
        if not row:
            raise StudentNotFoundError(student_id)
        return StudentBalance.model_validate(row)

    async def record_payment(self, payment: PaymentCreate, recorded_by: Optional[str] = None) -> PaymentReceipt:
        """
        Record a fee payment against a student's pending balance

        The student's balance is written first; if the payments row cannot be
        inserted the balance is restored. A failed wallet credit is logged and
        reported on the receipt, it does not undo the payment.

        Raises:
            StudentNotFoundError: If the student does not exist
            InvalidPaymentError: If the amount exceeds the pending balance
        """
        student = await self._get_student(payment.student_id)
        updated = ledger.apply_payment(student, payment.amount)
        transaction_id = new_transaction_id(student.id)

        await self.db.update_by_id("students", "id", student.id, ledger.balance_columns(updated))
        try:
            row = await self.db.insert_one("payments", {
                "student_id": student.id,
                "amount": str(to_money(payment.amount)),
                "payment_method": payment.payment_method,
                "fee_type": payment.fee_type,
                "description": payment.description or f"{payment.fee_type.title()} fee payment",
                "receipt_number": payment.receipt_number,
                "transaction_id": transaction_id,
                "month": payment.month,
                "year": payment.year,
                "recorded_by": recorded_by,
            })
            if not row:
                raise DatabaseError(f"Payment {transaction_id} insert returned no data")
        except DatabaseError:
            logger.error(f"Payment row for {student.label} failed, restoring balance")
            await self.db.update_by_id("students", "id", student.id, ledger.balance_columns(student))
            raise

        logger.info(
            f"Payment {transaction_id} recorded for {student.label}: {settings.CURRENCY_SYMBOL}{payment.amount}, "
            f"new pending {settings.CURRENCY_SYMBOL}{updated.pending_amount}"
        )

        wallet_credited = await self._credit_wallet_safely(
            student,
            to_money(payment.amount),
            f"{payment.fee_type.title()} fee from {student.name or student.label}"
            + (f" - Receipt: {payment.receipt_number}" if payment.receipt_number else ""),
            recorded_by,
        )

        return PaymentReceipt(
            payment=PaymentResponse.model_validate(row),
            student_name=student.name,
            new_paid_amount=updated.paid_amount,
            new_pending_amount=updated.pending_amount,
            total_fee_amount=updated.total_fee_amount,
            payment_status=updated.payment_status,
            wallet_credited=wallet_credited,
        )

    async def record_admission_fee(
        self,
        student: StudentBalance,
        amount: Decimal,
        receipt_number: str,
        recorded_by: Optional[str] = None,
    ) -> str:
        """
        Record an admission fee collected at registration

        The admission fee is already excluded from the student's total when it
        was paid up front, so only the payment row and wallet credit are written.

        Returns:
            str: Transaction id of the payment
        """
        transaction_id = new_transaction_id(student.id)
        await self.db.insert_one("payments", {
            "student_id": student.id,
            "amount": str(to_money(amount)),
            "payment_method": "cash",
            "fee_type": "admission",
            "description": f"Admission fee payment - Receipt: {receipt_number}",
            "receipt_number": receipt_number,
            "transaction_id": transaction_id,
            "recorded_by": recorded_by,
        })
        logger.info(f"Admission fee {settings.CURRENCY_SYMBOL}{amount} recorded for {student.label}")

        await self._credit_wallet_safely(
            student,
            to_money(amount),
            f"Admission fee from {student.name or student.label} - Receipt: {receipt_number}",
            recorded_by,
        )
        return transaction_id

    async def credit_wallet(
        self,
        so_center_id: str,
        amount: Decimal,
        description: str,
        collection_agent_id: Optional[str] = None,
    ) -> Decimal:
        """
        Add collected money to an SO Center wallet and log the wallet transaction

        Returns:
            Decimal: The center's new wallet balance

        The transaction row is written before the balance moves; if the balance
        update fails the row is removed again, so a credit is either fully
        recorded or not at all.

        Raises:
            DatabaseError: If the center does not exist or a write fails
        """
        center = await self.db.select_by_id("so_centers", "id", so_center_id)
        if not center:
            raise DatabaseError(f"SO Center not found: {so_center_id}")

        new_balance = to_money(center.get("wallet_balance")) + to_money(amount)
        transaction = await self.db.insert_one("wallet_transactions", {
            "so_center_id": so_center_id,
            "amount": str(to_money(amount)),
            "type": WalletTransactionType.CREDIT.value,
            "description": description,
            "collection_agent_id": collection_agent_id,
        })

        try:
            updated = await self.db.update_by_id(
                "so_centers", "id", so_center_id, {"wallet_balance": str(new_balance)}
            )
            if not updated:
                raise DatabaseError(f"Wallet balance of SO Center {so_center_id} was not updated")
        except DatabaseError:
            if transaction and transaction.get("id"):
                try:
                    await self.db.delete_by_id("wallet_transactions", "id", transaction["id"])
                except DatabaseError as e:
                    logger.error(
                        f"Orphaned wallet transaction {transaction['id']} for SO Center {so_center_id}: {e}"
                    )
            raise

        logger.info(f"Wallet of SO Center {so_center_id} credited {settings.CURRENCY_SYMBOL}{amount}, balance {new_balance}")
        return new_balance

    async def _credit_wallet_safely(
        self,
        student: StudentBalance,
        amount: Decimal,
        description: str,
        collection_agent_id: Optional[str],
    ) -> bool:
        if not student.so_center_id:
            logger.warning(f"Student {student.label} has no SO Center, wallet not credited")
            return False
        try:
            await self.credit_wallet(student.so_center_id, amount, description, collection_agent_id)
            return True
        except DatabaseError as e:
            logger.error(f"Wallet credit for SO Center {student.so_center_id} failed: {e}")
            return False

    async def get_student_payments(self, student_id: str) -> List[PaymentResponse]:
        rows = await self.db.select_all(
            "payments", {"student_id": student_id}, order_by="created_at", ascending=False
        )
        return [PaymentResponse.model_validate(row) for row in rows]
