from fastapi import Depends
from tuition_ledger.core.clock import Clock, system_clock
from tuition_ledger.db.supabase import SupabaseQueries, get_supabase_admin_client
from tuition_ledger.services.fee_calculation_service import FeeCalculationService
from tuition_ledger.services.monthly_fee_scheduler import MonthlyFeeScheduler
from tuition_ledger.services.payment_service import PaymentService


def get_db() -> SupabaseQueries:
    """
    Query helper bound to the service-role client; fee and ledger writes bypass RLS.
    """
    return SupabaseQueries(get_supabase_admin_client())


def get_clock() -> Clock:
    return system_clock


def get_fee_service(
    db: SupabaseQueries = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> FeeCalculationService:
    return FeeCalculationService(db, clock)


def get_scheduler(
    db: SupabaseQueries = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> MonthlyFeeScheduler:
    return MonthlyFeeScheduler(db, clock)


def get_payment_service(db: SupabaseQueries = Depends(get_db)) -> PaymentService:
    return PaymentService(db)
