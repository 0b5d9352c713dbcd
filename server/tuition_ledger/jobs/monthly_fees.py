"""
tuition_ledger/jobs/monthly_fees.py
Cron entry point for the monthly fee accrual.

Schedule it for midnight on the 1st of every month, e.g.

    0 0 1 * *  monthly-fees

Re-running a period is safe: students already charged for it are skipped.
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from tuition_ledger.core.config import settings
from tuition_ledger.core.exceptions import FeeEngineError
from tuition_ledger.db.supabase import SupabaseQueries
from tuition_ledger.services.monthly_fee_scheduler import MonthlyFeeScheduler

logger = logging.getLogger("tuition_ledger.jobs.monthly_fees")


async def run(preview: bool, period: Optional[str], db: Optional[SupabaseQueries] = None) -> dict:
    scheduler = MonthlyFeeScheduler(db or SupabaseQueries())
    if preview:
        result = await scheduler.preview_monthly_fee_update(period)
    else:
        result = await scheduler.add_monthly_fees_to_all_students(period)
    return result.model_dump(mode="json")


def main(argv: Optional[List[str]] = None) -> int:
    """Run or preview the monthly fee accrual."""
    parser = argparse.ArgumentParser(description="Add one month's fee to every active student")
    parser.add_argument("--preview", action="store_true", help="Show the changes without writing them")
    parser.add_argument("--period", default=None, help="Billing period YYYY-MM (default: current month)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        summary = asyncio.run(run(args.preview, args.period))
    except (FeeEngineError, ValueError) as e:
        logger.error(f"Monthly fee {'preview' if args.preview else 'update'} failed: {e}")
        return 1

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
