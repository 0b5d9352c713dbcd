"""
tuition_ledger/core/clock.py
Time source for fee calculation and accrual periods
"""
from datetime import date, datetime
from typing import Callable
from zoneinfo import ZoneInfo

from tuition_ledger.core.config import settings

Clock = Callable[[], date]


def system_clock() -> date:
    """Today's date in the billing timezone"""
    return datetime.now(ZoneInfo(settings.TIMEZONE)).date()


def fixed_clock(today: date) -> Clock:
    """Clock pinned to a single date (catch-up runs, tests)"""
    return lambda: today


def accrual_period(day: date) -> str:
    """Billing period key for the month containing ``day``, e.g. '2025-03'"""
    return f"{day.year:04d}-{day.month:02d}"


def parse_accrual_period(period: str) -> date:
    """
    Parse a 'YYYY-MM' period key into the first day of that month

    Raises:
        ValueError: If the key is not a valid year-month
    """
    try:
        year, month = period.split("-")
        return date(int(year), int(month), 1)
    except ValueError:
        raise ValueError(f"Invalid accrual period '{period}', expected YYYY-MM")
