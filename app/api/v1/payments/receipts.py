"""
Receipt numbers and the descriptive period labels stamped on new payments.
Format: "AP" + creation date (YYYYMMDD, school timezone) + running payment count, zero-padded to 4 digits.
"""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.models import Payment

RECEIPT_PREFIX = "AP"


def school_local(now: datetime) -> datetime:
    """Convert an aware timestamp to the school's wall clock (SCHOOL_TIMEZONE)."""
    return now.astimezone(ZoneInfo(settings.school_timezone))


def format_receipt_number(created_on: date, sequence: int) -> str:
    """
    Examples:
        date(2024, 5, 1), 7    -> AP202405010007
        date(2024, 5, 1), 12345 -> AP2024050112345
    """
    if sequence < 1:
        raise ValueError("sequence must be positive")
    return f"{RECEIPT_PREFIX}{created_on.strftime('%Y%m%d')}{sequence:04d}"


async def next_receipt_number(db: AsyncSession, now: datetime) -> str:
    """Next receipt from the count of payments created so far; uniqueness is enforced by the DB."""
    count = (await db.execute(select(func.count(Payment.id)))).scalar() or 0
    return format_receipt_number(school_local(now).date(), count + 1)


def academic_year_label(now: datetime) -> str:
    year = school_local(now).year
    return f"{year}-{year + 1}"


def payment_month_label(now: datetime) -> str:
    return school_local(now).strftime("%B %Y")
