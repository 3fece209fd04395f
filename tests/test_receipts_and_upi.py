from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.payments.receipts import (
    academic_year_label,
    format_receipt_number,
    next_receipt_number,
    payment_month_label,
    school_local,
)
from app.api.v1.payments.upi import build_upi_uri, encode_uri_component, format_upi_amount, payment_note
from app.core.config import settings


def test_receipt_number_format() -> None:
    assert format_receipt_number(date(2024, 5, 1), 7) == "AP202405010007"
    assert format_receipt_number(date(2024, 5, 1), 12345) == "AP2024050112345"


def test_receipt_sequence_must_be_positive() -> None:
    with pytest.raises(ValueError):
        format_receipt_number(date(2024, 5, 1), 0)


@pytest.mark.asyncio
async def test_first_receipt_of_empty_ledger(db_session: AsyncSession) -> None:
    now = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
    assert await next_receipt_number(db_session, now) == "AP202405010001"


def test_period_labels() -> None:
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert academic_year_label(now) == "2024-2025"
    assert payment_month_label(now) == "May 2024"


@pytest.mark.asyncio
async def test_receipt_date_follows_school_timezone(db_session: AsyncSession, monkeypatch) -> None:
    # 20:00 UTC is 01:30 the next morning in Kolkata
    now = datetime(2024, 5, 1, 20, 0, tzinfo=timezone.utc)
    monkeypatch.setattr(settings, "school_timezone", "Asia/Kolkata")
    assert school_local(now) == datetime(2024, 5, 2, 1, 30, tzinfo=ZoneInfo("Asia/Kolkata"))
    assert await next_receipt_number(db_session, now) == "AP202405020001"

    monkeypatch.setattr(settings, "school_timezone", "UTC")
    assert await next_receipt_number(db_session, now) == "AP202405010001"


def test_period_labels_roll_over_on_school_new_year(monkeypatch) -> None:
    monkeypatch.setattr(settings, "school_timezone", "Asia/Kolkata")
    now = datetime(2024, 12, 31, 19, 0, tzinfo=timezone.utc)
    assert academic_year_label(now) == "2025-2026"
    assert payment_month_label(now) == "January 2025"


def test_amount_drops_trailing_zeros() -> None:
    assert format_upi_amount(Decimal("400.00")) == "400"
    assert format_upi_amount(Decimal("400.50")) == "400.5"
    assert format_upi_amount(Decimal("1000")) == "1000"


def test_uri_component_matches_encode_uri_component() -> None:
    assert encode_uri_component("Astra Preschool") == "Astra%20Preschool"
    assert encode_uri_component("a-b_c.d!e~f*g'h(i)") == "a-b_c.d!e~f*g'h(i)"
    assert encode_uri_component("x&y=z/") == "x%26y%3Dz%2F"


def test_note_falls_back_to_short_id() -> None:
    assert payment_note("Fees", "Aarav", "AS0001", "abc") == "Fees - Aarav (AS0001)"
    assert payment_note("Fees", "Aarav", None, "0123456789abcdef") == "Fees - Aarav (ID: abcdef)"


def test_build_upi_uri() -> None:
    uri = build_upi_uri(
        "astraschool@paytm",
        "Astra Preschool",
        Decimal("400.00"),
        "School Fee Payment - Aarav Sharma (AS0001)",
    )
    assert uri == (
        "upi://pay?pa=astraschool@paytm&pn=Astra%20Preschool&am=400&cu=INR"
        "&tn=School%20Fee%20Payment%20-%20Aarav%20Sharma%20(AS0001)"
    )
