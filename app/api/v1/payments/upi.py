"""UPI deep links understood by UPI wallets (GPay, PhonePe, Paytm...)."""

from decimal import Decimal
from typing import Optional
from urllib.parse import quote

# Same unreserved set as JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_uri_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def format_upi_amount(amount: Decimal) -> str:
    """400.00 -> "400", 400.50 -> "400.5"."""
    return format(Decimal(amount).normalize(), "f")


def payment_note(purpose: str, student_name: str, student_code: Optional[str], student_id: str) -> str:
    identity = student_code or f"ID: {student_id[-6:]}"
    return f"{purpose} - {student_name} ({identity})"


def build_upi_uri(payee_id: str, payee_name: str, amount: Decimal, note: str) -> str:
    return (
        f"upi://pay?pa={payee_id}"
        f"&pn={encode_uri_component(payee_name)}"
        f"&am={format_upi_amount(amount)}"
        f"&cu=INR"
        f"&tn={encode_uri_component(note)}"
    )
