"""Unit tests for SMS message text, sinks and the send timeout."""

import asyncio
import base64
import smtplib
from decimal import Decimal

import pytest

from app.core.config import settings
from app.core.notifications import (
    EmailSmsGateway,
    LoggingNotificationSink,
    NotificationResult,
    NotificationSink,
    build_notification_sink,
    payment_confirmation_message,
    payment_reminder_message,
    send_with_timeout,
)
from app.core.qr import QrEncoder, QrOptions, build_qr_encoder


class SlowSink(NotificationSink):
    async def send(self, phone: str, carrier: str, message: str) -> NotificationResult:
        await asyncio.sleep(5)
        return NotificationResult(success=True)


class BrokenSink(NotificationSink):
    async def send(self, phone: str, carrier: str, message: str) -> NotificationResult:
        raise RuntimeError("boom")


def test_message_text() -> None:
    assert payment_confirmation_message("Astra Preschool", "Aarav", Decimal("400.00"), "AP202405010001") == (
        "Payment received: Rs.400 for Aarav. Receipt No: AP202405010001. Thank you! - Astra Preschool"
    )
    assert payment_reminder_message("Astra Preschool", "Aarav", Decimal("650.50")) == (
        "Fee Reminder: ₹650.50 pending for Aarav. Please pay at your earliest. - Astra Preschool"
    )


@pytest.mark.asyncio
async def test_timeout_becomes_failed_result() -> None:
    result = await send_with_timeout(SlowSink(), "9876543210", "airtel", "hi", timeout=0.05)
    assert result.success is False
    assert result.error == "timeout"


@pytest.mark.asyncio
async def test_raising_sink_becomes_failed_result() -> None:
    result = await send_with_timeout(BrokenSink(), "9876543210", "airtel", "hi", timeout=1)
    assert result.success is False
    assert result.error == "boom"


@pytest.mark.asyncio
async def test_gateway_rejects_unknown_carrier() -> None:
    gateway = EmailSmsGateway(host="smtp.example.com", port=587, sender="school@example.com")
    result = await gateway.send("9876543210", "pigeon", "hi")
    assert result.success is False
    assert "Unsupported carrier" in result.error


@pytest.mark.asyncio
async def test_gateway_addresses_carrier_domain(monkeypatch) -> None:
    delivered = []
    gateway = EmailSmsGateway(host="smtp.example.com", port=587, sender="school@example.com")
    monkeypatch.setattr(gateway, "_deliver", lambda to, message: delivered.append((to, message)) or "id-1")

    result = await gateway.send("+91 98765-43210", "Airtel", "hi")
    assert result == NotificationResult(success=True, message_id="id-1")
    assert delivered == [("919876543210@airtelmail.com", "hi")]


@pytest.mark.asyncio
async def test_gateway_smtp_failure(monkeypatch) -> None:
    gateway = EmailSmsGateway(host="smtp.example.com", port=587, sender="school@example.com")

    def fail(to, message):
        raise smtplib.SMTPServerDisconnected("closed")

    monkeypatch.setattr(gateway, "_deliver", fail)
    result = await gateway.send("9876543210", "jio", "hi")
    assert result.success is False
    assert result.error == "closed"


def test_default_sink_without_smtp(monkeypatch) -> None:
    monkeypatch.setattr(settings, "smtp_host", None)
    assert isinstance(build_notification_sink(settings), LoggingNotificationSink)
    monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")
    assert isinstance(build_notification_sink(settings), EmailSmsGateway)


def test_qr_encoder_produces_png_data_url() -> None:
    encoder = build_qr_encoder(settings)
    data_url = encoder.encode("upi://pay?pa=astraschool@paytm&pn=Astra%20Preschool&am=400&cu=INR")
    assert data_url.startswith("data:image/png;base64,")
    png = base64.b64decode(data_url.split(",", 1)[1])
    assert png[:8] == b"\x89PNG\r\n\x1a\n"


def test_qr_options_override() -> None:
    encoder = QrEncoder()
    small = encoder.encode("upi://pay?pa=x", QrOptions(box_size=2, border=1))
    large = encoder.encode("upi://pay?pa=x", QrOptions(box_size=12, border=4))
    assert len(small) < len(large)
