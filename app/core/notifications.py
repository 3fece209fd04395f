"""
SMS notifications through carrier email-to-SMS gateways.

A sink is built once at startup (see create_app) and handed to services through
the get_notifier dependency. Sinks never raise: every send resolves to a
NotificationResult, so a delivery problem cannot fail a ledger transition.
"""

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from decimal import Decimal
from email.mime.text import MIMEText
from typing import Dict, Optional

from fastapi import Request

from app.core.config import Settings
from app.core.exceptions import NotificationError

logger = logging.getLogger(__name__)

SMS_GATEWAYS: Dict[str, str] = {
    "verizon": "vtext.com",
    "att": "txt.att.net",
    "tmobile": "tmomail.net",
    "sprint": "messaging.sprintpcs.com",
    "airtel": "airtelmail.com",
    "jio": "jiomail.com",
    "vodafone": "vodafonemail.com",
}


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def _format_amount(amount: Decimal) -> str:
    value = Decimal(amount)
    if value == value.to_integral_value():
        return str(value.quantize(Decimal("1")))
    return str(value.quantize(Decimal("0.01")))


def payment_confirmation_message(school_name: str, student_name: str, amount: Decimal, receipt_number: str) -> str:
    return (
        f"Payment received: Rs.{_format_amount(amount)} for {student_name}. "
        f"Receipt No: {receipt_number}. Thank you! - {school_name}"
    )


def payment_reminder_message(school_name: str, student_name: str, balance: Decimal) -> str:
    return (
        f"Fee Reminder: ₹{_format_amount(balance)} pending for {student_name}. "
        f"Please pay at your earliest. - {school_name}"
    )


class NotificationSink:
    """Contract for SMS delivery: send(phone, carrier, message) -> NotificationResult."""

    async def send(self, phone: str, carrier: str, message: str) -> NotificationResult:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    """Used when no SMTP relay is configured; records the message in the log only."""

    async def send(self, phone: str, carrier: str, message: str) -> NotificationResult:
        logger.info("SMS (not delivered, no SMTP configured) to %s via %s: %s", phone, carrier, message)
        return NotificationResult(success=True, message_id=None)


class EmailSmsGateway(NotificationSink):
    """Delivers SMS by mailing <phone>@<carrier gateway> through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_ssl: bool = False,
        timeout: float = 20.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.timeout = timeout

    def _address_for(self, phone: str, carrier: str) -> str:
        gateway = SMS_GATEWAYS.get((carrier or "").strip().lower())
        if not gateway:
            raise NotificationError(f"Unsupported carrier: {carrier}")
        digits = "".join(ch for ch in phone if ch.isdigit())
        if not digits:
            raise NotificationError("Invalid phone number")
        return f"{digits}@{gateway}"

    def _deliver(self, to_address: str, message: str) -> str:
        msg = MIMEText(message, "plain", "utf-8")
        msg["Subject"] = ""
        msg["From"] = self.sender
        msg["To"] = to_address

        if self.use_ssl:
            smtp = smtplib.SMTP_SSL(self.host, self.port, context=ssl.create_default_context(), timeout=self.timeout)
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            smtp.starttls(context=ssl.create_default_context())
        try:
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.sendmail(self.sender, [to_address], msg.as_string())
        finally:
            smtp.quit()
        return msg.get("Message-ID") or to_address

    async def send(self, phone: str, carrier: str, message: str) -> NotificationResult:
        try:
            to_address = self._address_for(phone, carrier)
            message_id = await asyncio.to_thread(self._deliver, to_address, message)
        except NotificationError as e:
            logger.warning("SMS to %s rejected: %s", phone, e.message)
            return NotificationResult(success=False, error=e.message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMS to %s via %s failed: %s", phone, carrier, e)
            return NotificationResult(success=False, error=str(e))
        logger.info("SMS sent to %s via %s", phone, carrier)
        return NotificationResult(success=True, message_id=message_id)


def build_notification_sink(settings: Settings) -> NotificationSink:
    if not settings.smtp_host:
        return LoggingNotificationSink()
    return EmailSmsGateway(
        host=settings.smtp_host,
        port=settings.smtp_port,
        sender=settings.sms_sender or settings.smtp_username or "no-reply@localhost",
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_ssl=settings.smtp_use_ssl,
    )


async def send_with_timeout(
    sink: NotificationSink,
    phone: str,
    carrier: str,
    message: str,
    timeout: float,
) -> NotificationResult:
    """Bound a send by timeout; a slow or broken sink degrades to a failed result."""
    try:
        return await asyncio.wait_for(sink.send(phone, carrier, message), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("SMS to %s timed out after %.1fs", phone, timeout)
        return NotificationResult(success=False, error="timeout")
    except Exception as e:  # noqa: BLE001
        logger.exception("SMS sink raised for %s", phone)
        return NotificationResult(success=False, error=str(e))


def get_notifier(request: Request) -> NotificationSink:
    return request.app.state.notifier
