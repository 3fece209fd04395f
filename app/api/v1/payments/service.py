"""Payments service: UPI initiation, parent confirmation, admin verification, cancellation, reminders."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import ParentStudentLink, User
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import PaymentStatus, UserRole
from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    PersistenceError,
)
from app.core.models import FeeAuditLog, Payment, Student
from app.core.notifications import (
    NotificationSink,
    payment_confirmation_message,
    payment_reminder_message,
    send_with_timeout,
)
from app.core.qr import QrEncoder

from . import ledger
from .locks import payment_lock
from .receipts import academic_year_label, next_receipt_number, payment_month_label
from .schemas import (
    PaymentConfirmRequest,
    PaymentInitiateRequest,
    PaymentInitiateResponse,
    PaymentReminderRequest,
    PaymentReminderResponse,
    PaymentResponse,
    PaymentVerifyRequest,
)
from .upi import build_upi_uri, payment_note

logger = logging.getLogger(__name__)

MAX_RECEIPT_ATTEMPTS = 3
MAX_TRANSITION_ATTEMPTS = 3


def _to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def payment_to_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        receipt_number=payment.receipt_number,
        student_id=payment.student_id,
        parent_id=payment.parent_id,
        amount=_to_decimal(payment.amount),
        status=payment.status,
        method=payment.method,
        purpose=payment.purpose,
        notes=payment.notes or "",
        upi_transaction_id=payment.upi_transaction_id,
        verified_by=payment.verified_by,
        verified_at=payment.verified_at,
        confirmed_by_parent=bool(payment.confirmed_by_parent),
        confirmed_at=payment.confirmed_at,
        academic_year=payment.academic_year,
        payment_month=payment.payment_month,
        needs_reconciliation=bool(payment.needs_reconciliation),
        created_at=payment.created_at,
        updated_at=payment.updated_at,
    )


# --- Audit helper ---
def _log_fee_audit(
    db: AsyncSession,
    reference_table: str,
    reference_id: UUID,
    action_type: str,
    old_value: Optional[dict],
    new_value: Optional[dict],
    changed_by: Optional[UUID],
) -> None:
    db.add(
        FeeAuditLog(
            reference_table=reference_table,
            reference_id=reference_id,
            action_type=action_type,
            old_value=old_value,
            new_value=new_value,
            changed_by=changed_by,
        )
    )


async def _load_payment(db: AsyncSession, payment_id: UUID) -> Payment:
    payment = await db.get(Payment, payment_id, populate_existing=True)
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


async def _commit_transition(
    db: AsyncSession,
    payment: Payment,
    transition: ledger.Transition,
    values: dict,
    changed_by: UUID,
) -> bool:
    """
    Write one ledger edge: compare-and-set the status, then the balance effect, in one transaction.

    Returns False without writing anything when the payment is no longer in
    transition.source (another request moved it first). `payment` is refreshed
    from the database either way.
    """
    payment_id = payment.id
    try:
        result = await db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == transition.source.value)
            .values(status=transition.target.value, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            await db.refresh(payment)
            return False

        balance_synced = True
        if transition.effect != ledger.BalanceEffect.NONE:
            student_result = await db.execute(
                update(Student)
                .where(Student.id == payment.student_id)
                .values(**ledger.balance_update_values(transition.effect, _to_decimal(payment.amount)))
                .execution_options(synchronize_session=False)
            )
            if student_result.rowcount != 1:
                balance_synced = False
                logger.warning(
                    "Payment %s moved %s -> %s but student %s was not found; flagged for reconciliation",
                    payment.receipt_number,
                    transition.source.value,
                    transition.target.value,
                    payment.student_id,
                )
                await db.execute(
                    update(Payment)
                    .where(Payment.id == payment.id)
                    .values(needs_reconciliation=True)
                    .execution_options(synchronize_session=False)
                )

        _log_fee_audit(
            db,
            "payments",
            payment.id,
            transition.action.value.upper(),
            {"status": transition.source.value},
            {
                "status": transition.target.value,
                "balance_effect": transition.effect.value,
                "amount": str(payment.amount),
                "balance_synced": balance_synced,
            },
            changed_by,
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to write %s for payment %s: %s", transition.action.value, payment_id, e)
        raise PersistenceError("Failed to update payment") from e

    await db.refresh(payment)
    return True


# --- Initiation ---
async def initiate_payment(
    db: AsyncSession,
    payload: PaymentInitiateRequest,
    current_user: CurrentUser,
    qr_encoder: QrEncoder,
) -> PaymentInitiateResponse:
    """Create a pending payment and the UPI link / QR the parent pays with. No balance change."""
    amount = _to_decimal(payload.amount)
    if amount <= 0:
        raise InvalidInputError("Amount must be greater than 0")

    student = await db.get(Student, payload.student_id)
    if not student:
        raise NotFoundError("Student not found")
    if not current_user.can_access_student(student.id):
        raise ForbiddenError("You can only make payments for your own children")

    purpose = payload.purpose.strip() or "School Fee Payment"
    student_name = student.name
    note = payment_note(purpose, student_name, student.student_code, str(student.id))
    payment_uri = build_upi_uri(settings.school_upi_id, settings.school_name, amount, note)
    qr_image = qr_encoder.encode(payment_uri)

    payment: Optional[Payment] = None
    for attempt in range(1, MAX_RECEIPT_ATTEMPTS + 1):
        now = _utcnow()
        try:
            receipt_number = await next_receipt_number(db, now)
            payment = Payment(
                receipt_number=receipt_number,
                student_id=payload.student_id,
                parent_id=current_user.id,
                amount=amount,
                status=PaymentStatus.pending.value,
                method=payload.method.value,
                purpose=purpose,
                notes=(payload.notes or "").strip(),
                academic_year=academic_year_label(now),
                payment_month=payment_month_label(now),
                created_at=now,
                updated_at=now,
            )
            db.add(payment)
            await db.flush()
            _log_fee_audit(
                db,
                "payments",
                payment.id,
                "CREATE",
                None,
                {
                    "receipt_number": receipt_number,
                    "student_id": str(payload.student_id),
                    "amount": str(amount),
                    "method": payment.method,
                },
                current_user.id,
            )
            await db.commit()
            break
        except IntegrityError:
            await db.rollback()
            payment = None
            logger.warning("Receipt number collision (attempt %d/%d)", attempt, MAX_RECEIPT_ATTEMPTS)
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceError("Failed to create payment record") from e

    if payment is None:
        raise ConflictError("Could not allocate a unique receipt number, please retry")

    await db.refresh(payment)
    logger.info("UPI QR generated for student %s, amount %s, receipt %s", student_name, amount, payment.receipt_number)
    return PaymentInitiateResponse(
        payment=payment_to_response(payment),
        payment_uri=payment_uri,
        qr_image=qr_image,
        payee_id=settings.school_upi_id,
        student_name=student_name,
    )


# --- Confirmation ---
async def _notify_payment_confirmed(
    db: AsyncSession,
    payment: Payment,
    notifier: NotificationSink,
) -> None:
    """Best effort: the transition is already committed whatever happens here."""
    try:
        parent = await db.get(User, payment.parent_id)
        if not parent or not parent.phone or not parent.carrier:
            return
        student = await db.get(Student, payment.student_id)
        student_name = student.name if student else "your child"
        phone, carrier = parent.phone, parent.carrier
    except SQLAlchemyError as e:
        logger.warning("Could not load contact details for payment %s: %s", payment.receipt_number, e)
        return

    message = payment_confirmation_message(
        settings.school_name, student_name, _to_decimal(payment.amount), payment.receipt_number
    )
    result = await send_with_timeout(notifier, phone, carrier, message, settings.notification_timeout_seconds)
    if not result.success:
        logger.warning("Payment confirmation SMS for %s not delivered: %s", payment.receipt_number, result.error)


async def confirm_payment(
    db: AsyncSession,
    payment_id: UUID,
    payload: PaymentConfirmRequest,
    current_user: CurrentUser,
    notifier: NotificationSink,
) -> PaymentResponse:
    """
    Parent-side confirmation: pending -> completed and the balance effect, once.

    Confirmation is provisional completion (the parent's word that the UPI
    transfer went through); an admin may later reject it through verification.
    Confirming a payment that is not pending returns it unchanged.
    """
    async with payment_lock(payment_id):
        payment = await _load_payment(db, payment_id)
        if not current_user.is_admin and payment.parent_id != current_user.id:
            raise ForbiddenError("You can only confirm your own payments")

        transition = ledger.plan_confirmation(PaymentStatus(payment.status))
        if transition is None:
            logger.info("Payment %s already %s; confirmation ignored", payment.receipt_number, payment.status)
            return payment_to_response(payment)

        now = _utcnow()
        upi_transaction_id = (payload.upi_transaction_id or "").strip() or f"UPI{int(now.timestamp() * 1000)}"
        committed = await _commit_transition(
            db,
            payment,
            transition,
            {
                "confirmed_by_parent": True,
                "confirmed_at": now,
                "upi_transaction_id": upi_transaction_id,
            },
            changed_by=current_user.id,
        )
    if not committed:
        logger.info("Payment %s was confirmed concurrently; returning current state", payment.receipt_number)
        return payment_to_response(payment)

    logger.info("Payment confirmed: %s", payment.receipt_number)
    await _notify_payment_confirmed(db, payment, notifier)
    return payment_to_response(payment)


# --- Verification ---
async def verify_payment(
    db: AsyncSession,
    payment_id: UUID,
    payload: PaymentVerifyRequest,
    current_user: CurrentUser,
) -> PaymentResponse:
    """Admin decision: accept (-> completed) or reject (-> failed), with the edge's balance effect."""
    if current_user.role != UserRole.ADMIN:
        raise ForbiddenError("Only administrators can verify payments")

    async with payment_lock(payment_id):
        for _ in range(MAX_TRANSITION_ATTEMPTS):
            payment = await _load_payment(db, payment_id)
            transition = ledger.plan_verification(
                PaymentStatus(payment.status),
                payload.verified,
                already_verified=payment.verified_at is not None,
            )
            if transition is None:
                return payment_to_response(payment)

            committed = await _commit_transition(
                db,
                payment,
                transition,
                {"verified_by": current_user.id, "verified_at": _utcnow()},
                changed_by=current_user.id,
            )
            if committed:
                logger.info("Payment verification updated: %s status=%s", payment.receipt_number, payment.status)
                return payment_to_response(payment)

    raise ConflictError("Payment was modified concurrently, please retry")


# --- Cancellation ---
async def cancel_payment(
    db: AsyncSession,
    payment_id: UUID,
    current_user: CurrentUser,
) -> PaymentResponse:
    """Abandon a pending payment (QR never paid). No balance change."""
    async with payment_lock(payment_id):
        for _ in range(MAX_TRANSITION_ATTEMPTS):
            payment = await _load_payment(db, payment_id)
            if not current_user.is_admin and payment.parent_id != current_user.id:
                raise ForbiddenError("You can only cancel your own payments")
            transition = ledger.plan_cancellation(PaymentStatus(payment.status))
            committed = await _commit_transition(db, payment, transition, {}, changed_by=current_user.id)
            if committed:
                logger.info("Payment cancelled: %s", payment.receipt_number)
                return payment_to_response(payment)

    raise ConflictError("Payment was modified concurrently, please retry")


# --- Reminders ---
async def _find_reminder_contact(db: AsyncSession, student: Student) -> Optional[User]:
    linked = (
        await db.execute(
            select(User)
            .join(ParentStudentLink, ParentStudentLink.parent_id == User.id)
            .where(
                ParentStudentLink.student_id == student.id,
                User.role == UserRole.PARENT.value,
                User.phone.is_not(None),
                User.carrier.is_not(None),
            )
            .order_by(ParentStudentLink.created_at)
        )
    ).scalars().first()
    if linked:
        return linked
    return (
        await db.execute(
            select(User).where(
                User.phone == student.parent_phone,
                User.role == UserRole.PARENT.value,
                User.carrier.is_not(None),
            )
        )
    ).scalars().first()


async def send_payment_reminder(
    db: AsyncSession,
    payload: PaymentReminderRequest,
    current_user: CurrentUser,
    notifier: NotificationSink,
) -> PaymentReminderResponse:
    if current_user.role != UserRole.ADMIN:
        raise ForbiddenError("Only administrators can send payment reminders")

    student = await db.get(Student, payload.student_id)
    if not student:
        raise NotFoundError("Student not found")

    parent = await _find_reminder_contact(db, student)
    if not parent:
        raise NotFoundError("Parent contact information not found")

    message = (payload.message or "").strip() or payment_reminder_message(
        settings.school_name, student.name, _to_decimal(student.balance)
    )
    result = await send_with_timeout(
        notifier, parent.phone, parent.carrier, message, settings.notification_timeout_seconds
    )
    if not result.success:
        logger.warning("Payment reminder for student %s not delivered: %s", student.student_code, result.error)
        return PaymentReminderResponse(
            success=False,
            message="Failed to send payment reminder",
            error=result.error,
        )
    return PaymentReminderResponse(success=True, message="Payment reminder sent successfully")
