"""Read side of the payment ledger: history, single lookup, statistics."""

from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core.enums import PaymentStatus
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.models import Payment

from .schemas import (
    MonthlyStats,
    PaymentHistoryFilter,
    PaymentHistoryResponse,
    PaymentResponse,
    PaymentStatsResponse,
    StatusAggregate,
)
from .service import payment_to_response

_CENT = Decimal("0.01")


def _money(val) -> Decimal:
    if val is None:
        return Decimal("0.00")
    value = val if isinstance(val, Decimal) else Decimal(str(val))
    return value.quantize(_CENT)


def _start_of_day(day) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def month_start(now: datetime) -> datetime:
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


async def list_payment_history(
    db: AsyncSession,
    current_user: CurrentUser,
    filters: PaymentHistoryFilter,
) -> PaymentHistoryResponse:
    """Newest first. Parents only ever see payments they initiated; date bounds are inclusive whole days (UTC)."""
    stmt = select(Payment)
    if not current_user.is_admin:
        stmt = stmt.where(Payment.parent_id == current_user.id)
    if filters.student_id is not None:
        stmt = stmt.where(Payment.student_id == filters.student_id)
    if filters.status is not None:
        stmt = stmt.where(Payment.status == filters.status.value)
    if filters.start_date is not None:
        stmt = stmt.where(Payment.created_at >= _start_of_day(filters.start_date))
    if filters.end_date is not None:
        stmt = stmt.where(Payment.created_at < _start_of_day(filters.end_date + timedelta(days=1)))
    stmt = stmt.order_by(Payment.created_at.desc(), Payment.receipt_number.desc())

    result = await db.execute(stmt)
    payments = [payment_to_response(p) for p in result.scalars().all()]
    return PaymentHistoryResponse(payments=payments, total=len(payments))


async def get_payment(
    db: AsyncSession,
    payment_id: UUID,
    current_user: CurrentUser,
) -> PaymentResponse:
    payment = await db.get(Payment, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    if not current_user.is_admin and payment.parent_id != current_user.id:
        raise ForbiddenError("Access denied")
    return payment_to_response(payment)


async def get_payment_stats(
    db: AsyncSession,
    current_user: CurrentUser,
    now: Optional[datetime] = None,
) -> PaymentStatsResponse:
    if not current_user.is_admin:
        raise ForbiddenError("Access denied")
    now = now or datetime.now(timezone.utc)

    by_status: Dict[PaymentStatus, StatusAggregate] = {s: StatusAggregate() for s in PaymentStatus}
    rows = (
        await db.execute(
            select(
                Payment.status,
                func.count(Payment.id),
                func.coalesce(func.sum(Payment.amount), 0),
            ).group_by(Payment.status)
        )
    ).all()
    for status_value, count, total in rows:
        by_status[PaymentStatus(status_value)] = StatusAggregate(count=count, total_amount=_money(total))

    monthly = (
        await db.execute(
            select(
                func.count(Payment.id),
                func.coalesce(func.sum(Payment.amount), 0),
                func.coalesce(
                    func.sum(case((Payment.status == PaymentStatus.completed.value, 1), else_=0)), 0
                ),
            ).where(Payment.created_at >= month_start(now))
        )
    ).one()
    total_payments, total_amount, completed_payments = monthly

    return PaymentStatsResponse(
        by_status=by_status,
        current_month=MonthlyStats(
            total_payments=total_payments or 0,
            total_amount=_money(total_amount),
            completed_payments=int(completed_payments or 0),
        ),
    )
