"""
Balance reconciliation: rebuild Student.fee_paid / balance from completed payments.

The ledger keeps the student fields incrementally; this pass is the on-demand
repair for drift (a transition whose student row was missing, manual edits,
restored backups). Run it when no payment transitions are in flight.
"""

import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import PaymentStatus
from app.core.exceptions import NotFoundError, PersistenceError
from app.core.models import FeeAuditLog, Payment, Student

from .schemas import ReconciliationItem, ReconciliationResponse

logger = logging.getLogger(__name__)


def _to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


async def reconcile_balances(
    db: AsyncSession,
    student_id: Optional[UUID] = None,
    changed_by: Optional[UUID] = None,
) -> ReconciliationResponse:
    paid_subq = (
        select(
            Payment.student_id.label("student_id"),
            func.coalesce(func.sum(Payment.amount), 0).label("total_paid"),
        )
        .where(Payment.status == PaymentStatus.completed.value)
        .group_by(Payment.student_id)
    ).subquery()

    stmt = (
        select(Student, func.coalesce(paid_subq.c.total_paid, 0))
        .outerjoin(paid_subq, Student.id == paid_subq.c.student_id)
        .order_by(Student.student_code)
        # balances are written with Core UPDATEs, so cached rows may be stale
        .execution_options(populate_existing=True)
    )
    if student_id is not None:
        stmt = stmt.where(Student.id == student_id)
    rows = (await db.execute(stmt)).all()
    if student_id is not None and not rows:
        raise NotFoundError("Student not found")

    corrected: List[ReconciliationItem] = []
    checked_ids = []
    try:
        for student, total_paid in rows:
            checked_ids.append(student.id)
            expected = _to_decimal(student.opening_fee_paid) + _to_decimal(total_paid)
            previous_fee_paid = _to_decimal(student.fee_paid)
            if expected == previous_fee_paid:
                continue
            previous_balance = _to_decimal(student.balance)
            delta = expected - previous_fee_paid
            new_balance = max(Decimal("0"), previous_balance - delta)

            student.fee_paid = expected
            student.balance = new_balance
            db.add(
                FeeAuditLog(
                    reference_table="students",
                    reference_id=student.id,
                    action_type="RECONCILE",
                    old_value={"fee_paid": str(previous_fee_paid), "balance": str(previous_balance)},
                    new_value={"fee_paid": str(expected), "balance": str(new_balance)},
                    changed_by=changed_by,
                )
            )
            corrected.append(
                ReconciliationItem(
                    student_id=student.id,
                    previous_fee_paid=previous_fee_paid,
                    fee_paid=expected,
                    previous_balance=previous_balance,
                    balance=new_balance,
                )
            )
            logger.warning(
                "Reconciled student %s: fee_paid %s -> %s, balance %s -> %s",
                student.student_code,
                previous_fee_paid,
                expected,
                previous_balance,
                new_balance,
            )

        if checked_ids:
            await db.execute(
                update(Payment)
                .where(Payment.student_id.in_(checked_ids), Payment.needs_reconciliation.is_(True))
                .values(needs_reconciliation=False)
                .execution_options(synchronize_session=False)
            )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to reconcile balances") from e

    logger.info("Reconciliation checked %d student(s), corrected %d", len(checked_ids), len(corrected))
    return ReconciliationResponse(corrected=corrected, students_checked=len(checked_ids))
