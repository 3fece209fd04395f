"""Payment: one fee-payment attempt for a student. Status drives the student balance."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Numeric, String, Text, Uuid

from app.core.enums import PaymentMethod, PaymentStatus
from app.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Payment(Base):
    """
    Ledger entry. student_id / parent_id are lookup references only: payments are
    never deleted or cascaded when a student or parent goes away.
    """

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_payment_amount_positive"),
        CheckConstraint(
            "status IN ('pending','completed','failed','cancelled')",
            name="chk_payment_status",
        ),
        CheckConstraint(
            "method IN ('upi','cash','bank_transfer')",
            name="chk_payment_method",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    receipt_number = Column(String(30), nullable=False, unique=True)

    student_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    parent_id = Column(Uuid(as_uuid=True), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.pending.value, index=True)
    method = Column(String(20), nullable=False, default=PaymentMethod.upi.value)
    purpose = Column(String(255), nullable=False, default="School Fee Payment")
    notes = Column(Text, nullable=False, default="")

    upi_transaction_id = Column(String(100), nullable=True)

    # Set only by admin verification
    verified_by = Column(Uuid(as_uuid=True), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    # Set only by parent confirmation
    confirmed_by_parent = Column(Boolean, nullable=False, default=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    # Descriptive, computed once at creation: "2024-2025", "May 2024"
    academic_year = Column(String(20), nullable=False)
    payment_month = Column(String(30), nullable=False)

    # Status committed but the student balance could not be updated
    needs_reconciliation = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
