"""Student record. fee_paid and balance are owned by the payment ledger."""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Student(Base):
    """
    Preschool student with the fee balance cache.

    fee_paid / balance are mutated only by payment status transitions and the
    reconciliation pass. opening_fee_paid is the amount recorded as already paid
    when the record was created, outside the payment ledger.
    """

    __tablename__ = "students"
    __table_args__ = (
        CheckConstraint(
            "class_name IN ('Play Group','Nursery','LKG','UKG')",
            name="chk_student_class_name",
        ),
        CheckConstraint("balance >= 0", name="chk_student_balance_non_negative"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Human-facing id, "AS" + 4 characters
    student_code = Column(String(6), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    class_name = Column(String(30), nullable=False)

    opening_fee_paid = Column(Numeric(12, 2), nullable=False, default=0)
    fee_paid = Column(Numeric(12, 2), nullable=False, default=0)
    balance = Column(Numeric(12, 2), nullable=False, default=0)

    parent_name = Column(String(255), nullable=False)
    parent_phone = Column(String(50), nullable=False, index=True)
    address = Column(Text, nullable=False)
    date_of_birth = Column(Date, nullable=False)
    blood_group = Column(String(10), nullable=False)
    allergies = Column(Text, nullable=False, default="")
    enrolled_on = Column(Date, nullable=False, default=date.today)

    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    created_by_user = relationship("User", foreign_keys=[created_by])
