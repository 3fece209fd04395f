import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class User(Base):
    """Admin or parent account."""

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    full_name = Column(String(255), nullable=False)
    username = Column(String(50), nullable=False, unique=True)
    email = Column(String(255), nullable=True, unique=True)
    phone = Column(String(50), nullable=True, index=True)
    # SMS gateway key for the phone's carrier (e.g. airtel, jio); null disables SMS
    carrier = Column(String(30), nullable=True)
    password_hash = Column(Text, nullable=False)
    # admin | parent
    role = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    student_links = relationship(
        "ParentStudentLink", back_populates="parent", cascade="all, delete-orphan"
    )


class ParentStudentLink(Base):
    """Which students a parent account may see and pay for."""

    __tablename__ = "parent_students"
    __table_args__ = (
        UniqueConstraint("parent_id", "student_id", name="uq_parent_student"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    parent_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    parent = relationship("User", back_populates="student_links")
