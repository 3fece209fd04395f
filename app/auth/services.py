import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import ParentStudentLink, User
from app.auth.schemas import (
    CurrentUser,
    LinkedStudentSummary,
    LinkStudentResponse,
    LoginRequest,
    LoginResponse,
    ParentCreate,
    ProfileResponse,
    UserInfo,
)
from app.auth.security import create_access_token, hash_password, verify_password
from app.core.enums import UserRole
from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
)
from app.core.models import Student

logger = logging.getLogger(__name__)


async def _linked_student_ids(db: AsyncSession, parent_id: UUID) -> List[UUID]:
    result = await db.execute(
        select(ParentStudentLink.student_id).where(ParentStudentLink.parent_id == parent_id)
    )
    return [row[0] for row in result.all()]


def _user_info(user: User, linked_student_ids: List[UUID]) -> UserInfo:
    return UserInfo(
        id=user.id,
        name=user.full_name,
        username=user.username,
        role=UserRole(user.role),
        email=user.email,
        phone=user.phone,
        linked_student_ids=linked_student_ids,
    )


async def login_user(db: AsyncSession, payload: LoginRequest) -> LoginResponse:
    identifier = payload.username.strip()

    # 1. Find user by username, email or phone
    user_stmt = select(User).where(
        or_(User.username == identifier, User.email == identifier.lower(), User.phone == identifier)
    )
    user_result = await db.execute(user_stmt)
    user: Optional[User] = user_result.scalars().first()
    if not user:
        raise AuthenticationError("Invalid credentials")

    # 2. Verify password hash
    if not verify_password(payload.password, user.password_hash):
        logger.info("Password mismatch for user %s", user.username)
        raise AuthenticationError("Invalid credentials")

    # 3. Check user status
    if user.status != "ACTIVE":
        raise ForbiddenError("Account is deactivated. Please contact administration.")

    linked = await _linked_student_ids(db, user.id) if user.role == UserRole.PARENT.value else []
    issued_at = datetime.now(timezone.utc)

    access_payload = {
        "sub": str(user.id),
        "user_id": str(user.id),
        "role": user.role,
        "iat": int(issued_at.timestamp()),
    }
    access_token = create_access_token(subject=access_payload)
    logger.info("Login successful for user %s (role=%s)", user.username, user.role)

    return LoginResponse(
        access_token=access_token,
        user=_user_info(user, linked),
        issued_at=issued_at,
    )


async def get_profile(db: AsyncSession, current_user: CurrentUser) -> ProfileResponse:
    user = await db.get(User, current_user.id)
    if not user:
        raise NotFoundError("User not found")
    linked = await _linked_student_ids(db, user.id)
    students: List[Student] = []
    if linked:
        result = await db.execute(select(Student).where(Student.id.in_(linked)).order_by(Student.name))
        students = list(result.scalars().all())
    return ProfileResponse(
        user=_user_info(user, linked),
        students=[
            LinkedStudentSummary(
                id=s.id,
                student_code=s.student_code,
                name=s.name,
                class_name=s.class_name,
                fee_paid=s.fee_paid,
                balance=s.balance,
            )
            for s in students
        ],
    )


async def create_parent(db: AsyncSession, payload: ParentCreate) -> UserInfo:
    """Create a parent account, optionally linked to existing students."""
    username = payload.username.strip()
    existing = (
        await db.execute(select(User.id).where(User.username == username))
    ).scalar_one_or_none()
    if existing:
        raise ConflictError("Username already exists")

    student_ids = list(dict.fromkeys(payload.student_ids))
    if student_ids:
        found = (
            await db.execute(select(Student.id).where(Student.id.in_(student_ids)))
        ).scalars().all()
        missing = set(student_ids) - set(found)
        if missing:
            raise NotFoundError("Student not found")

    user = User(
        full_name=payload.full_name.strip(),
        username=username,
        email=payload.email.lower() if payload.email else None,
        phone=(payload.phone or "").strip() or None,
        carrier=(payload.carrier or "").strip().lower() or None,
        password_hash=hash_password(payload.password),
        role=UserRole.PARENT.value,
        status="ACTIVE",
    )
    try:
        db.add(user)
        await db.flush()
        for sid in student_ids:
            db.add(ParentStudentLink(parent_id=user.id, student_id=sid))
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Username or email already in use") from e
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to create parent account") from e
    await db.refresh(user)
    return _user_info(user, student_ids)


async def link_student_to_parent(
    db: AsyncSession,
    parent_id: UUID,
    student_id: UUID,
) -> LinkStudentResponse:
    parent = await db.get(User, parent_id)
    if not parent or parent.role != UserRole.PARENT.value:
        raise NotFoundError("Parent not found")
    student = await db.get(Student, student_id)
    if not student:
        raise NotFoundError("Student not found")

    linked = await _linked_student_ids(db, parent_id)
    if student_id in linked:
        raise ConflictError("Student already linked to this parent")

    try:
        db.add(ParentStudentLink(parent_id=parent_id, student_id=student_id))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to link student") from e

    return LinkStudentResponse(
        success=True,
        message="Student linked successfully",
        student_count=len(linked) + 1,
    )
