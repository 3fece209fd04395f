"""Student records: admin CRUD, parent read access to linked students."""

import logging
import re
import secrets
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import ParentStudentLink
from app.auth.schemas import CurrentUser
from app.core.enums import StudentClass
from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    PersistenceError,
)
from app.core.models import Student

from .schemas import StudentCreate, StudentListResponse, StudentResponse, StudentUpdate

logger = logging.getLogger(__name__)

STUDENT_CODE_RE = re.compile(r"^AS.{4}$")
MAX_CODE_ATTEMPTS = 10


def _validate_class_name(class_name: str) -> str:
    value = class_name.strip()
    valid = [c.value for c in StudentClass]
    if value not in valid:
        raise InvalidInputError(f"Invalid class. Must be one of: {', '.join(valid)}")
    return value


def _random_student_code() -> str:
    return "AS" + "".join(secrets.choice("0123456789") for _ in range(4))


async def _code_exists(db: AsyncSession, code: str) -> bool:
    result = await db.execute(select(Student.id).where(Student.student_code == code))
    return result.scalar_one_or_none() is not None


async def _generate_student_code(db: AsyncSession) -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        code = _random_student_code()
        if not await _code_exists(db, code):
            return code
    raise ConflictError("Could not allocate a unique student code, please retry")


def student_to_response(student: Student) -> StudentResponse:
    return StudentResponse.model_validate(student)


async def create_student(
    db: AsyncSession,
    payload: StudentCreate,
    created_by: Optional[UUID],
) -> StudentResponse:
    class_name = _validate_class_name(payload.class_name)

    if payload.student_code:
        code = payload.student_code.strip().upper()
        if not STUDENT_CODE_RE.match(code):
            raise InvalidInputError('Student code must be "AS" followed by 4 characters')
        if await _code_exists(db, code):
            raise ConflictError("Student code already in use")
    else:
        code = await _generate_student_code(db)

    student = Student(
        student_code=code,
        name=payload.name.strip(),
        class_name=class_name,
        opening_fee_paid=payload.fee_paid,
        fee_paid=payload.fee_paid,
        balance=payload.balance,
        parent_name=payload.parent_name.strip(),
        parent_phone=payload.parent_phone.strip(),
        address=payload.address.strip(),
        date_of_birth=payload.date_of_birth,
        blood_group=payload.blood_group.strip(),
        allergies=(payload.allergies or "").strip(),
        created_by=created_by,
    )
    if payload.enrolled_on is not None:
        student.enrolled_on = payload.enrolled_on

    db.add(student)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Student code already in use")
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to create student") from e
    await db.refresh(student)
    logger.info("Student created: %s (%s)", student.student_code, student.name)
    return student_to_response(student)


async def list_students(
    db: AsyncSession,
    current_user: CurrentUser,
    search: Optional[str] = None,
) -> StudentListResponse:
    stmt = select(Student)
    if not current_user.is_admin:
        if not current_user.linked_student_ids:
            return StudentListResponse(students=[], count=0)
        stmt = stmt.where(Student.id.in_(current_user.linked_student_ids))
    if search and search.strip():
        stmt = stmt.where(func.lower(Student.name).contains(search.strip().lower()))
    stmt = stmt.order_by(Student.created_at.desc())

    result = await db.execute(stmt)
    students = [student_to_response(s) for s in result.scalars().all()]
    return StudentListResponse(students=students, count=len(students))


async def _get_student_or_404(db: AsyncSession, student_id: UUID) -> Student:
    student = await db.get(Student, student_id)
    if not student:
        raise NotFoundError("Student not found")
    return student


async def get_student(
    db: AsyncSession,
    student_id: UUID,
    current_user: CurrentUser,
) -> StudentResponse:
    student = await _get_student_or_404(db, student_id)
    if not current_user.can_access_student(student.id):
        raise ForbiddenError("Access denied")
    return student_to_response(student)


async def update_student(
    db: AsyncSession,
    student_id: UUID,
    payload: StudentUpdate,
) -> StudentResponse:
    student = await _get_student_or_404(db, student_id)
    data = payload.model_dump(exclude_unset=True)

    if data.get("class_name") is not None:
        data["class_name"] = _validate_class_name(data["class_name"])
    for key, value in data.items():
        if value is None:
            continue
        setattr(student, key, value.strip() if isinstance(value, str) else value)

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to update student") from e
    await db.refresh(student)
    return student_to_response(student)


async def delete_student(db: AsyncSession, student_id: UUID) -> None:
    """Remove the record and its parent links. Payments keep their weak student_id reference."""
    student = await _get_student_or_404(db, student_id)
    try:
        await db.execute(delete(ParentStudentLink).where(ParentStudentLink.student_id == student_id))
        await db.delete(student)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to delete student") from e
    logger.info("Student deleted: %s", student_id)
