import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, List, Tuple

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.auth.models import ParentStudentLink, User
from app.auth.schemas import CurrentUser
from app.auth.security import create_access_token, hash_password
from app.core.enums import UserRole
from app.core.models import Student
from app.core.notifications import NotificationResult, NotificationSink, get_notifier
from app.core.qr import QrEncoder, QrOptions, get_qr_encoder
from app.db.schema_check import ensure_tables
from app.db.session import get_db
from app.main import app


class RecordingNotifier(NotificationSink):
    """Collects sends instead of delivering them; `fail=True` simulates a gateway outage."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: List[Tuple[str, str, str]] = []

    async def send(self, phone: str, carrier: str, message: str) -> NotificationResult:
        self.sent.append((phone, carrier, message))
        if self.fail:
            return NotificationResult(success=False, error="gateway down")
        return NotificationResult(success=True, message_id=f"msg-{len(self.sent)}")


class StaticQrEncoder(QrEncoder):
    def __init__(self) -> None:
        super().__init__(QrOptions())
        self.uris: List[str] = []

    def encode(self, uri: str, options=None) -> str:
        self.uris.append(uri)
        return "data:image/png;base64,QR"


@pytest.fixture()
async def engine(tmp_path):
    """A fresh file-backed SQLite database per test, so separate sessions really are separate connections."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False, future=True)
    await ensure_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def qr_encoder() -> StaticQrEncoder:
    return StaticQrEncoder()


@pytest.fixture()
async def client(session_factory, notifier, qr_encoder) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app; each request gets its own session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_qr_encoder] = lambda: qr_encoder
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_user(
    db: AsyncSession,
    username: str,
    role: UserRole,
    password: str = "secret123",
    phone: str = None,
    carrier: str = None,
    status: str = "ACTIVE",
) -> User:
    user = User(
        full_name=username.title(),
        username=username,
        phone=phone,
        carrier=carrier,
        password_hash=hash_password(password),
        role=role.value,
        status=status,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_student(
    db: AsyncSession,
    code: str = "AS0001",
    name: str = "Aarav Sharma",
    balance: Decimal = Decimal("1000"),
    fee_paid: Decimal = Decimal("0"),
    parent_phone: str = "9876543210",
) -> Student:
    student = Student(
        student_code=code,
        name=name,
        class_name="Nursery",
        opening_fee_paid=fee_paid,
        fee_paid=fee_paid,
        balance=balance,
        parent_name="Priya Sharma",
        parent_phone=parent_phone,
        address="12 MG Road, Pune",
        date_of_birth=date(2021, 3, 14),
        blood_group="O+",
    )
    db.add(student)
    await db.commit()
    await db.refresh(student)
    return student


async def link(db: AsyncSession, parent: User, student: Student) -> None:
    db.add(ParentStudentLink(parent_id=parent.id, student_id=student.id))
    await db.commit()


def as_current_user(user: User, linked_student_ids=None) -> CurrentUser:
    return CurrentUser(id=user.id, role=UserRole(user.role), linked_student_ids=list(linked_student_ids or []))


def auth_headers(user: User) -> dict:
    token = create_access_token(
        subject={"sub": str(user.id), "user_id": str(user.id), "role": user.role}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
async def admin(db_session: AsyncSession) -> User:
    return await create_user(db_session, "admin", UserRole.ADMIN)


@pytest.fixture()
async def student(db_session: AsyncSession) -> Student:
    return await create_student(db_session)


@pytest.fixture()
async def parent(db_session: AsyncSession, student: Student) -> User:
    user = await create_user(db_session, "priya", UserRole.PARENT, phone="9876543210", carrier="airtel")
    await link(db_session, user, student)
    return user


@pytest.fixture()
def admin_user(admin: User) -> CurrentUser:
    return as_current_user(admin)


@pytest.fixture()
def parent_user(parent: User, student: Student) -> CurrentUser:
    return as_current_user(parent, [student.id])
