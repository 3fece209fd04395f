from uuid import UUID

import pytest
from fastapi import HTTPException
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import ParentStudentLink, User
from app.auth.rbac import require_admin
from app.core.config import settings
from app.core.enums import UserRole
from app.db.seed_admin import seed_admin

from conftest import auth_headers, create_student, create_user


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, parent, student) -> None:
    response = await client.post("/api/v1/auth/login", json={"username": "priya", "password": "secret123"})
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert data["user"]["role"] == "parent"
    assert data["user"]["linked_student_ids"] == [str(student.id)]

    # The issued token authenticates
    me = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"}
    )
    assert me.status_code == 200
    assert me.json()["students"][0]["student_code"] == "AS0001"


@pytest.mark.asyncio
async def test_login_by_phone(client: AsyncClient, parent) -> None:
    response = await client.post("/api/v1/auth/login", json={"username": "9876543210", "password": "secret123"})
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_login_invalid_credentials(client: AsyncClient, parent) -> None:
    response = await client.post("/api/v1/auth/login", json={"username": "priya", "password": "wrong"})
    assert response.status_code == 401
    assert response.json()["detail"]["kind"] == "unauthorized"

    response = await client.post("/api/v1/auth/login", json={"username": "nobody", "password": "wrong"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_inactive_account(client: AsyncClient, db_session: AsyncSession) -> None:
    await create_user(db_session, "gone", UserRole.PARENT, status="INACTIVE")
    response = await client.post("/api/v1/auth/login", json={"username": "gone", "password": "secret123"})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_login_oauth_form(client: AsyncClient, admin) -> None:
    response = await client.post(
        "/api/v1/auth/login-oauth", data={"username": "admin", "password": "secret123"}
    )
    assert response.status_code == 200
    assert response.json()["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_me_rejects_bad_token(client: AsyncClient) -> None:
    response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_admin_creates_parent_and_links(client: AsyncClient, db_session: AsyncSession, admin, student) -> None:
    headers = auth_headers(admin)
    response = await client.post(
        "/api/v1/auth/parents",
        json={
            "full_name": "Neha Mehta",
            "username": "neha",
            "password": "secret123",
            "email": "Neha@Example.com",
            "phone": "9123456780",
            "carrier": "Jio",
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["role"] == "parent"
    assert data["email"] == "neha@example.com"
    parent_id = UUID(data["id"])

    response = await client.post(
        f"/api/v1/auth/parents/{parent_id}/students", json={"student_id": str(student.id)}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["student_count"] == 1

    response = await client.post(
        f"/api/v1/auth/parents/{parent_id}/students", json={"student_id": str(student.id)}, headers=headers
    )
    assert response.status_code == 409

    links = (
        await db_session.execute(select(ParentStudentLink).where(ParentStudentLink.parent_id == parent_id))
    ).scalars().all()
    assert len(links) == 1

    response = await client.post(
        "/api/v1/auth/parents",
        json={"full_name": "Again", "username": "neha", "password": "secret123"},
        headers=headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_parent_cannot_create_parents(client: AsyncClient, parent) -> None:
    response = await client.post(
        "/api/v1/auth/parents",
        json={"full_name": "X", "username": "xyz", "password": "secret123"},
        headers=auth_headers(parent),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_parent_with_unknown_student(client: AsyncClient, db_session, admin) -> None:
    other = await create_student(db_session, code="AS0002")
    response = await client.post(
        "/api/v1/auth/parents",
        json={
            "full_name": "X",
            "username": "xyz",
            "password": "secret123",
            "student_ids": [str(other.id), str(admin.id)],
        },
        headers=auth_headers(admin),
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_seed_admin(db_session: AsyncSession, monkeypatch) -> None:
    monkeypatch.setattr(settings, "admin_username", "root")
    monkeypatch.setattr(settings, "admin_password", "changeme")
    assert await seed_admin(db_session) is True
    assert await seed_admin(db_session) is True

    users = (await db_session.execute(select(User).where(User.username == "root"))).scalars().all()
    assert len(users) == 1
    assert users[0].role == UserRole.ADMIN.value


@pytest.mark.asyncio
async def test_seed_admin_skips_without_credentials(db_session: AsyncSession, monkeypatch) -> None:
    monkeypatch.setattr(settings, "admin_username", None)
    assert await seed_admin(db_session) is False


@pytest.mark.asyncio
async def test_require_admin_dependency(admin_user, parent_user) -> None:
    assert await require_admin(admin_user) is admin_user
    with pytest.raises(HTTPException) as exc:
        await require_admin(parent_user)
    assert exc.value.status_code == 403
    assert exc.value.detail["kind"] == "forbidden"
