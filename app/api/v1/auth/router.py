from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin
from app.auth.schemas import (
    CurrentUser,
    LinkStudentRequest,
    LinkStudentResponse,
    LoginRequest,
    LoginResponse,
    ParentCreate,
    ProfileResponse,
    UserInfo,
)
from app.auth.services import (
    create_parent,
    get_profile,
    link_student_to_parent,
    login_user,
)
from app.core.exceptions import ServiceError
from app.db.session import get_db

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=http_status.HTTP_200_OK,
)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    try:
        return await login_user(db, payload)
    except ServiceError as e:
        if e.status_code == http_status.HTTP_401_UNAUTHORIZED:
            raise HTTPException(
                status_code=e.status_code,
                detail=e.to_detail(),
                headers={"WWW-Authenticate": "Bearer"},
            )
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/login-oauth")
async def login_oauth(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    payload = LoginRequest(
        username=form_data.username.strip(),
        password=form_data.password,
    )
    try:
        result = await login_user(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return {
        "access_token": result.access_token,
        "token_type": "bearer",
    }


@router.get("/me", response_model=ProfileResponse)
async def me(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ProfileResponse:
    try:
        return await get_profile(db, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/parents",
    response_model=UserInfo,
    status_code=http_status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_parent_account(
    payload: ParentCreate,
    db: AsyncSession = Depends(get_db),
) -> UserInfo:
    try:
        return await create_parent(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/parents/{parent_id}/students",
    response_model=LinkStudentResponse,
    dependencies=[Depends(require_admin)],
)
async def link_student(
    parent_id: UUID,
    payload: LinkStudentRequest,
    db: AsyncSession = Depends(get_db),
) -> LinkStudentResponse:
    try:
        return await link_student_to_parent(db, parent_id, payload.student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
