from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.core.enums import UserRole


class LoginRequest(BaseModel):
    # Username, email or phone
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserInfo(BaseModel):
    id: UUID
    name: str
    username: str
    role: UserRole
    email: Optional[str] = None
    phone: Optional[str] = None
    linked_student_ids: List[UUID] = Field(default_factory=list)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserInfo
    issued_at: datetime


class LinkedStudentSummary(BaseModel):
    id: UUID
    student_code: str
    name: str
    class_name: str
    fee_paid: Decimal
    balance: Decimal


class ProfileResponse(BaseModel):
    user: UserInfo
    students: List[LinkedStudentSummary] = Field(default_factory=list)


class ParentCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    username: str = Field(..., min_length=3, max_length=20)
    password: str = Field(..., min_length=6)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    carrier: Optional[str] = Field(None, description="SMS carrier key, e.g. airtel, jio, vodafone")
    student_ids: List[UUID] = Field(default_factory=list)


class LinkStudentRequest(BaseModel):
    student_id: UUID


class LinkStudentResponse(BaseModel):
    success: bool
    message: str
    student_count: int


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for authorization checks."""

    id: UUID
    role: UserRole
    linked_student_ids: List[UUID] = Field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def can_access_student(self, student_id: UUID) -> bool:
        return self.is_admin or student_id in self.linked_student_ids
