from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class StudentCreate(BaseModel):
    """student_code is generated ("AS" + 4 digits) when omitted. fee_paid / balance are opening values."""

    student_code: Optional[str] = Field(None, description='"AS" followed by 4 characters, e.g. AS0042')
    name: str = Field(..., min_length=1, max_length=255)
    class_name: str = Field(..., description="Play Group, Nursery, LKG or UKG")
    fee_paid: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    balance: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    parent_name: str = Field(..., min_length=1, max_length=255)
    parent_phone: str = Field(..., min_length=1, max_length=50)
    address: str = Field(..., min_length=1)
    date_of_birth: date
    blood_group: str = Field(..., min_length=1, max_length=10)
    allergies: Optional[str] = None
    enrolled_on: Optional[date] = None


class StudentUpdate(BaseModel):
    # No fee fields: fee_paid / balance change only through payments
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    class_name: Optional[str] = None
    parent_name: Optional[str] = Field(None, min_length=1, max_length=255)
    parent_phone: Optional[str] = Field(None, min_length=1, max_length=50)
    address: Optional[str] = Field(None, min_length=1)
    date_of_birth: Optional[date] = None
    blood_group: Optional[str] = Field(None, min_length=1, max_length=10)
    allergies: Optional[str] = None


class StudentResponse(BaseModel):
    id: UUID
    student_code: str
    name: str
    class_name: str
    opening_fee_paid: Decimal
    fee_paid: Decimal
    balance: Decimal
    parent_name: str
    parent_phone: str
    address: str
    date_of_birth: date
    blood_group: str
    allergies: str = ""
    enrolled_on: date
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StudentListResponse(BaseModel):
    students: List[StudentResponse]
    count: int
