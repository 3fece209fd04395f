"""Payment ledger schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import PaymentMethod, PaymentStatus


# --- Initiation ---
class PaymentInitiateRequest(BaseModel):
    student_id: UUID
    # Positivity is checked by the service so it reports invalid_input like every other rule
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    purpose: str = Field("School Fee Payment", min_length=1, max_length=255)
    method: PaymentMethod = PaymentMethod.upi
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    id: UUID
    receipt_number: str
    student_id: UUID
    parent_id: UUID
    amount: Decimal
    status: PaymentStatus
    method: PaymentMethod
    purpose: str
    notes: str = ""
    upi_transaction_id: Optional[str] = None
    verified_by: Optional[UUID] = None
    verified_at: Optional[datetime] = None
    confirmed_by_parent: bool
    confirmed_at: Optional[datetime] = None
    academic_year: str
    payment_month: str
    needs_reconciliation: bool = False
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaymentInitiateResponse(BaseModel):
    payment: PaymentResponse
    payment_uri: str
    qr_image: str
    payee_id: str
    student_name: str


# --- Confirmation / verification ---
class PaymentConfirmRequest(BaseModel):
    upi_transaction_id: Optional[str] = Field(None, max_length=100)


class PaymentVerifyRequest(BaseModel):
    verified: bool


# --- Queries ---
class PaymentHistoryFilter(BaseModel):
    student_id: Optional[UUID] = None
    status: Optional[PaymentStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class PaymentHistoryResponse(BaseModel):
    payments: List[PaymentResponse]
    total: int


class StatusAggregate(BaseModel):
    count: int = 0
    total_amount: Decimal = Decimal("0")


class MonthlyStats(BaseModel):
    total_payments: int = 0
    total_amount: Decimal = Decimal("0")
    completed_payments: int = 0


class PaymentStatsResponse(BaseModel):
    by_status: Dict[PaymentStatus, StatusAggregate]
    current_month: MonthlyStats


# --- Reminders ---
class PaymentReminderRequest(BaseModel):
    student_id: UUID
    message: Optional[str] = Field(None, max_length=480)


class PaymentReminderResponse(BaseModel):
    success: bool
    message: str
    error: Optional[str] = None


# --- Reconciliation ---
class ReconciliationItem(BaseModel):
    student_id: UUID
    previous_fee_paid: Decimal
    fee_paid: Decimal
    previous_balance: Decimal
    balance: Decimal


class ReconciliationResponse(BaseModel):
    corrected: List[ReconciliationItem]
    students_checked: int


class ReconciliationRequest(BaseModel):
    # None reconciles every student
    student_id: Optional[UUID] = None
