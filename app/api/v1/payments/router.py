"""Payments router: initiate, confirm, verify, cancel, history, stats, reminders, reconcile."""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin
from app.auth.schemas import CurrentUser
from app.core.enums import PaymentStatus
from app.core.exceptions import ServiceError
from app.core.notifications import NotificationSink, get_notifier
from app.core.qr import QrEncoder, get_qr_encoder
from app.db.session import get_db

from .schemas import (
    PaymentConfirmRequest,
    PaymentHistoryFilter,
    PaymentHistoryResponse,
    PaymentInitiateRequest,
    PaymentInitiateResponse,
    PaymentReminderRequest,
    PaymentReminderResponse,
    PaymentResponse,
    PaymentStatsResponse,
    PaymentVerifyRequest,
    ReconciliationRequest,
    ReconciliationResponse,
)
from . import queries, reconciliation, service

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post(
    "/initiate",
    response_model=PaymentInitiateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def initiate_payment(
    payload: PaymentInitiateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    qr_encoder: QrEncoder = Depends(get_qr_encoder),
) -> PaymentInitiateResponse:
    try:
        return await service.initiate_payment(db, payload, current_user, qr_encoder)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{payment_id}/confirm", response_model=PaymentResponse)
async def confirm_payment(
    payment_id: UUID,
    payload: Optional[PaymentConfirmRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
) -> PaymentResponse:
    try:
        return await service.confirm_payment(
            db, payment_id, payload or PaymentConfirmRequest(), current_user, notifier
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{payment_id}/verify", response_model=PaymentResponse)
async def verify_payment(
    payment_id: UUID,
    payload: PaymentVerifyRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> PaymentResponse:
    try:
        return await service.verify_payment(db, payment_id, payload, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{payment_id}/cancel", response_model=PaymentResponse)
async def cancel_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentResponse:
    try:
        return await service.cancel_payment(db, payment_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("/history", response_model=PaymentHistoryResponse)
async def payment_history(
    student_id: Optional[UUID] = Query(None),
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None, description="Inclusive, UTC day"),
    end_date: Optional[date] = Query(None, description="Inclusive, UTC day"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentHistoryResponse:
    filters = PaymentHistoryFilter(
        student_id=student_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
    )
    try:
        return await queries.list_payment_history(db, current_user, filters)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("/stats", response_model=PaymentStatsResponse)
async def payment_stats(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> PaymentStatsResponse:
    try:
        return await queries.get_payment_stats(db, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/reminders", response_model=PaymentReminderResponse)
async def send_payment_reminder(
    payload: PaymentReminderRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
    notifier: NotificationSink = Depends(get_notifier),
) -> PaymentReminderResponse:
    try:
        return await service.send_payment_reminder(db, payload, current_user, notifier)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/reconcile", response_model=ReconciliationResponse)
async def reconcile_balances(
    payload: Optional[ReconciliationRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> ReconciliationResponse:
    student_id = payload.student_id if payload else None
    try:
        return await reconciliation.reconcile_balances(db, student_id=student_id, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentResponse:
    try:
        return await queries.get_payment(db, payment_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
