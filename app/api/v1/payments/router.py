"""Payments API router."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import ensure_self_or_admin, require_admin, require_student
from app.auth.schemas import CurrentUser, MessageResponse
from app.core.dependencies import get_notifier, get_storage
from app.core.enums import PaymentStatus
from app.core.exceptions import ServiceError
from app.db.session import get_db
from app.integrations.storage import FileStorage
from app.integrations.telegram import TelegramNotifier, payment_submitted_message

from . import service
from .schemas import PaymentCreate, PaymentReject, PaymentResponse

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.get("", response_model=List[PaymentResponse])
async def list_payments(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    student_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[PaymentResponse]:
    """Admin: all payments (optionally one student's). Student: own payments only."""
    if not current_user.is_admin:
        if current_user.student_id is None:
            return []
        student_id = current_user.student_id
    return await service.list_payments(
        db,
        student_id=student_id,
        status_filter=status_filter.value if status_filter else None,
        start_date=start_date,
        end_date=end_date,
    )


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    payload: PaymentCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    notifier: TelegramNotifier = Depends(get_notifier),
    current_user: CurrentUser = Depends(require_student),
) -> PaymentResponse:
    """Submit a payment with its proof. Admins are notified after the row is committed."""
    try:
        payment = await service.create_payment(db, storage, current_user.student_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    background_tasks.add_task(
        notifier.send_message,
        payment_submitted_message(
            student_name=payment.student_name,
            student_number=payment.student_number,
            amount=payload.amount,
            payer_name=payment.payer_name,
            payment_date=payment.payment_date,
            description=payment.description,
            submitted_at=payment.created_at,
        ),
    )
    return payment


@router.get("/{payment_id}/proof")
async def get_payment_proof(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        owner_id, proof = await service.get_proof(db, payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    ensure_self_or_admin(current_user, owner_id)
    if isinstance(proof, str):
        return RedirectResponse(proof)
    mime, data = proof
    return Response(content=data, media_type=mime)


@router.put(
    "/{payment_id}/approve",
    response_model=PaymentResponse,
)
async def approve_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> PaymentResponse:
    try:
        return await service.approve_payment(db, payment_id, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{payment_id}/reject",
    response_model=PaymentResponse,
)
async def reject_payment(
    payment_id: UUID,
    payload: PaymentReject,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> PaymentResponse:
    try:
        return await service.reject_payment(db, payment_id, current_user.id, payload.reason)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{payment_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
)
async def delete_payment(
    payment_id: UUID,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> MessageResponse:
    try:
        reference = await service.delete_payment(db, payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if reference:
        background_tasks.add_task(storage.delete, reference)
    return MessageResponse(message="Payment deleted successfully")
