"""Tuition payment submission and the PENDING -> APPROVED / REJECTED transitions."""

import logging
from datetime import date
from typing import List, Optional, Tuple, Union
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.models import Student
from app.core import clock
from app.core.config import settings
from app.core.enums import PaymentStatus
from app.core.exceptions import IntegrationError, ServiceError
from app.core.models import Payment
from app.integrations.storage import FileStorage, parse_data_uri, to_data_uri

from .schemas import PaymentCreate, PaymentResponse

logger = logging.getLogger(__name__)


def _is_inline(proof_image: str) -> bool:
    return proof_image.startswith("data:")


def payment_to_response(p: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=p.id,
        student_id=p.student_id,
        student_name=p.student.user.name,
        student_number=p.student.student_number,
        class_name=p.student.class_name,
        amount=float(p.amount),
        payer_name=p.payer_name,
        payment_date=p.payment_date,
        description=p.description,
        payment_method=p.payment_method,
        proof_url=None if _is_inline(p.proof_image) else p.proof_image,
        status=p.status,
        rejection_reason=p.rejection_reason,
        approved_by=p.approved_by,
        approver_name=p.approver.name if p.approver else None,
        approved_at=p.approved_at,
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


def _with_relations(stmt):
    return stmt.options(
        selectinload(Payment.student).selectinload(Student.user),
        selectinload(Payment.approver),
    )


async def get_payment_or_404(db: AsyncSession, payment_id: UUID) -> Payment:
    result = await db.execute(
        _with_relations(select(Payment))
        .where(Payment.id == payment_id)
        .execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if not payment:
        raise ServiceError("Payment not found", status.HTTP_404_NOT_FOUND)
    return payment


async def list_payments(
    db: AsyncSession,
    student_id: Optional[UUID] = None,
    status_filter: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[PaymentResponse]:
    stmt = _with_relations(select(Payment))
    if student_id:
        stmt = stmt.where(Payment.student_id == student_id)
    if status_filter:
        stmt = stmt.where(Payment.status == status_filter)
    if start_date:
        stmt = stmt.where(Payment.payment_date >= start_date)
    if end_date:
        stmt = stmt.where(Payment.payment_date <= end_date)
    result = await db.execute(stmt.order_by(Payment.created_at.desc()))
    return [payment_to_response(p) for p in result.scalars().all()]


async def create_payment(
    db: AsyncSession,
    storage: FileStorage,
    student_id: UUID,
    payload: PaymentCreate,
) -> PaymentResponse:
    """
    Record a PENDING payment. The proof goes to hosted storage when configured,
    otherwise it is stored inline as a normalized data URI.
    """
    try:
        mime, data = parse_data_uri(payload.proof_image)
    except ValueError as e:
        raise ServiceError(f"Invalid proof image: {e}", status.HTTP_400_BAD_REQUEST)
    if not data:
        raise ServiceError("Proof image is required", status.HTTP_400_BAD_REQUEST)
    if len(data) > settings.max_upload_bytes:
        raise ServiceError(
            f"Proof image exceeds {settings.max_upload_mb} MB",
            status.HTTP_400_BAD_REQUEST,
        )

    proof_image = to_data_uri(mime, data)
    proof_public_id = None
    if storage.enabled:
        try:
            stored = await storage.upload(data, mime, subfolder="payments")
        except IntegrationError as e:
            raise ServiceError(str(e), status.HTTP_502_BAD_GATEWAY)
        proof_image, proof_public_id = stored.url, stored.reference

    payment = Payment(
        student_id=student_id,
        amount=payload.amount,
        payer_name=payload.payer_name.strip(),
        payment_date=payload.payment_date,
        description=payload.description.strip(),
        payment_method=payload.payment_method.value,
        proof_image=proof_image,
        proof_public_id=proof_public_id,
        status=PaymentStatus.PENDING.value,
    )
    db.add(payment)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        if proof_public_id:
            await storage.delete(proof_public_id)
        raise
    logger.info("Payment %s submitted by student %s (amount %s)", payment.id, student_id, payload.amount)
    return payment_to_response(await get_payment_or_404(db, payment.id))


async def get_proof(db: AsyncSession, payment_id: UUID) -> Tuple[UUID, Union[str, Tuple[str, bytes]]]:
    """Returns (owner student id, hosted URL or (mime, bytes) for inline proofs)."""
    payment = await db.get(Payment, payment_id)
    if not payment:
        raise ServiceError("Payment not found", status.HTTP_404_NOT_FOUND)
    if not _is_inline(payment.proof_image):
        return payment.student_id, payment.proof_image
    try:
        return payment.student_id, parse_data_uri(payment.proof_image)
    except ValueError:
        raise ServiceError("Stored proof image is unreadable", status.HTTP_500_INTERNAL_SERVER_ERROR)


async def _pending_or_400(db: AsyncSession, payment_id: UUID) -> Payment:
    payment = await get_payment_or_404(db, payment_id)
    if payment.status != PaymentStatus.PENDING.value:
        raise ServiceError("Payment is not pending", status.HTTP_400_BAD_REQUEST)
    return payment


async def approve_payment(db: AsyncSession, payment_id: UUID, admin_id: UUID) -> PaymentResponse:
    payment = await _pending_or_400(db, payment_id)
    payment.status = PaymentStatus.APPROVED.value
    payment.approved_by = admin_id
    payment.approved_at = clock.now_local()
    payment.rejection_reason = None
    await db.commit()
    logger.info("Payment %s approved by %s", payment_id, admin_id)
    return payment_to_response(await get_payment_or_404(db, payment_id))


async def reject_payment(
    db: AsyncSession,
    payment_id: UUID,
    admin_id: UUID,
    reason: Optional[str],
) -> PaymentResponse:
    reason = (reason or "").strip()
    if not reason:
        raise ServiceError("Rejection reason is required", status.HTTP_400_BAD_REQUEST)
    payment = await _pending_or_400(db, payment_id)
    payment.status = PaymentStatus.REJECTED.value
    payment.approved_by = admin_id
    payment.approved_at = clock.now_local()
    payment.rejection_reason = reason
    await db.commit()
    logger.info("Payment %s rejected by %s", payment_id, admin_id)
    return payment_to_response(await get_payment_or_404(db, payment_id))


async def delete_payment(db: AsyncSession, payment_id: UUID) -> Optional[str]:
    """Delete the row; returns the hosted proof reference, if any, for cleanup after commit."""
    payment = await db.get(Payment, payment_id)
    if not payment:
        raise ServiceError("Payment not found", status.HTTP_404_NOT_FOUND)
    reference = payment.proof_public_id
    await db.delete(payment)
    await db.commit()
    logger.info("Payment %s deleted", payment_id)
    return reference
