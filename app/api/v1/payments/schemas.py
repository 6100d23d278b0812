from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import PaymentMethod


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payer_name: str = Field(..., min_length=1, max_length=255)
    payment_date: date
    description: str = Field(..., min_length=1)
    proof_image: str = Field(..., min_length=1, description="Base64 data URI of the transfer receipt")
    payment_method: PaymentMethod = PaymentMethod.TRANSFER


class PaymentReject(BaseModel):
    reason: Optional[str] = None


class PaymentResponse(BaseModel):
    id: UUID
    student_id: UUID
    student_name: str
    student_number: str
    class_name: str
    amount: float
    payer_name: str
    payment_date: date
    description: str
    payment_method: str
    proof_url: Optional[str] = None  # Hosted proofs only; inline proofs are served by /proof
    status: str
    rejection_reason: Optional[str] = None
    approved_by: Optional[UUID] = None
    approver_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
