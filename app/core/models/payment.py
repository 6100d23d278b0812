"""Tuition payment submitted by a student with a proof-of-payment file."""

import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import now_local
from app.db.session import Base


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payer_name = Column(String(255), nullable=False)
    payment_date = Column(Date, nullable=False)
    description = Column(Text, nullable=False)
    payment_method = Column(String(20), nullable=False, default="TRANSFER")
    # Hosted URL, or an inline data: URI when no file storage is configured
    proof_image = Column(Text, nullable=False)
    proof_public_id = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="PENDING")  # PENDING, APPROVED, REJECTED
    rejection_reason = Column(Text, nullable=True)
    approved_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=now_local, nullable=False)
    updated_at = Column(DateTime, default=now_local, onupdate=now_local, nullable=False)

    student = relationship("Student", back_populates="payments")
    approver = relationship("User", foreign_keys=[approved_by])
