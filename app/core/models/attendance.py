import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import now_local
from app.db.session import Base


class Attendance(Base):
    """
    One row per (schedule, student, occurrence day). Uniqueness is checked by the
    service before writing; there is deliberately no database constraint because
    schedule_date is a datetime, not a date.
    """

    __tablename__ = "attendances"
    __table_args__ = (
        Index("ix_attendance_schedule_student_date", "schedule_id", "student_id", "schedule_date"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id = Column(Uuid, ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False)  # PRESENT, SICK, PERMISSION, ABSENT
    method = Column(String(10), nullable=False)  # QR, MANUAL
    check_in_time = Column(DateTime, default=now_local, nullable=False)  # when the row was written
    schedule_date = Column(DateTime, nullable=False, index=True)  # occurrence of the slot
    notes = Column(Text, nullable=True)
    marked_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=now_local, nullable=False)

    schedule = relationship("Schedule", back_populates="attendances")
    student = relationship("Student", back_populates="attendances", foreign_keys=[student_id])
    marked_by = relationship("User", foreign_keys=[marked_by_id])
