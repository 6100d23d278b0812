"""Class meetings and their student roster."""

import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, String, Time, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import now_local
from app.db.session import Base


class Schedule(Base):
    """
    Recurring when specific_date is null (matched by `day`), one-off otherwise.
    qr_code is the scan code students present to check in.
    """

    __tablename__ = "schedules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    subject = Column(String(255), nullable=False)
    class_name = Column("class", String(50), nullable=False)
    day = Column(String(20), nullable=True)  # Senin .. Minggu
    specific_date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    teacher_name = Column(String(255), nullable=False)
    room = Column(String(100), nullable=False)
    qr_code = Column(String(32), nullable=False, unique=True)
    created_at = Column(DateTime, default=now_local, nullable=False)

    student_links = relationship(
        "ScheduleStudent", back_populates="schedule", cascade="all, delete-orphan"
    )
    attendances = relationship("Attendance", back_populates="schedule", cascade="all, delete-orphan")
    sections = relationship(
        "MaterialSection",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="MaterialSection.display_order",
    )
    materials = relationship("Material", back_populates="schedule", cascade="all, delete-orphan")

    @property
    def is_one_off(self) -> bool:
        return self.specific_date is not None


class ScheduleStudent(Base):
    """Assignment of a student to a schedule."""

    __tablename__ = "schedule_students"
    __table_args__ = (
        UniqueConstraint("schedule_id", "student_id", name="uq_schedule_student"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id = Column(Uuid, ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=now_local, nullable=False)

    schedule = relationship("Schedule", back_populates="student_links")
    student = relationship("Student", back_populates="schedule_links")
