import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import now_local
from app.db.session import Base


class User(Base):
    """Login identity. Role ADMIN or STUDENT; students own exactly one Student row."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="STUDENT")  # ADMIN | STUDENT
    # Password reset: random hex token valid until reset_token_expiry
    reset_token = Column(String(128), nullable=True, index=True)
    reset_token_expiry = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=now_local, nullable=False)
    updated_at = Column(DateTime, default=now_local, onupdate=now_local, nullable=False)

    student = relationship(
        "Student", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )


class Student(Base):
    """
    Student profile. Deleting the owning user removes it; the API deletes students
    by deleting the user.
    """

    __tablename__ = "students"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    student_number = Column(String(50), nullable=False, unique=True)  # School-issued student ID
    class_name = Column("class", String(50), nullable=False)
    qr_code = Column(String(32), nullable=False, unique=True)  # Personal code, sha256 prefix
    created_at = Column(DateTime, default=now_local, nullable=False)

    user = relationship("User", back_populates="student")
    schedule_links = relationship(
        "ScheduleStudent", back_populates="student", cascade="all, delete-orphan"
    )
    attendances = relationship(
        "Attendance",
        back_populates="student",
        cascade="all, delete-orphan",
        foreign_keys="Attendance.student_id",
    )
    payments = relationship("Payment", back_populates="student", cascade="all, delete-orphan")
