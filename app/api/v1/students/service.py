import logging
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.models import Student, User
from app.auth.services import email_taken
from app.auth.security import default_student_password, generate_scan_code, hash_password
from app.core import cache as cache_ns
from app.core.cache import TTLCache
from app.core.exceptions import ServiceError
from app.core.models import Attendance, Payment

from .schemas import (
    StudentAttendanceItem,
    StudentCreate,
    StudentDetailResponse,
    StudentResponse,
    StudentUpdate,
)

logger = logging.getLogger(__name__)

RECENT_ATTENDANCE_LIMIT = 20
DUPLICATE_MESSAGE = "Email or Student ID already exists"


def _attendance_count():
    return (
        select(func.count(Attendance.id))
        .where(Attendance.student_id == Student.id)
        .correlate(Student)
        .scalar_subquery()
    )


def _student_to_response(student: Student, attendance_count: int = 0) -> StudentResponse:
    return StudentResponse(
        id=student.id,
        user_id=student.user_id,
        name=student.user.name,
        email=student.user.email,
        student_number=student.student_number,
        class_name=student.class_name,
        qr_code=student.qr_code,
        created_at=student.created_at,
        attendance_count=attendance_count or 0,
    )


async def _student_number_taken(
    db: AsyncSession, student_number: str, exclude_student_id: Optional[UUID] = None
) -> bool:
    stmt = select(Student.id).where(Student.student_number == student_number)
    if exclude_student_id:
        stmt = stmt.where(Student.id != exclude_student_id)
    return (await db.execute(stmt)).first() is not None


async def get_student_or_404(db: AsyncSession, student_id: UUID) -> Student:
    result = await db.execute(
        select(Student).options(selectinload(Student.user)).where(Student.id == student_id)
    )
    student = result.scalar_one_or_none()
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    return student


async def list_students(
    db: AsyncSession,
    cache: TTLCache,
    class_name: Optional[str] = None,
) -> List[StudentResponse]:
    cached = cache.get(cache_ns.STUDENTS, class_name)
    if cached is not None:
        return cached

    stmt = (
        select(Student, _attendance_count())
        .options(selectinload(Student.user))
        .order_by(Student.created_at.desc())
    )
    if class_name:
        stmt = stmt.where(Student.class_name == class_name)
    result = await db.execute(stmt)
    items = [_student_to_response(s, cnt) for s, cnt in result.all()]
    cache.set(cache_ns.STUDENTS, class_name, items)
    return items


async def get_student(db: AsyncSession, student_id: UUID) -> StudentDetailResponse:
    student = await get_student_or_404(db, student_id)
    count = (
        await db.execute(select(func.count(Attendance.id)).where(Attendance.student_id == student_id))
    ).scalar_one()
    recent = await db.execute(
        select(Attendance)
        .options(selectinload(Attendance.schedule))
        .where(Attendance.student_id == student_id)
        .order_by(Attendance.check_in_time.desc())
        .limit(RECENT_ATTENDANCE_LIMIT)
    )
    base = _student_to_response(student, count)
    return StudentDetailResponse(
        **base.model_dump(),
        recent_attendances=[
            StudentAttendanceItem(
                id=a.id,
                schedule_id=a.schedule_id,
                subject=a.schedule.subject,
                status=a.status,
                method=a.method,
                check_in_time=a.check_in_time,
                schedule_date=a.schedule_date,
                notes=a.notes,
            )
            for a in recent.scalars().all()
        ],
    )


async def create_student(
    db: AsyncSession,
    cache: TTLCache,
    payload: StudentCreate,
) -> StudentResponse:
    """Create the STUDENT user and its profile in one transaction."""
    if await email_taken(db, payload.email) or await _student_number_taken(db, payload.student_number):
        raise ServiceError(DUPLICATE_MESSAGE, status.HTTP_409_CONFLICT)

    name = payload.name.strip()
    password = payload.password or default_student_password(payload.student_number)
    try:
        user = User(
            email=payload.email.lower(),
            password_hash=hash_password(password),
            name=name,
            role="STUDENT",
        )
        db.add(user)
        await db.flush()

        student = Student(
            user_id=user.id,
            student_number=payload.student_number.strip(),
            class_name=payload.class_name.strip(),
            qr_code=generate_scan_code(payload.student_number, name),
        )
        db.add(student)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(DUPLICATE_MESSAGE, status.HTTP_409_CONFLICT)

    cache.invalidate(cache_ns.STUDENTS)
    logger.info("Student %s created (user %s)", student.id, user.id)
    student = await get_student_or_404(db, student.id)
    return _student_to_response(student)


async def update_student(
    db: AsyncSession,
    cache: TTLCache,
    student_id: UUID,
    payload: StudentUpdate,
) -> StudentResponse:
    student = await get_student_or_404(db, student_id)
    user = student.user

    if payload.email and await email_taken(db, payload.email, exclude_user_id=user.id):
        raise ServiceError(DUPLICATE_MESSAGE, status.HTTP_409_CONFLICT)
    if payload.student_number and await _student_number_taken(
        db, payload.student_number, exclude_student_id=student.id
    ):
        raise ServiceError(DUPLICATE_MESSAGE, status.HTTP_409_CONFLICT)

    if payload.name:
        user.name = payload.name.strip()
    if payload.email:
        user.email = payload.email.lower()
    if payload.password:
        user.password_hash = hash_password(payload.password)
    if payload.student_number:
        student.student_number = payload.student_number.strip()
    if payload.class_name:
        student.class_name = payload.class_name.strip()

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(DUPLICATE_MESSAGE, status.HTTP_409_CONFLICT)

    cache.invalidate(cache_ns.STUDENTS)
    cache.invalidate(cache_ns.SCHEDULES)
    count = (
        await db.execute(select(func.count(Attendance.id)).where(Attendance.student_id == student_id))
    ).scalar_one()
    return _student_to_response(student, count)


async def delete_student(db: AsyncSession, cache: TTLCache, student_id: UUID) -> List[str]:
    """
    Delete the owning user; the cascade removes the student profile, its schedule
    assignments, attendance and payments. Returns storage references of payment proofs.
    """
    student = await get_student_or_404(db, student_id)
    refs_result = await db.execute(
        select(Payment.proof_public_id).where(
            Payment.student_id == student_id,
            Payment.proof_public_id.is_not(None),
        )
    )
    storage_refs = list(refs_result.scalars().all())

    await db.delete(student.user)
    await db.commit()
    cache.invalidate(cache_ns.STUDENTS)
    cache.invalidate(cache_ns.SCHEDULES)
    logger.info("Student %s and user %s deleted", student_id, student.user_id)
    return storage_refs
