"""Attendance check-in (manual and QR scan), listing and export."""

import io
import logging
from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID

from fastapi import status
from openpyxl import Workbook
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.api.v1.schedules import service as schedule_service
from app.auth.models import Student
from app.core import cache as cache_ns
from app.core import clock
from app.core.cache import TTLCache
from app.core.enums import AttendanceMethod, AttendanceStatus
from app.core.exceptions import ServiceError
from app.core.models import Attendance, Schedule

from .schemas import AttendanceResponse, AttendanceUpdate, ManualAttendanceRequest

logger = logging.getLogger(__name__)

EXPORT_HEADERS = (
    "Date",
    "Subject",
    "Class",
    "Student ID",
    "Student Name",
    "Status",
    "Method",
    "Check-in Time",
    "Notes",
)


def _attendance_to_response(a: Attendance) -> AttendanceResponse:
    return AttendanceResponse(
        id=a.id,
        schedule_id=a.schedule_id,
        student_id=a.student_id,
        student_name=a.student.user.name,
        student_number=a.student.student_number,
        class_name=a.schedule.class_name,
        subject=a.schedule.subject,
        status=a.status,
        method=a.method,
        check_in_time=a.check_in_time,
        schedule_date=a.schedule_date,
        notes=a.notes,
        marked_by_id=a.marked_by_id,
        created_at=a.created_at,
    )


def _invalidate_counts(cache: TTLCache) -> None:
    # Cached student and schedule lists carry attendance_count
    cache.invalidate(cache_ns.STUDENTS)
    cache.invalidate(cache_ns.SCHEDULES)


def _with_relations(stmt):
    return stmt.options(
        selectinload(Attendance.schedule),
        selectinload(Attendance.student).selectinload(Student.user),
    )


async def _get_attendance_or_404(db: AsyncSession, attendance_id: UUID) -> Attendance:
    result = await db.execute(
        _with_relations(select(Attendance))
        .where(Attendance.id == attendance_id)
        .execution_options(populate_existing=True)
    )
    attendance = result.scalar_one_or_none()
    if not attendance:
        raise ServiceError("Attendance not found", status.HTTP_404_NOT_FOUND)
    return attendance


async def _find_in_window(
    db: AsyncSession, schedule_id: UUID, student_id: UUID, on_date: date
) -> Optional[Attendance]:
    """Existing row for (schedule, student) whose occurrence falls on on_date."""
    start, end = clock.day_window(on_date)
    result = await db.execute(
        select(Attendance)
        .where(
            Attendance.schedule_id == schedule_id,
            Attendance.student_id == student_id,
            Attendance.schedule_date >= start,
            Attendance.schedule_date < end,
        )
        .order_by(Attendance.check_in_time)
        .limit(1)
    )
    return result.scalar_one_or_none()


def _applicable_date(schedule: Schedule, today: date) -> date:
    """Date a scan made today counts for; raises when the schedule does not run today."""
    if schedule.specific_date is not None:
        if schedule.specific_date != today:
            raise ServiceError(
                f"This schedule is only for {schedule.specific_date.isoformat()}",
                status.HTTP_400_BAD_REQUEST,
            )
        return schedule.specific_date
    if schedule.day != clock.day_name(today):
        raise ServiceError(
            f"This schedule is only for {schedule.day}",
            status.HTTP_400_BAD_REQUEST,
        )
    return today


async def mark_manual(
    db: AsyncSession,
    cache: TTLCache,
    marked_by_id: UUID,
    payload: ManualAttendanceRequest,
) -> Tuple[AttendanceResponse, bool]:
    """
    Upsert one row per (schedule, student, occurrence day).

    Returns the record and True when a new row was inserted, False when an
    existing row for that day was overwritten.
    """
    schedule = await db.get(Schedule, payload.schedule_id)
    if not schedule:
        raise ServiceError("Schedule not found", status.HTTP_404_NOT_FOUND)
    student = await db.get(Student, payload.student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)

    target_date = payload.date or clock.today_local()
    occurrence = clock.occurrence_at(target_date, schedule.start_time)

    existing = await _find_in_window(db, schedule.id, student.id, target_date)
    if existing:
        existing.status = payload.status.value
        existing.notes = payload.notes
        existing.marked_by_id = marked_by_id
        existing.schedule_date = occurrence
        attendance_id = existing.id
        created = False
    else:
        attendance = Attendance(
            schedule_id=schedule.id,
            student_id=student.id,
            status=payload.status.value,
            method=AttendanceMethod.MANUAL.value,
            check_in_time=clock.now_local(),
            schedule_date=occurrence,
            notes=payload.notes,
            marked_by_id=marked_by_id,
        )
        db.add(attendance)
        await db.flush()
        attendance_id = attendance.id
        created = True
    await db.commit()
    if created:
        _invalidate_counts(cache)
    logger.info(
        "Manual attendance %s for student %s on schedule %s (%s)",
        "created" if created else "updated",
        student.id,
        schedule.id,
        target_date.isoformat(),
    )
    return _attendance_to_response(await _get_attendance_or_404(db, attendance_id)), created


async def mark_by_scan(
    db: AsyncSession,
    cache: TTLCache,
    user_id: UUID,
    student_id: UUID,
    qr_code: str,
) -> AttendanceResponse:
    """Self check-in with a schedule scan code. Always records PRESENT."""
    code = (qr_code or "").strip()
    if not code:
        raise ServiceError("QR code is required", status.HTTP_400_BAD_REQUEST)

    result = await db.execute(select(Schedule).where(Schedule.qr_code == code))
    schedule = result.scalar_one_or_none()
    if not schedule:
        raise ServiceError("Invalid QR code", status.HTTP_404_NOT_FOUND)

    if not await schedule_service.is_student_assigned(db, schedule.id, student_id):
        raise ServiceError("You are not enrolled in this schedule", status.HTTP_403_FORBIDDEN)

    attendance_date = _applicable_date(schedule, clock.today_local())

    # Read-then-write: two concurrent scans can both pass this check.
    if await _find_in_window(db, schedule.id, student_id, attendance_date):
        raise ServiceError("Attendance already marked for this schedule today", status.HTTP_400_BAD_REQUEST)

    attendance = Attendance(
        schedule_id=schedule.id,
        student_id=student_id,
        status=AttendanceStatus.PRESENT.value,
        method=AttendanceMethod.QR.value,
        check_in_time=clock.now_local(),
        schedule_date=clock.occurrence_at(attendance_date, schedule.start_time),
        marked_by_id=user_id,
    )
    db.add(attendance)
    await db.commit()
    _invalidate_counts(cache)
    logger.info("QR check-in: student %s on schedule %s", student_id, schedule.id)
    return _attendance_to_response(await _get_attendance_or_404(db, attendance.id))


def _filtered(
    schedule_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    status_filter: Optional[str] = None,
    on_date: Optional[date] = None,
):
    stmt = _with_relations(select(Attendance))
    if schedule_id:
        stmt = stmt.where(Attendance.schedule_id == schedule_id)
    if student_id:
        stmt = stmt.where(Attendance.student_id == student_id)
    if status_filter:
        stmt = stmt.where(Attendance.status == status_filter)
    if on_date:
        start, end = clock.day_window(on_date)
        stmt = stmt.where(Attendance.schedule_date >= start, Attendance.schedule_date < end)
    return stmt.order_by(Attendance.check_in_time.desc())


async def list_attendance(
    db: AsyncSession,
    schedule_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    status_filter: Optional[str] = None,
    on_date: Optional[date] = None,
) -> List[AttendanceResponse]:
    result = await db.execute(_filtered(schedule_id, student_id, status_filter, on_date))
    return [_attendance_to_response(a) for a in result.scalars().all()]


async def update_attendance(
    db: AsyncSession,
    attendance_id: UUID,
    payload: AttendanceUpdate,
) -> AttendanceResponse:
    attendance = await _get_attendance_or_404(db, attendance_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("status") is not None:
        attendance.status = payload.status.value
    if "notes" in data:
        attendance.notes = data["notes"]
    await db.commit()
    return _attendance_to_response(await _get_attendance_or_404(db, attendance_id))


async def delete_attendance(db: AsyncSession, cache: TTLCache, attendance_id: UUID) -> None:
    attendance = await _get_attendance_or_404(db, attendance_id)
    await db.delete(attendance)
    await db.commit()
    _invalidate_counts(cache)
    logger.info("Attendance %s deleted", attendance_id)


async def build_attendance_export(
    db: AsyncSession,
    schedule_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    status_filter: Optional[str] = None,
    on_date: Optional[date] = None,
) -> bytes:
    """Excel workbook with one row per attendance record matching the filters."""
    records = await list_attendance(db, schedule_id, student_id, status_filter, on_date)
    wb = Workbook()
    ws = wb.active
    ws.title = "Attendance"
    ws.append(list(EXPORT_HEADERS))
    for r in records:
        ws.append([
            r.schedule_date.date().isoformat(),
            r.subject,
            r.class_name,
            r.student_number,
            r.student_name,
            r.status,
            r.method,
            r.check_in_time.strftime("%Y-%m-%d %H:%M:%S"),
            r.notes or "",
        ])
    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()
