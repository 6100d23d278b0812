"""Schedule CRUD, roster assignment and scan codes."""

import logging
from typing import Iterable, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.models import Student
from app.auth.security import generate_scan_code
from app.core import cache as cache_ns
from app.core.cache import TTLCache
from app.core import clock
from app.core.clock import DAY_NAMES, day_name
from app.core.exceptions import ServiceError
from app.core.models import Attendance, Material, Schedule, ScheduleStudent

from .schemas import (
    ScheduleCreate,
    ScheduleDetailResponse,
    ScheduleResponse,
    ScheduleUpdate,
    StudentBrief,
)

logger = logging.getLogger(__name__)


def _attendance_count():
    return (
        select(func.count(Attendance.id))
        .where(Attendance.schedule_id == Schedule.id)
        .correlate(Schedule)
        .scalar_subquery()
    )


def _student_count():
    return (
        select(func.count(ScheduleStudent.id))
        .where(ScheduleStudent.schedule_id == Schedule.id)
        .correlate(Schedule)
        .scalar_subquery()
    )


def _sort_key(s: ScheduleResponse):
    # Recurring slots first in weekday order, then one-off slots by date
    if s.specific_date is None:
        return (0, DAY_NAMES.index(s.day) if s.day in DAY_NAMES else len(DAY_NAMES), None, s.start_time)
    return (1, 0, s.specific_date, s.start_time)


def student_to_brief(student: Student) -> StudentBrief:
    return StudentBrief(
        id=student.id,
        user_id=student.user_id,
        name=student.user.name,
        email=student.user.email,
        student_number=student.student_number,
        class_name=student.class_name,
    )


def schedule_to_response(
    s: Schedule, attendance_count: int = 0, student_count: int = 0
) -> ScheduleResponse:
    return ScheduleResponse(
        id=s.id,
        subject=s.subject,
        class_name=s.class_name,
        day=s.day,
        specific_date=s.specific_date,
        is_one_off=s.is_one_off,
        start_time=s.start_time,
        end_time=s.end_time,
        teacher_name=s.teacher_name,
        room=s.room,
        qr_code=s.qr_code,
        created_at=s.created_at,
        attendance_count=attendance_count or 0,
        student_count=student_count or 0,
    )


def hide_scan_code(items: Iterable[ScheduleResponse]) -> List[ScheduleResponse]:
    return [s.model_copy(update={"qr_code": None}) for s in items]


async def _rows_to_responses(db: AsyncSession, stmt) -> List[ScheduleResponse]:
    stmt = stmt.add_columns(_attendance_count(), _student_count())
    result = await db.execute(stmt)
    return [schedule_to_response(s, att, stu) for s, att, stu in result.all()]


async def get_schedule_or_404(db: AsyncSession, schedule_id: UUID) -> Schedule:
    schedule = await db.get(Schedule, schedule_id)
    if not schedule:
        raise ServiceError("Schedule not found", status.HTTP_404_NOT_FOUND)
    return schedule


async def _validate_student_ids(db: AsyncSession, student_ids: List[UUID]) -> List[UUID]:
    unique_ids = list(dict.fromkeys(student_ids))
    if not unique_ids:
        return []
    result = await db.execute(select(Student.id).where(Student.id.in_(unique_ids)))
    found = set(result.scalars().all())
    missing = [str(i) for i in unique_ids if i not in found]
    if missing:
        raise ServiceError(f"Student(s) not found: {', '.join(missing)}", status.HTTP_400_BAD_REQUEST)
    return unique_ids


async def _replace_roster(db: AsyncSession, schedule_id: UUID, student_ids: List[UUID]) -> int:
    """Delete existing assignments and insert the new set. Caller commits."""
    await db.execute(delete(ScheduleStudent).where(ScheduleStudent.schedule_id == schedule_id))
    for student_id in student_ids:
        db.add(ScheduleStudent(schedule_id=schedule_id, student_id=student_id))
    await db.flush()
    return len(student_ids)


def _apply_slot(schedule: Schedule) -> None:
    # One-off slots carry their date's weekday for display; the weekday is not used for matching.
    if schedule.specific_date is not None:
        schedule.day = day_name(schedule.specific_date)


async def list_schedules(
    db: AsyncSession,
    cache: TTLCache,
    day: Optional[str] = None,
    class_name: Optional[str] = None,
) -> List[ScheduleResponse]:
    key = (day, class_name)
    cached = cache.get(cache_ns.SCHEDULES, key)
    if cached is not None:
        return cached

    stmt = select(Schedule)
    if day:
        stmt = stmt.where(Schedule.day == day)
    if class_name:
        stmt = stmt.where(Schedule.class_name == class_name)
    items = sorted(await _rows_to_responses(db, stmt), key=_sort_key)
    cache.set(cache_ns.SCHEDULES, key, items)
    return items


async def list_today_schedules(db: AsyncSession) -> List[ScheduleResponse]:
    """Recurring slots for today's weekday plus one-off slots dated today."""
    today = clock.today_local()
    stmt = (
        select(Schedule)
        .where(
            or_(
                and_(Schedule.specific_date.is_(None), Schedule.day == day_name(today)),
                Schedule.specific_date == today,
            )
        )
        .order_by(Schedule.start_time)
    )
    return await _rows_to_responses(db, stmt)


async def get_schedule(db: AsyncSession, schedule_id: UUID) -> ScheduleDetailResponse:
    stmt = (
        select(Schedule)
        .options(selectinload(Schedule.student_links).selectinload(ScheduleStudent.student).selectinload(Student.user))
        .where(Schedule.id == schedule_id)
        .add_columns(_attendance_count(), _student_count())
        .execution_options(populate_existing=True)
    )
    row = (await db.execute(stmt)).first()
    if not row:
        raise ServiceError("Schedule not found", status.HTTP_404_NOT_FOUND)
    schedule, att, stu = row
    base = schedule_to_response(schedule, att, stu)
    students = sorted(
        (student_to_brief(link.student) for link in schedule.student_links),
        key=lambda b: b.name,
    )
    return ScheduleDetailResponse(**base.model_dump(), students=students)


async def create_schedule(
    db: AsyncSession,
    cache: TTLCache,
    payload: ScheduleCreate,
) -> ScheduleDetailResponse:
    student_ids = await _validate_student_ids(db, payload.student_ids or [])
    schedule = Schedule(
        subject=payload.subject.strip(),
        class_name=payload.class_name.strip(),
        day=payload.day,
        specific_date=payload.specific_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        teacher_name=payload.teacher_name.strip(),
        room=payload.room.strip(),
        qr_code=generate_scan_code(
            payload.subject, payload.class_name, payload.specific_date or payload.day, payload.start_time
        ),
    )
    _apply_slot(schedule)
    try:
        db.add(schedule)
        await db.flush()
        await _replace_roster(db, schedule.id, student_ids)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Schedule conflicts with an existing record", status.HTTP_409_CONFLICT)
    cache.invalidate(cache_ns.SCHEDULES)
    logger.info("Schedule %s created with %d students", schedule.id, len(student_ids))
    return await get_schedule(db, schedule.id)


async def update_schedule(
    db: AsyncSession,
    cache: TTLCache,
    schedule_id: UUID,
    payload: ScheduleUpdate,
) -> ScheduleDetailResponse:
    schedule = await get_schedule_or_404(db, schedule_id)
    data = payload.model_dump(exclude_unset=True, exclude={"student_ids"})
    for field in ("subject", "class_name", "teacher_name", "room"):
        if data.get(field) is not None:
            setattr(schedule, field, data[field].strip())
    for field in ("day", "start_time", "end_time"):
        if data.get(field) is not None:
            setattr(schedule, field, data[field])
    if "specific_date" in data:
        schedule.specific_date = data["specific_date"]
    if schedule.specific_date is None and not schedule.day:
        raise ServiceError("Either day or specific_date is required", status.HTTP_400_BAD_REQUEST)
    if schedule.end_time <= schedule.start_time:
        raise ServiceError("end_time must be after start_time", status.HTTP_400_BAD_REQUEST)
    _apply_slot(schedule)

    try:
        if payload.student_ids is not None:
            student_ids = await _validate_student_ids(db, payload.student_ids)
            await _replace_roster(db, schedule.id, student_ids)
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Schedule conflicts with an existing record", status.HTTP_409_CONFLICT)
    cache.invalidate(cache_ns.SCHEDULES)
    return await get_schedule(db, schedule.id)


async def delete_schedule(db: AsyncSession, cache: TTLCache, schedule_id: UUID) -> List[str]:
    """Delete the schedule and everything hanging off it. Returns storage references to clean up."""
    schedule = await get_schedule_or_404(db, schedule_id)
    refs_result = await db.execute(
        select(Material.storage_public_id).where(
            Material.schedule_id == schedule_id,
            Material.storage_public_id.is_not(None),
        )
    )
    storage_refs = list(refs_result.scalars().all())
    await db.delete(schedule)
    await db.commit()
    cache.invalidate(cache_ns.SCHEDULES)
    logger.info("Schedule %s deleted", schedule_id)
    return storage_refs


async def assign_students(
    db: AsyncSession,
    cache: TTLCache,
    schedule_id: UUID,
    student_ids: List[UUID],
) -> int:
    await get_schedule_or_404(db, schedule_id)
    try:
        unique_ids = await _validate_student_ids(db, student_ids)
        count = await _replace_roster(db, schedule_id, unique_ids)
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Failed to assign students", status.HTTP_409_CONFLICT)
    cache.invalidate(cache_ns.SCHEDULES)
    return count


async def list_schedule_students(db: AsyncSession, schedule_id: UUID) -> List[StudentBrief]:
    await get_schedule_or_404(db, schedule_id)
    result = await db.execute(
        select(Student)
        .join(ScheduleStudent, ScheduleStudent.student_id == Student.id)
        .options(selectinload(Student.user))
        .where(ScheduleStudent.schedule_id == schedule_id)
    )
    return sorted((student_to_brief(s) for s in result.scalars().all()), key=lambda b: b.name)


async def regenerate_scan_code(db: AsyncSession, cache: TTLCache, schedule_id: UUID) -> ScheduleDetailResponse:
    schedule = await get_schedule_or_404(db, schedule_id)
    schedule.qr_code = generate_scan_code(
        schedule.subject, schedule.class_name, schedule.specific_date or schedule.day, schedule.start_time
    )
    await db.commit()
    cache.invalidate(cache_ns.SCHEDULES)
    logger.info("Scan code regenerated for schedule %s", schedule_id)
    return await get_schedule(db, schedule.id)


async def is_student_assigned(db: AsyncSession, schedule_id: UUID, student_id: UUID) -> bool:
    result = await db.execute(
        select(ScheduleStudent.id).where(
            ScheduleStudent.schedule_id == schedule_id,
            ScheduleStudent.student_id == student_id,
        )
    )
    return result.first() is not None


async def list_student_schedules(db: AsyncSession, student_id: UUID) -> List[ScheduleResponse]:
    stmt = (
        select(Schedule)
        .join(ScheduleStudent, ScheduleStudent.schedule_id == Schedule.id)
        .where(ScheduleStudent.student_id == student_id)
    )
    return sorted(await _rows_to_responses(db, stmt), key=_sort_key)


def visible_list(items: List[ScheduleResponse], include_scan_code: bool) -> List[ScheduleResponse]:
    return items if include_scan_code else hide_scan_code(items)


def visible_detail(item: ScheduleDetailResponse, include_scan_code: bool) -> ScheduleDetailResponse:
    return item if include_scan_code else item.model_copy(update={"qr_code": None})

