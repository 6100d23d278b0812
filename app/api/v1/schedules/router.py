"""Schedules API router."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin
from app.auth.schemas import CurrentUser, MessageResponse
from app.core.cache import TTLCache
from app.core.clock import normalize_day_name
from app.core.dependencies import get_cache, get_storage
from app.core.exceptions import ServiceError
from app.db.session import get_db
from app.integrations.storage import FileStorage

from . import service
from .schemas import (
    AssignStudentsResponse,
    ScheduleCreate,
    ScheduleDetailResponse,
    ScheduleResponse,
    ScheduleStudentsAssign,
    ScheduleUpdate,
    StudentBrief,
)

router = APIRouter(prefix="/api/v1/schedules", tags=["schedules"])


@router.get("", response_model=List[ScheduleResponse])
async def list_schedules(
    day: Optional[str] = Query(None, description="Weekday name, e.g. Senin"),
    class_name: Optional[str] = Query(None, alias="class"),
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ScheduleResponse]:
    if day:
        try:
            day = normalize_day_name(day)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    items = await service.list_schedules(db, cache, day=day, class_name=class_name)
    return service.visible_list(items, current_user.is_admin)


@router.get("/today", response_model=List[ScheduleResponse])
async def list_today_schedules(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ScheduleResponse]:
    items = await service.list_today_schedules(db)
    return service.visible_list(items, current_user.is_admin)


@router.get("/{schedule_id}", response_model=ScheduleDetailResponse)
async def get_schedule(
    schedule_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ScheduleDetailResponse:
    try:
        item = await service.get_schedule(db, schedule_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return service.visible_detail(item, current_user.is_admin)


@router.post(
    "",
    response_model=ScheduleDetailResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_schedule(
    payload: ScheduleCreate,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
) -> ScheduleDetailResponse:
    try:
        return await service.create_schedule(db, cache, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{schedule_id}",
    response_model=ScheduleDetailResponse,
    dependencies=[Depends(require_admin)],
)
async def update_schedule(
    schedule_id: UUID,
    payload: ScheduleUpdate,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
) -> ScheduleDetailResponse:
    try:
        return await service.update_schedule(db, cache, schedule_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{schedule_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
)
async def delete_schedule(
    schedule_id: UUID,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
    storage: FileStorage = Depends(get_storage),
) -> MessageResponse:
    try:
        storage_refs = await service.delete_schedule(db, cache, schedule_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    for ref in storage_refs:
        background_tasks.add_task(storage.delete, ref)
    return MessageResponse(message="Schedule deleted successfully")


@router.post(
    "/{schedule_id}/students",
    response_model=AssignStudentsResponse,
    dependencies=[Depends(require_admin)],
)
async def assign_students(
    schedule_id: UUID,
    payload: ScheduleStudentsAssign,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
) -> AssignStudentsResponse:
    """Replace the schedule's roster with the given students."""
    try:
        count = await service.assign_students(db, cache, schedule_id, payload.student_ids)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return AssignStudentsResponse(message="Students assigned successfully", count=count)


@router.get("/{schedule_id}/students", response_model=List[StudentBrief])
async def list_schedule_students(
    schedule_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[StudentBrief]:
    try:
        return await service.list_schedule_students(db, schedule_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{schedule_id}/regenerate-qr",
    response_model=ScheduleDetailResponse,
    dependencies=[Depends(require_admin)],
)
async def regenerate_scan_code(
    schedule_id: UUID,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
) -> ScheduleDetailResponse:
    """Issue a new scan code; the previous code stops working immediately."""
    try:
        return await service.regenerate_scan_code(db, cache, schedule_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
