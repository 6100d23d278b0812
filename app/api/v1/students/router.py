"""Students API router."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schedules import service as schedule_service
from app.api.v1.schedules.schemas import ScheduleResponse
from app.auth.dependencies import get_current_user
from app.auth.rbac import ensure_self_or_admin, require_admin
from app.auth.schemas import CurrentUser, MessageResponse
from app.core.cache import TTLCache
from app.core.dependencies import get_cache, get_storage
from app.core.exceptions import ServiceError
from app.db.session import get_db
from app.integrations.storage import FileStorage

from . import service
from .schemas import StudentCreate, StudentDetailResponse, StudentResponse, StudentUpdate

router = APIRouter(prefix="/api/v1/students", tags=["students"])


@router.get("", response_model=List[StudentResponse], dependencies=[Depends(require_admin)])
async def list_students(
    class_name: Optional[str] = Query(None, alias="class"),
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
) -> List[StudentResponse]:
    return await service.list_students(db, cache, class_name=class_name)


@router.get("/{student_id}", response_model=StudentDetailResponse)
async def get_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentDetailResponse:
    ensure_self_or_admin(current_user, student_id)
    try:
        return await service.get_student(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{student_id}/schedules", response_model=List[ScheduleResponse])
async def list_student_schedules(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ScheduleResponse]:
    ensure_self_or_admin(current_user, student_id)
    try:
        await service.get_student_or_404(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    items = await schedule_service.list_student_schedules(db, student_id)
    return schedule_service.visible_list(items, current_user.is_admin)


@router.post(
    "",
    response_model=StudentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_student(
    payload: StudentCreate,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
) -> StudentResponse:
    try:
        return await service.create_student(db, cache, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{student_id}", response_model=StudentResponse, dependencies=[Depends(require_admin)])
async def update_student(
    student_id: UUID,
    payload: StudentUpdate,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
) -> StudentResponse:
    try:
        return await service.update_student(db, cache, student_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{student_id}", response_model=MessageResponse, dependencies=[Depends(require_admin)])
async def delete_student(
    student_id: UUID,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
    storage: FileStorage = Depends(get_storage),
) -> MessageResponse:
    try:
        storage_refs = await service.delete_student(db, cache, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    for ref in storage_refs:
        background_tasks.add_task(storage.delete, ref)
    return MessageResponse(message="Student deleted successfully")
