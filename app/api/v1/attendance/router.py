"""Attendance API router."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin, require_student
from app.auth.schemas import CurrentUser, MessageResponse
from app.core.cache import TTLCache
from app.core.dependencies import get_cache
from app.core.enums import AttendanceStatus
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import AttendanceResponse, AttendanceUpdate, ManualAttendanceRequest, QRAttendanceRequest

router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])


@router.post(
    "/manual",
    response_model=AttendanceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def mark_manual_attendance(
    payload: ManualAttendanceRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
    current_user: CurrentUser = Depends(require_admin),
) -> AttendanceResponse:
    """Mark a student for a schedule occurrence. 201 when created, 200 when an existing mark was overwritten."""
    try:
        record, created = await service.mark_manual(db, cache, current_user.id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not created:
        response.status_code = status.HTTP_200_OK
    return record


@router.post(
    "/qr",
    response_model=AttendanceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def mark_qr_attendance(
    payload: QRAttendanceRequest,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
    current_user: CurrentUser = Depends(require_student),
) -> AttendanceResponse:
    """Student self check-in by scanning the schedule's code."""
    try:
        return await service.mark_by_scan(db, cache, current_user.id, current_user.student_id, payload.qr_code)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[AttendanceResponse])
async def list_attendance(
    schedule_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    status_filter: Optional[AttendanceStatus] = Query(None, alias="status"),
    att_date: Optional[date] = Query(None, alias="date", description="Occurrence date"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AttendanceResponse]:
    """Admin: all records. Student: own records only."""
    if not current_user.is_admin:
        if current_user.student_id is None:
            return []
        student_id = current_user.student_id
    return await service.list_attendance(
        db,
        schedule_id=schedule_id,
        student_id=student_id,
        status_filter=status_filter.value if status_filter else None,
        on_date=att_date,
    )


@router.get("/export", dependencies=[Depends(require_admin)])
async def export_attendance(
    schedule_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    status_filter: Optional[AttendanceStatus] = Query(None, alias="status"),
    att_date: Optional[date] = Query(None, alias="date", description="Occurrence date"),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Download the filtered attendance list as an Excel workbook."""
    content = await service.build_attendance_export(
        db,
        schedule_id=schedule_id,
        student_id=student_id,
        status_filter=status_filter.value if status_filter else None,
        on_date=att_date,
    )
    return Response(
        content=content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": "attachment; filename=attendance.xlsx"},
    )


@router.put(
    "/{attendance_id}",
    response_model=AttendanceResponse,
    dependencies=[Depends(require_admin)],
)
async def update_attendance(
    attendance_id: UUID,
    payload: AttendanceUpdate,
    db: AsyncSession = Depends(get_db),
) -> AttendanceResponse:
    try:
        return await service.update_attendance(db, attendance_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{attendance_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
)
async def delete_attendance(
    attendance_id: UUID,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
) -> MessageResponse:
    try:
        await service.delete_attendance(db, cache, attendance_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Attendance deleted successfully")
