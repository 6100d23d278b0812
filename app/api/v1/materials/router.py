"""Materials API router. Section routes are declared before /{material_id}."""

from typing import List, Optional
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin
from app.auth.schemas import CurrentUser, MessageResponse
from app.core.dependencies import get_storage
from app.core.exceptions import ServiceError
from app.db.session import get_db
from app.integrations.storage import FileStorage

from . import service
from .schemas import (
    MaterialCreate,
    MaterialResponse,
    MaterialSectionCreate,
    MaterialSectionResponse,
    MaterialSectionUpdate,
    MaterialUpdate,
)

router = APIRouter(prefix="/api/v1/materials", tags=["materials"])


def _content_disposition(file_name: str) -> str:
    """Header values must be latin-1; non-ASCII names travel in filename* (RFC 6266)."""
    fallback = "".join(c if " " <= c <= "~" and c not in '"\\' else "_" for c in file_name)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name, safe='')}"


# ----- Sections -----
@router.get("/sections", response_model=List[MaterialSectionResponse])
async def list_sections(
    schedule_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[MaterialSectionResponse]:
    try:
        if current_user.is_admin:
            return await service.list_sections(db, schedule_id=schedule_id)
        if schedule_id:
            await service.ensure_enrolled(db, schedule_id, current_user.student_id)
        if current_user.student_id is None:
            return []
        return await service.list_sections(db, schedule_id=schedule_id, student_id=current_user.student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/sections",
    response_model=MaterialSectionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_section(
    payload: MaterialSectionCreate,
    db: AsyncSession = Depends(get_db),
) -> MaterialSectionResponse:
    try:
        return await service.create_section(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/sections/{section_id}",
    response_model=MaterialSectionResponse,
    dependencies=[Depends(require_admin)],
)
async def update_section(
    section_id: UUID,
    payload: MaterialSectionUpdate,
    db: AsyncSession = Depends(get_db),
) -> MaterialSectionResponse:
    try:
        return await service.update_section(db, section_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/sections/{section_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
)
async def delete_section(
    section_id: UUID,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> MessageResponse:
    try:
        refs = await service.delete_section(db, section_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    for ref in refs:
        background_tasks.add_task(storage.delete, ref)
    return MessageResponse(message="Section deleted successfully")


# ----- Materials -----
@router.get("", response_model=List[MaterialResponse])
async def list_materials(
    schedule_id: Optional[UUID] = None,
    section_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[MaterialResponse]:
    """Admin: all materials. Student: materials of assigned schedules only."""
    try:
        if current_user.is_admin:
            return await service.list_materials(db, schedule_id=schedule_id, section_id=section_id)
        if schedule_id:
            await service.ensure_enrolled(db, schedule_id, current_user.student_id)
        if current_user.student_id is None:
            return []
        return await service.list_materials(
            db,
            schedule_id=schedule_id,
            section_id=section_id,
            student_id=current_user.student_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "",
    response_model=MaterialResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_material(
    payload: MaterialCreate,
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: CurrentUser = Depends(require_admin),
) -> MaterialResponse:
    try:
        return await service.create_material(db, storage, current_user.id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{material_id}",
    response_model=MaterialResponse,
    dependencies=[Depends(require_admin)],
)
async def update_material(
    material_id: UUID,
    payload: MaterialUpdate,
    db: AsyncSession = Depends(get_db),
) -> MaterialResponse:
    try:
        return await service.update_material(db, material_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{material_id}/download")
async def download_material(
    material_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        material = await service.get_material_or_404(db, material_id, with_data=True)
        if not current_user.is_admin:
            await service.ensure_enrolled(db, material.schedule_id, current_user.student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if material.file_url:
        return RedirectResponse(material.file_url)
    if material.file_data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File content not found")
    return Response(
        content=material.file_data,
        media_type=material.file_type,
        headers={"Content-Disposition": _content_disposition(material.file_name)},
    )


@router.delete(
    "/{material_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
)
async def delete_material(
    material_id: UUID,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
) -> MessageResponse:
    try:
        reference = await service.delete_material(db, material_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if reference:
        background_tasks.add_task(storage.delete, reference)
    return MessageResponse(message="Material deleted successfully")
