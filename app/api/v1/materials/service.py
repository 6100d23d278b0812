"""Course materials and their sections. Binary content is only loaded for downloads."""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload, undefer

from app.api.v1.schedules import service as schedule_service
from app.core.config import settings
from app.core.exceptions import IntegrationError, ServiceError
from app.core.models import Material, MaterialSection, ScheduleStudent
from app.integrations.storage import FileStorage, parse_data_uri

from .schemas import (
    MaterialCreate,
    MaterialResponse,
    MaterialSectionCreate,
    MaterialSectionResponse,
    MaterialSectionUpdate,
    MaterialUpdate,
)

logger = logging.getLogger(__name__)


def material_to_response(m: Material) -> MaterialResponse:
    return MaterialResponse(
        id=m.id,
        schedule_id=m.schedule_id,
        section_id=m.section_id,
        title=m.title,
        description=m.description,
        file_name=m.file_name,
        file_type=m.file_type,
        file_size=m.file_size or 0,
        file_url=m.file_url,
        # Inline rows never carry a URL
        has_file_data=m.file_url is None,
        display_order=m.display_order,
        uploaded_by_id=m.uploaded_by_id,
        created_at=m.created_at,
    )


def section_to_response(s: MaterialSection) -> MaterialSectionResponse:
    return MaterialSectionResponse(
        id=s.id,
        schedule_id=s.schedule_id,
        title=s.title,
        description=s.description,
        display_order=s.display_order,
        created_at=s.created_at,
        materials=[material_to_response(m) for m in s.materials],
    )


async def ensure_enrolled(db: AsyncSession, schedule_id: UUID, student_id: Optional[UUID]) -> None:
    if student_id is None or not await schedule_service.is_student_assigned(db, schedule_id, student_id):
        raise ServiceError("You are not enrolled in this schedule", status.HTTP_403_FORBIDDEN)


async def _get_section_or_404(db: AsyncSession, section_id: UUID) -> MaterialSection:
    result = await db.execute(
        select(MaterialSection)
        .options(selectinload(MaterialSection.materials))
        .where(MaterialSection.id == section_id)
        .execution_options(populate_existing=True)
    )
    section = result.scalar_one_or_none()
    if not section:
        raise ServiceError("Section not found", status.HTTP_404_NOT_FOUND)
    return section


async def _check_section_belongs(db: AsyncSession, section_id: UUID, schedule_id: UUID) -> None:
    section = await db.get(MaterialSection, section_id)
    if not section:
        raise ServiceError("Section not found", status.HTTP_404_NOT_FOUND)
    if section.schedule_id != schedule_id:
        raise ServiceError("Section does not belong to this schedule", status.HTTP_400_BAD_REQUEST)


async def get_material_or_404(db: AsyncSession, material_id: UUID, with_data: bool = False) -> Material:
    stmt = select(Material).where(Material.id == material_id)
    if with_data:
        stmt = stmt.options(undefer(Material.file_data)).execution_options(populate_existing=True)
    material = (await db.execute(stmt)).scalar_one_or_none()
    if not material:
        raise ServiceError("Material not found", status.HTTP_404_NOT_FOUND)
    return material


# ----- Sections -----
async def list_sections(
    db: AsyncSession,
    schedule_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
) -> List[MaterialSectionResponse]:
    """student_id restricts the result to schedules the student is assigned to."""
    stmt = select(MaterialSection).options(selectinload(MaterialSection.materials))
    if schedule_id:
        stmt = stmt.where(MaterialSection.schedule_id == schedule_id)
    if student_id:
        stmt = stmt.join(
            ScheduleStudent, ScheduleStudent.schedule_id == MaterialSection.schedule_id
        ).where(ScheduleStudent.student_id == student_id)
    stmt = stmt.order_by(MaterialSection.display_order, MaterialSection.created_at)
    result = await db.execute(stmt)
    return [section_to_response(s) for s in result.scalars().all()]


async def create_section(db: AsyncSession, payload: MaterialSectionCreate) -> MaterialSectionResponse:
    await schedule_service.get_schedule_or_404(db, payload.schedule_id)
    section = MaterialSection(
        schedule_id=payload.schedule_id,
        title=payload.title.strip(),
        description=payload.description,
        display_order=payload.display_order,
    )
    db.add(section)
    await db.commit()
    return section_to_response(await _get_section_or_404(db, section.id))


async def update_section(
    db: AsyncSession,
    section_id: UUID,
    payload: MaterialSectionUpdate,
) -> MaterialSectionResponse:
    section = await _get_section_or_404(db, section_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("title") is not None:
        section.title = data["title"].strip()
    if "description" in data:
        section.description = data["description"]
    if data.get("display_order") is not None:
        section.display_order = data["display_order"]
    await db.commit()
    return section_to_response(await _get_section_or_404(db, section_id))


async def delete_section(db: AsyncSession, section_id: UUID) -> List[str]:
    """Delete the section and its materials; returns storage references to clean up."""
    section = await _get_section_or_404(db, section_id)
    refs = [m.storage_public_id for m in section.materials if m.storage_public_id]
    await db.delete(section)
    await db.commit()
    logger.info("Material section %s deleted with %d stored files", section_id, len(refs))
    return refs


# ----- Materials -----
async def list_materials(
    db: AsyncSession,
    schedule_id: Optional[UUID] = None,
    section_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
) -> List[MaterialResponse]:
    stmt = select(Material)
    if schedule_id:
        stmt = stmt.where(Material.schedule_id == schedule_id)
    if section_id:
        stmt = stmt.where(Material.section_id == section_id)
    if student_id:
        stmt = stmt.join(
            ScheduleStudent, ScheduleStudent.schedule_id == Material.schedule_id
        ).where(ScheduleStudent.student_id == student_id)
    stmt = stmt.order_by(Material.display_order, Material.created_at)
    result = await db.execute(stmt)
    return [material_to_response(m) for m in result.scalars().all()]


async def create_material(
    db: AsyncSession,
    storage: FileStorage,
    uploaded_by_id: UUID,
    payload: MaterialCreate,
) -> MaterialResponse:
    await schedule_service.get_schedule_or_404(db, payload.schedule_id)
    if payload.section_id:
        await _check_section_belongs(db, payload.section_id, payload.schedule_id)

    file_data: Optional[bytes] = None
    file_url = payload.file_url.strip() if payload.file_url else None
    storage_public_id = None
    file_size = 0
    if payload.file_data:
        try:
            _, file_data = parse_data_uri(payload.file_data)
        except ValueError as e:
            raise ServiceError(f"Invalid file data: {e}", status.HTTP_400_BAD_REQUEST)
        file_size = len(file_data)
        if file_size > settings.max_upload_bytes:
            raise ServiceError(f"File exceeds {settings.max_upload_mb} MB", status.HTTP_400_BAD_REQUEST)
        if storage.enabled:
            try:
                stored = await storage.upload(file_data, payload.file_type, subfolder="materials")
            except IntegrationError as e:
                raise ServiceError(str(e), status.HTTP_502_BAD_GATEWAY)
            file_url, storage_public_id, file_data = stored.url, stored.reference, None

    material = Material(
        schedule_id=payload.schedule_id,
        section_id=payload.section_id,
        title=payload.title.strip(),
        description=payload.description,
        file_name=payload.file_name.strip(),
        file_type=payload.file_type.strip(),
        file_size=file_size,
        file_data=file_data,
        file_url=file_url,
        storage_public_id=storage_public_id,
        display_order=payload.display_order,
        uploaded_by_id=uploaded_by_id,
    )
    db.add(material)
    await db.commit()
    logger.info("Material %s added to schedule %s (%d bytes)", material.id, payload.schedule_id, file_size)
    return material_to_response(await get_material_or_404(db, material.id))


async def update_material(db: AsyncSession, material_id: UUID, payload: MaterialUpdate) -> MaterialResponse:
    material = await get_material_or_404(db, material_id)
    data = payload.model_dump(exclude_unset=True)
    if "section_id" in data:
        if data["section_id"] is not None:
            await _check_section_belongs(db, data["section_id"], material.schedule_id)
        material.section_id = data["section_id"]
    if data.get("title") is not None:
        material.title = data["title"].strip()
    if "description" in data:
        material.description = data["description"]
    if data.get("display_order") is not None:
        material.display_order = data["display_order"]
    await db.commit()
    return material_to_response(material)


async def delete_material(db: AsyncSession, material_id: UUID) -> Optional[str]:
    material = await get_material_or_404(db, material_id)
    reference = material.storage_public_id
    await db.delete(material)
    await db.commit()
    logger.info("Material %s deleted", material_id)
    return reference
