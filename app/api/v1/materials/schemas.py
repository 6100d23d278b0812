from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class MaterialSectionCreate(BaseModel):
    schedule_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    display_order: int = 0


class MaterialSectionUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    display_order: Optional[int] = None


class MaterialCreate(BaseModel):
    """Either file_data (base64 or data URI) or file_url, not both."""

    schedule_id: UUID
    section_id: Optional[UUID] = None
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    file_name: str = Field(..., min_length=1, max_length=255)
    file_type: str = Field(..., min_length=1, max_length=100)
    file_data: Optional[str] = None
    file_url: Optional[str] = None
    display_order: int = 0

    @model_validator(mode="after")
    def check_source(self) -> "MaterialCreate":
        if bool(self.file_data) == bool(self.file_url):
            raise ValueError("Provide exactly one of file_data or file_url")
        return self


class MaterialUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    section_id: Optional[UUID] = None
    display_order: Optional[int] = None


class MaterialResponse(BaseModel):
    id: UUID
    schedule_id: UUID
    section_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    file_name: str
    file_type: str
    file_size: int
    file_url: Optional[str] = None
    has_file_data: bool
    display_order: int
    uploaded_by_id: Optional[UUID] = None
    created_at: datetime


class MaterialSectionResponse(BaseModel):
    id: UUID
    schedule_id: UUID
    title: str
    description: Optional[str] = None
    display_order: int
    created_at: datetime
    materials: List[MaterialResponse] = Field(default_factory=list)
