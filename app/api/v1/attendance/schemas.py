from datetime import date as date_type, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import AttendanceStatus


class ManualAttendanceRequest(BaseModel):
    """Admin marks (or overwrites) one student's attendance for a schedule occurrence."""

    schedule_id: UUID
    student_id: UUID
    status: AttendanceStatus = Field(..., description="PRESENT, SICK, PERMISSION, ABSENT")
    notes: Optional[str] = None
    date: Optional[date_type] = Field(None, description="Occurrence date; defaults to today")


class QRAttendanceRequest(BaseModel):
    qr_code: str = Field(..., description="Scan code shown for the schedule")


class AttendanceUpdate(BaseModel):
    status: Optional[AttendanceStatus] = None
    notes: Optional[str] = None


class AttendanceResponse(BaseModel):
    id: UUID
    schedule_id: UUID
    student_id: UUID
    student_name: str
    student_number: str
    class_name: str
    subject: str
    status: str
    method: str
    check_in_time: datetime
    schedule_date: datetime
    notes: Optional[str] = None
    marked_by_id: Optional[UUID] = None
    created_at: datetime
