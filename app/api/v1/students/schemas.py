from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class StudentCreate(BaseModel):
    """Creates the login user and the student profile together.

    When password is omitted the default is "student" + student_number.
    """

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    student_number: str = Field(..., min_length=1, max_length=50)
    class_name: str = Field(..., min_length=1, max_length=50)
    password: Optional[str] = Field(None, min_length=1)


class StudentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    student_number: Optional[str] = Field(None, min_length=1, max_length=50)
    class_name: Optional[str] = Field(None, min_length=1, max_length=50)
    password: Optional[str] = Field(None, min_length=1)


class StudentAttendanceItem(BaseModel):
    id: UUID
    schedule_id: UUID
    subject: str
    status: str
    method: str
    check_in_time: datetime
    schedule_date: datetime
    notes: Optional[str] = None


class StudentResponse(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    email: str
    student_number: str
    class_name: str
    qr_code: str
    created_at: datetime
    attendance_count: int = 0


class StudentDetailResponse(StudentResponse):
    recent_attendances: List[StudentAttendanceItem] = Field(default_factory=list)
