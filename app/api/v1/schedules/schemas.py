from datetime import date, datetime, time
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.clock import normalize_day_name


def _parse_time_24(v: Union[str, time]) -> time:
    """Parse 24-hour time string (HH:MM or HH:MM:SS) to time."""
    if isinstance(v, time):
        return v
    if isinstance(v, str):
        v = v.strip()
        if len(v) == 5:  # HH:MM
            return datetime.strptime(v, "%H:%M").time()
        return datetime.strptime(v, "%H:%M:%S").time()
    raise ValueError("start_time/end_time must be 24-hour string (e.g. 09:00, 09:45) or time")


def _parse_day(v: Optional[str]) -> Optional[str]:
    if v is None or not str(v).strip():
        return None
    return normalize_day_name(str(v))


class ScheduleCreate(BaseModel):
    """Recurring (day) or one-off (specific_date). When both are sent the date wins."""

    subject: str = Field(..., min_length=1, max_length=255)
    class_name: str = Field(..., min_length=1, max_length=50)
    day: Optional[str] = Field(None, description="Weekday name, e.g. Senin or Monday")
    specific_date: Optional[date] = None
    start_time: Union[str, time] = Field(..., description="24-hour format, e.g. 09:00")
    end_time: Union[str, time] = Field(..., description="24-hour format, e.g. 09:45")
    teacher_name: str = Field(..., min_length=1, max_length=255)
    room: str = Field(..., min_length=1, max_length=100)
    student_ids: Optional[List[UUID]] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Union[str, time]) -> time:
        return _parse_time_24(v)

    @field_validator("day", mode="before")
    @classmethod
    def parse_day(cls, v: Optional[str]) -> Optional[str]:
        return _parse_day(v)

    @model_validator(mode="after")
    def check_slot(self) -> "ScheduleCreate":
        if self.day is None and self.specific_date is None:
            raise ValueError("Either day or specific_date is required")
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ScheduleUpdate(BaseModel):
    """Partial update. Sending specific_date: null turns a one-off schedule into a recurring one."""

    subject: Optional[str] = Field(None, min_length=1, max_length=255)
    class_name: Optional[str] = Field(None, min_length=1, max_length=50)
    day: Optional[str] = None
    specific_date: Optional[date] = None
    start_time: Optional[Union[str, time]] = Field(None, description="24-hour format, e.g. 09:00")
    end_time: Optional[Union[str, time]] = Field(None, description="24-hour format, e.g. 09:45")
    teacher_name: Optional[str] = Field(None, min_length=1, max_length=255)
    room: Optional[str] = Field(None, min_length=1, max_length=100)
    student_ids: Optional[List[UUID]] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Optional[Union[str, time]]) -> Optional[time]:
        if v is None:
            return None
        return _parse_time_24(v)

    @field_validator("day", mode="before")
    @classmethod
    def parse_day(cls, v: Optional[str]) -> Optional[str]:
        return _parse_day(v)


class ScheduleStudentsAssign(BaseModel):
    student_ids: List[UUID]


class AssignStudentsResponse(BaseModel):
    message: str
    count: int


class StudentBrief(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    email: str
    student_number: str
    class_name: str


class ScheduleResponse(BaseModel):
    id: UUID
    subject: str
    class_name: str
    day: Optional[str] = None
    specific_date: Optional[date] = None
    is_one_off: bool
    start_time: time
    end_time: time
    teacher_name: str
    room: str
    qr_code: Optional[str] = None  # Admins only
    created_at: datetime
    attendance_count: int = 0
    student_count: int = 0


class ScheduleDetailResponse(ScheduleResponse):
    students: List[StudentBrief] = Field(default_factory=list)
