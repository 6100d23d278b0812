from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class StudentInfo(BaseModel):
    id: UUID
    student_number: str
    class_name: str
    qr_code: str


class UserInfo(BaseModel):
    id: UUID
    name: str
    email: str
    role: str
    created_at: Optional[datetime] = None
    student: Optional[StudentInfo] = None


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserInfo


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = Field(None, min_length=6)

    @model_validator(mode="after")
    def require_current_password(self) -> "ProfileUpdate":
        if self.new_password and not self.current_password:
            raise ValueError("Current password required")
        return self


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ForgotPasswordResponse(BaseModel):
    message: str
    reset_token: Optional[str] = None  # Only when RESET_TOKEN_IN_RESPONSE is enabled


class ResetPasswordRequest(BaseModel):
    reset_token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class MessageResponse(BaseModel):
    message: str


class CurrentUser(BaseModel):
    """Authenticated user attached to the request, with the student profile when role is STUDENT."""

    id: UUID
    name: str
    email: str
    role: str
    student: Optional[StudentInfo] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    @property
    def student_id(self) -> Optional[UUID]:
        return self.student.id if self.student else None
