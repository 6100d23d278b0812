import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.models import User
from app.auth.schemas import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LoginResponse,
    ProfileUpdate,
    ResetPasswordRequest,
    StudentInfo,
    UserInfo,
)
from app.auth.security import (
    create_access_token,
    generate_reset_token,
    hash_password,
    verify_password,
)
from app.core.clock import now_local
from app.core.config import settings
from app.core.exceptions import ServiceError

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If email exists, reset link will be sent"


def user_to_info(user: User) -> UserInfo:
    student = None
    if user.student is not None:
        student = StudentInfo(
            id=user.student.id,
            student_number=user.student.student_number,
            class_name=user.student.class_name,
            qr_code=user.student.qr_code,
        )
    return UserInfo(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        created_at=user.created_at,
        student=student,
    )


async def email_taken(db: AsyncSession, email: str, exclude_user_id: Optional[UUID] = None) -> bool:
    """Case-insensitive, matching how login looks users up."""
    stmt = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_user_id:
        stmt = stmt.where(User.id != exclude_user_id)
    return (await db.execute(stmt)).first() is not None


async def _get_user_with_student(db: AsyncSession, user_id: UUID) -> Optional[User]:
    result = await db.execute(
        select(User).options(selectinload(User.student)).where(User.id == user_id)
    )
    return result.scalar_one_or_none()


async def login_user(db: AsyncSession, payload: LoginRequest) -> LoginResponse:
    # 1. Find user by email (case-insensitive)
    user_stmt = (
        select(User)
        .options(selectinload(User.student))
        .where(func.lower(User.email) == func.lower(payload.email))
    )
    user_result = await db.execute(user_stmt)
    user: Optional[User] = user_result.scalar_one_or_none()
    if not user:
        logger.info("Login failed for unknown email %s", payload.email)
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    # 2. Verify password hash
    if not verify_password(payload.password, user.password_hash):
        logger.info("Login failed for %s: wrong password", payload.email)
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    # 3. Issue access token (fixed lifetime, no session store)
    access_token = create_access_token(
        subject={"sub": str(user.id), "user_id": str(user.id), "role": user.role}
    )
    logger.info("User %s logged in", user.id)
    return LoginResponse(access_token=access_token, user=user_to_info(user))


async def get_profile(db: AsyncSession, user_id: UUID) -> UserInfo:
    user = await _get_user_with_student(db, user_id)
    if not user:
        raise ServiceError("User not found", status.HTTP_404_NOT_FOUND)
    return user_to_info(user)


async def update_profile(db: AsyncSession, user_id: UUID, payload: ProfileUpdate) -> UserInfo:
    user = await _get_user_with_student(db, user_id)
    if not user:
        raise ServiceError("User not found", status.HTTP_404_NOT_FOUND)

    if payload.name:
        user.name = payload.name.strip()
    if payload.email:
        if await email_taken(db, payload.email, exclude_user_id=user.id):
            raise ServiceError("Email already exists", status.HTTP_409_CONFLICT)
        user.email = payload.email.lower()

    if payload.new_password:
        if not payload.current_password:
            raise ServiceError("Current password required", status.HTTP_400_BAD_REQUEST)
        if not verify_password(payload.current_password, user.password_hash):
            raise ServiceError("Current password is incorrect", status.HTTP_401_UNAUTHORIZED)
        user.password_hash = hash_password(payload.new_password)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Email already exists", status.HTTP_409_CONFLICT)

    user = await _get_user_with_student(db, user_id)
    return user_to_info(user)


async def request_password_reset(
    db: AsyncSession, payload: ForgotPasswordRequest
) -> ForgotPasswordResponse:
    result = await db.execute(
        select(User).where(func.lower(User.email) == func.lower(payload.email))
    )
    user = result.scalar_one_or_none()
    if not user:
        # Don't reveal whether the email exists
        return ForgotPasswordResponse(message=FORGOT_PASSWORD_MESSAGE)

    token = generate_reset_token()
    user.reset_token = token
    user.reset_token_expiry = now_local() + timedelta(minutes=settings.reset_token_expire_minutes)
    await db.commit()
    logger.info("Password reset token issued for user %s", user.id)

    if settings.reset_token_in_response:
        return ForgotPasswordResponse(message=FORGOT_PASSWORD_MESSAGE, reset_token=token)
    return ForgotPasswordResponse(message=FORGOT_PASSWORD_MESSAGE)


async def reset_password(db: AsyncSession, payload: ResetPasswordRequest) -> None:
    result = await db.execute(
        select(User).where(
            User.reset_token == payload.reset_token,
            User.reset_token_expiry >= now_local(),
        )
    )
    user = result.scalar_one_or_none()
    if not user:
        raise ServiceError("Invalid or expired reset token", status.HTTP_400_BAD_REQUEST)

    user.password_hash = hash_password(payload.new_password)
    user.reset_token = None
    user.reset_token_expiry = None
    await db.commit()
    logger.info("Password reset for user %s", user.id)
