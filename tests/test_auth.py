import logging
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from jose import jwt

from app.auth.security import create_access_token
from app.core.config import settings


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, admin_user) -> None:
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "admin@attendance.com", "password": "admin123"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["user"]["role"] == "ADMIN"
    assert data["user"]["student"] is None

    claims = jwt.decode(data["access_token"], settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    assert claims["user_id"] == str(admin_user.id)
    lifetime = datetime.fromtimestamp(claims["exp"], tz=timezone.utc) - datetime.now(timezone.utc)
    assert timedelta(days=6, hours=23) < lifetime <= timedelta(days=7)


@pytest.mark.asyncio
async def test_login_is_case_insensitive_on_email(client: AsyncClient, admin_user) -> None:
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "ADMIN@attendance.com", "password": "admin123"},
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_login_invalid_credentials(client: AsyncClient, admin_user) -> None:
    wrong_password = await client.post(
        "/api/v1/auth/login",
        json={"email": "admin@attendance.com", "password": "nope"},
    )
    unknown_email = await client.post(
        "/api/v1/auth/login",
        json={"email": "ghost@attendance.com", "password": "admin123"},
    )
    assert wrong_password.status_code == 401
    assert wrong_password.json() == {"error": "Invalid credentials"}
    assert unknown_email.status_code == 401
    assert unknown_email.json() == {"error": "Invalid credentials"}


@pytest.mark.asyncio
async def test_login_missing_field_is_400(client: AsyncClient) -> None:
    response = await client.post("/api/v1/auth/login", json={"email": "admin@attendance.com"})
    assert response.status_code == 400
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_student_default_password_login(client: AsyncClient, make_student) -> None:
    student, _ = await make_student()
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "student1@sekolah.sch.id", "password": "studentS001"},
    )
    assert response.status_code == 200
    assert response.json()["user"]["student"]["student_number"] == student.student_number


@pytest.mark.asyncio
async def test_me_requires_token(client: AsyncClient) -> None:
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_me_rejects_bad_and_expired_tokens(client: AsyncClient, admin_user) -> None:
    bad = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    expired_token = create_access_token(
        subject={"sub": str(admin_user.id), "user_id": str(admin_user.id)},
        expires_minutes=-1,
    )
    expired = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {expired_token}"})
    assert bad.status_code == 401
    assert bad.json() == {"error": "Invalid token"}
    assert expired.status_code == 401


@pytest.mark.asyncio
async def test_me_returns_student_profile(client: AsyncClient, make_student) -> None:
    student, headers = await make_student(class_name="6B")
    response = await client.get("/api/v1/auth/me", headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert data["role"] == "STUDENT"
    assert data["student"]["id"] == str(student.id)
    assert data["student"]["class_name"] == "6B"


@pytest.mark.asyncio
async def test_update_profile_password_change(client: AsyncClient, admin_headers) -> None:
    missing_current = await client.put(
        "/api/v1/auth/profile",
        headers=admin_headers,
        json={"new_password": "newpass123"},
    )
    assert missing_current.status_code == 400

    wrong_current = await client.put(
        "/api/v1/auth/profile",
        headers=admin_headers,
        json={"current_password": "bad", "new_password": "newpass123"},
    )
    assert wrong_current.status_code == 401

    ok = await client.put(
        "/api/v1/auth/profile",
        headers=admin_headers,
        json={"name": "Head Admin", "current_password": "admin123", "new_password": "newpass123"},
    )
    assert ok.status_code == 200
    assert ok.json()["name"] == "Head Admin"

    login = await client.post(
        "/api/v1/auth/login",
        json={"email": "admin@attendance.com", "password": "newpass123"},
    )
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_update_profile_duplicate_email(client: AsyncClient, admin_headers, make_student) -> None:
    await make_student()
    response = await client.put(
        "/api/v1/auth/profile",
        headers=admin_headers,
        json={"email": "student1@sekolah.sch.id"},
    )
    assert response.status_code == 409
    assert response.json() == {"error": "Email already exists"}


@pytest.mark.asyncio
async def test_update_profile_rejects_case_variant_of_taken_email(
    client: AsyncClient, admin_user, make_student
) -> None:
    _, headers = await make_student()
    response = await client.put(
        "/api/v1/auth/profile",
        headers=headers,
        json={"email": "Admin@Attendance.com"},
    )
    assert response.status_code == 409

    login = await client.post(
        "/api/v1/auth/login",
        json={"email": "admin@attendance.com", "password": "admin123"},
    )
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_update_profile_stores_email_lowercase(client: AsyncClient, make_student) -> None:
    _, headers = await make_student()
    response = await client.put(
        "/api/v1/auth/profile",
        headers=headers,
        json={"email": "Budi.Baru@Sekolah.sch.id"},
    )
    assert response.status_code == 200
    assert response.json()["email"] == "budi.baru@sekolah.sch.id"


@pytest.mark.asyncio
async def test_forgot_password_does_not_reveal_email(client: AsyncClient, admin_user) -> None:
    known = await client.post("/api/v1/auth/forgot-password", json={"email": "admin@attendance.com"})
    unknown = await client.post("/api/v1/auth/forgot-password", json={"email": "nobody@attendance.com"})
    assert known.status_code == 200
    assert unknown.status_code == 200
    assert known.json() == unknown.json()
    assert "reset_token" not in known.json()


@pytest.mark.asyncio
async def test_forgot_password_does_not_log_token(
    client: AsyncClient, admin_user, monkeypatch, caplog
) -> None:
    monkeypatch.setattr(settings, "reset_token_in_response", True)
    caplog.set_level(logging.DEBUG)
    forgot = await client.post("/api/v1/auth/forgot-password", json={"email": "admin@attendance.com"})
    token = forgot.json()["reset_token"]
    assert token not in caplog.text


@pytest.mark.asyncio
async def test_reset_password_flow(client: AsyncClient, admin_user, monkeypatch) -> None:
    monkeypatch.setattr(settings, "reset_token_in_response", True)
    forgot = await client.post("/api/v1/auth/forgot-password", json={"email": "admin@attendance.com"})
    token = forgot.json()["reset_token"]
    assert len(token) == 64

    reset = await client.post(
        "/api/v1/auth/reset-password",
        json={"reset_token": token, "new_password": "brandnew1"},
    )
    assert reset.status_code == 200

    reused = await client.post(
        "/api/v1/auth/reset-password",
        json={"reset_token": token, "new_password": "another1"},
    )
    assert reused.status_code == 400
    assert reused.json() == {"error": "Invalid or expired reset token"}

    login = await client.post(
        "/api/v1/auth/login",
        json={"email": "admin@attendance.com", "password": "brandnew1"},
    )
    assert login.status_code == 200
