import pytest
from httpx import AsyncClient
from sqlalchemy import delete, func, select

from app.auth.models import Student, User
from app.auth.security import verify_password
from app.core.models import Attendance, Payment, ScheduleStudent


def student_payload(**overrides) -> dict:
    payload = {
        "name": "Budi Santoso",
        "email": "a@b.com",
        "student_number": "2024001",
        "class_name": "5",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_student_with_default_password(
    client: AsyncClient, admin_headers, db_session
) -> None:
    response = await client.post("/api/v1/students", headers=admin_headers, json=student_payload())
    assert response.status_code == 201
    data = response.json()
    assert data["class_name"] == "5"
    assert data["name"] == "Budi Santoso"
    assert len(data["qr_code"]) == 16

    user = (await db_session.execute(select(User).where(User.email == "a@b.com"))).scalar_one()
    assert user.role == "STUDENT"
    assert verify_password("student2024001", user.password_hash)

    student = (await db_session.execute(select(Student).where(Student.user_id == user.id))).scalar_one()
    assert student.class_name == "5"


@pytest.mark.asyncio
async def test_create_student_with_explicit_password(client: AsyncClient, admin_headers) -> None:
    await client.post(
        "/api/v1/students", headers=admin_headers, json=student_payload(password="rahasia99")
    )
    login = await client.post("/api/v1/auth/login", json={"email": "a@b.com", "password": "rahasia99"})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_create_student_duplicates(client: AsyncClient, admin_headers, db_session) -> None:
    first = await client.post("/api/v1/students", headers=admin_headers, json=student_payload())
    assert first.status_code == 201

    same_email = await client.post(
        "/api/v1/students", headers=admin_headers, json=student_payload(student_number="2024002")
    )
    same_number = await client.post(
        "/api/v1/students", headers=admin_headers, json=student_payload(email="c@d.com")
    )
    assert same_email.status_code == 409
    assert same_number.status_code == 409

    users = (await db_session.execute(select(func.count(User.id)))).scalar_one()
    assert users == 2  # admin + the first student


@pytest.mark.asyncio
async def test_list_students_admin_only(client: AsyncClient, admin_headers, make_student) -> None:
    _, headers = await make_student(class_name="5A")
    await make_student(class_name="6A")

    forbidden = await client.get("/api/v1/students", headers=headers)
    assert forbidden.status_code == 403

    all_students = await client.get("/api/v1/students", headers=admin_headers)
    assert len(all_students.json()) == 2

    only_5a = await client.get("/api/v1/students?class=5A", headers=admin_headers)
    assert [s["class_name"] for s in only_5a.json()] == ["5A"]


@pytest.mark.asyncio
async def test_get_student_self_or_admin(client: AsyncClient, admin_headers, make_student) -> None:
    me, my_headers = await make_student()
    other, _ = await make_student()

    own = await client.get(f"/api/v1/students/{me.id}", headers=my_headers)
    assert own.status_code == 200
    assert own.json()["recent_attendances"] == []

    someone_else = await client.get(f"/api/v1/students/{other.id}", headers=my_headers)
    assert someone_else.status_code == 403

    as_admin = await client.get(f"/api/v1/students/{other.id}", headers=admin_headers)
    assert as_admin.status_code == 200

    missing = await client.get(
        "/api/v1/students/00000000-0000-0000-0000-000000000001", headers=admin_headers
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_get_student_includes_recent_attendance(
    client: AsyncClient, admin_headers, make_student, make_schedule
) -> None:
    student, _ = await make_student()
    schedule = await make_schedule(students=[student])
    await client.post(
        "/api/v1/attendance/manual",
        headers=admin_headers,
        json={"schedule_id": str(schedule.id), "student_id": str(student.id), "status": "SICK"},
    )
    response = await client.get(f"/api/v1/students/{student.id}", headers=admin_headers)
    data = response.json()
    assert data["attendance_count"] == 1
    assert data["recent_attendances"][0]["status"] == "SICK"
    assert data["recent_attendances"][0]["subject"] == "Matematika"


@pytest.mark.asyncio
async def test_update_student(client: AsyncClient, admin_headers, make_student) -> None:
    student, _ = await make_student()
    await make_student()

    response = await client.put(
        f"/api/v1/students/{student.id}",
        headers=admin_headers,
        json={"class_name": "6C", "name": "Siti", "password": "baru1234"},
    )
    assert response.status_code == 200
    assert response.json()["class_name"] == "6C"
    assert response.json()["name"] == "Siti"

    login = await client.post(
        "/api/v1/auth/login", json={"email": "student1@sekolah.sch.id", "password": "baru1234"}
    )
    assert login.status_code == 200

    duplicate = await client.put(
        f"/api/v1/students/{student.id}",
        headers=admin_headers,
        json={"email": "student2@sekolah.sch.id"},
    )
    assert duplicate.status_code == 409


@pytest.mark.asyncio
async def test_delete_student_cascades(
    client: AsyncClient, admin_headers, make_student, make_schedule, db_session
) -> None:
    student, headers = await make_student()
    schedule = await make_schedule(students=[student])
    await client.post(
        "/api/v1/attendance/manual",
        headers=admin_headers,
        json={"schedule_id": str(schedule.id), "student_id": str(student.id), "status": "PRESENT"},
    )
    await client.post(
        "/api/v1/payments",
        headers=headers,
        json={
            "amount": 150000,
            "payer_name": "Orang Tua",
            "payment_date": "2024-01-10",
            "description": "SPP Januari",
            "proof_image": "data:image/png;base64,iVBORw0KGgo=",
        },
    )

    response = await client.delete(f"/api/v1/students/{student.id}", headers=admin_headers)
    assert response.status_code == 200

    for model in (Student, ScheduleStudent, Attendance, Payment):
        count = (await db_session.execute(select(func.count()).select_from(model))).scalar_one()
        assert count == 0, model.__tablename__
    users = (await db_session.execute(select(User.role))).scalars().all()
    assert users == ["ADMIN"]


@pytest.mark.asyncio
async def test_deleting_user_removes_student_profile(
    client: AsyncClient, admin_headers, make_student, make_schedule, db_session
) -> None:
    student, _ = await make_student()
    schedule = await make_schedule(students=[student])
    await client.post(
        "/api/v1/attendance/manual",
        headers=admin_headers,
        json={"schedule_id": str(schedule.id), "student_id": str(student.id), "status": "PRESENT"},
    )

    await db_session.execute(delete(User).where(User.id == student.user_id))
    await db_session.commit()

    for model in (Student, ScheduleStudent, Attendance):
        count = (await db_session.execute(select(func.count()).select_from(model))).scalar_one()
        assert count == 0, model.__tablename__

    still_there = await client.get(f"/api/v1/schedules/{schedule.id}", headers=admin_headers)
    assert still_there.status_code == 200
    assert still_there.json()["students"] == []


@pytest.mark.asyncio
async def test_student_schedules(client: AsyncClient, make_student, make_schedule) -> None:
    student, headers = await make_student()
    await make_schedule(students=[student], subject="Fisika")
    await make_schedule(subject="Kimia")

    response = await client.get(f"/api/v1/students/{student.id}/schedules", headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert [s["subject"] for s in data] == ["Fisika"]
    assert data[0]["qr_code"] is None
