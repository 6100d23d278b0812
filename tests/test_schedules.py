from datetime import date, time

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from app.core import clock
from app.core.models import Attendance, MaterialSection, Schedule, ScheduleStudent

MONDAY = date(2024, 1, 15)


def schedule_payload(**overrides) -> dict:
    payload = {
        "subject": "Matematika",
        "class_name": "5A",
        "day": "Senin",
        "start_time": "08:00",
        "end_time": "09:30",
        "teacher_name": "Bu Sari",
        "room": "R101",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_schedule_with_roster(client: AsyncClient, admin_headers, make_student) -> None:
    s1, _ = await make_student()
    s2, _ = await make_student()
    response = await client.post(
        "/api/v1/schedules",
        headers=admin_headers,
        json=schedule_payload(student_ids=[str(s1.id), str(s2.id)]),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["day"] == "Senin"
    assert data["is_one_off"] is False
    assert data["start_time"] == "08:00:00"
    assert data["student_count"] == 2
    assert len(data["qr_code"]) == 16
    assert {s["id"] for s in data["students"]} == {str(s1.id), str(s2.id)}


@pytest.mark.asyncio
async def test_create_schedule_normalizes_english_day(client: AsyncClient, admin_headers) -> None:
    response = await client.post("/api/v1/schedules", headers=admin_headers, json=schedule_payload(day="wednesday"))
    assert response.status_code == 201
    assert response.json()["day"] == "Rabu"


@pytest.mark.asyncio
async def test_create_one_off_schedule_takes_weekday_from_date(client: AsyncClient, admin_headers) -> None:
    response = await client.post(
        "/api/v1/schedules",
        headers=admin_headers,
        json=schedule_payload(day="Jumat", specific_date="2024-01-15"),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["is_one_off"] is True
    assert data["specific_date"] == "2024-01-15"
    assert data["day"] == "Senin"


@pytest.mark.asyncio
async def test_create_schedule_validation(client: AsyncClient, admin_headers) -> None:
    no_slot = await client.post(
        "/api/v1/schedules", headers=admin_headers, json=schedule_payload(day=None)
    )
    bad_times = await client.post(
        "/api/v1/schedules",
        headers=admin_headers,
        json=schedule_payload(start_time="10:00", end_time="09:00"),
    )
    missing_subject = schedule_payload()
    del missing_subject["subject"]
    missing = await client.post("/api/v1/schedules", headers=admin_headers, json=missing_subject)
    assert no_slot.status_code == 400
    assert bad_times.status_code == 400
    assert missing.status_code == 400


@pytest.mark.asyncio
async def test_create_schedule_unknown_student_rolls_back(
    client: AsyncClient, admin_headers, db_session
) -> None:
    response = await client.post(
        "/api/v1/schedules",
        headers=admin_headers,
        json=schedule_payload(student_ids=["00000000-0000-0000-0000-000000000001"]),
    )
    assert response.status_code == 400
    count = (await db_session.execute(select(func.count(Schedule.id)))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_create_schedule_requires_admin(client: AsyncClient, make_student) -> None:
    _, headers = await make_student()
    response = await client.post("/api/v1/schedules", headers=headers, json=schedule_payload())
    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}


@pytest.mark.asyncio
async def test_list_schedules_hides_scan_code_from_students(
    client: AsyncClient, admin_headers, make_student, make_schedule
) -> None:
    student, headers = await make_student()
    await make_schedule(students=[student])

    as_admin = await client.get("/api/v1/schedules", headers=admin_headers)
    as_student = await client.get("/api/v1/schedules", headers=headers)
    assert as_admin.json()[0]["qr_code"]
    assert as_student.json()[0]["qr_code"] is None
    assert as_student.json()[0]["student_count"] == 1


@pytest.mark.asyncio
async def test_list_schedules_filters_and_ordering(client: AsyncClient, admin_headers, make_schedule) -> None:
    await make_schedule(day="Rabu", subject="IPA")
    await make_schedule(day="Senin", subject="IPS", start_time=time(10, 0), end_time=time(11, 0))
    await make_schedule(day="Senin", subject="Bahasa", class_name="6A")

    response = await client.get("/api/v1/schedules", headers=admin_headers)
    assert [s["subject"] for s in response.json()] == ["Bahasa", "IPS", "IPA"]

    monday_5a = await client.get("/api/v1/schedules?day=Monday&class=5A", headers=admin_headers)
    assert [s["subject"] for s in monday_5a.json()] == ["IPS"]

    bad_day = await client.get("/api/v1/schedules?day=Someday", headers=admin_headers)
    assert bad_day.status_code == 400


@pytest.mark.asyncio
async def test_list_schedules_cache_invalidated_on_write(
    client: AsyncClient, admin_headers, cache
) -> None:
    first = await client.get("/api/v1/schedules", headers=admin_headers)
    assert first.json() == []
    assert cache.contains("schedules", (None, None))

    created = await client.post("/api/v1/schedules", headers=admin_headers, json=schedule_payload())
    assert created.status_code == 201
    assert not cache.contains("schedules", (None, None))

    second = await client.get("/api/v1/schedules", headers=admin_headers)
    assert len(second.json()) == 1


@pytest.mark.asyncio
async def test_today_schedules(client: AsyncClient, admin_headers, make_schedule, monkeypatch) -> None:
    monkeypatch.setattr(clock, "today_local", lambda: MONDAY)
    await make_schedule(day="Senin", subject="Recurring Monday")
    await make_schedule(day="Selasa", subject="Tuesday")
    await make_schedule(specific_date=MONDAY, subject="One-off today")
    await make_schedule(specific_date=date(2024, 1, 22), subject="One-off next week")

    response = await client.get("/api/v1/schedules/today", headers=admin_headers)
    assert response.status_code == 200
    assert {s["subject"] for s in response.json()} == {"Recurring Monday", "One-off today"}


@pytest.mark.asyncio
async def test_get_schedule_not_found(client: AsyncClient, admin_headers) -> None:
    response = await client.get(
        "/api/v1/schedules/00000000-0000-0000-0000-000000000001", headers=admin_headers
    )
    assert response.status_code == 404
    assert response.json() == {"error": "Schedule not found"}


@pytest.mark.asyncio
async def test_update_schedule_replaces_roster(
    client: AsyncClient, admin_headers, make_student, make_schedule
) -> None:
    s1, _ = await make_student()
    s2, _ = await make_student()
    schedule = await make_schedule(students=[s1])

    response = await client.put(
        f"/api/v1/schedules/{schedule.id}",
        headers=admin_headers,
        json={"room": "Lab 2", "student_ids": [str(s2.id)]},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["room"] == "Lab 2"
    assert data["subject"] == "Matematika"
    assert [s["id"] for s in data["students"]] == [str(s2.id)]


@pytest.mark.asyncio
async def test_assign_students_replaces_roster(
    client: AsyncClient, admin_headers, make_student, make_schedule, db_session
) -> None:
    s1, _ = await make_student()
    s2, _ = await make_student()
    s3, _ = await make_student()
    schedule = await make_schedule(students=[s1, s2])

    response = await client.post(
        f"/api/v1/schedules/{schedule.id}/students",
        headers=admin_headers,
        json={"student_ids": [str(s3.id), str(s3.id)]},
    )
    assert response.status_code == 200
    assert response.json() == {"message": "Students assigned successfully", "count": 1}

    roster = await client.get(f"/api/v1/schedules/{schedule.id}/students", headers=admin_headers)
    assert [s["id"] for s in roster.json()] == [str(s3.id)]


@pytest.mark.asyncio
async def test_regenerate_scan_code(client: AsyncClient, admin_headers, make_schedule) -> None:
    schedule = await make_schedule()
    response = await client.post(f"/api/v1/schedules/{schedule.id}/regenerate-qr", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["qr_code"] != schedule.qr_code


@pytest.mark.asyncio
async def test_delete_schedule_cascades(
    client: AsyncClient, admin_headers, make_student, make_schedule, db_session
) -> None:
    student, _ = await make_student()
    schedule = await make_schedule(students=[student])
    await client.post(
        "/api/v1/attendance/manual",
        headers=admin_headers,
        json={"schedule_id": str(schedule.id), "student_id": str(student.id), "status": "PRESENT"},
    )
    await client.post(
        "/api/v1/materials/sections",
        headers=admin_headers,
        json={"schedule_id": str(schedule.id), "title": "Week 1"},
    )

    response = await client.delete(f"/api/v1/schedules/{schedule.id}", headers=admin_headers)
    assert response.status_code == 200

    for model in (Schedule, ScheduleStudent, Attendance, MaterialSection):
        count = (await db_session.execute(select(func.count()).select_from(model))).scalar_one()
        assert count == 0, model.__tablename__
