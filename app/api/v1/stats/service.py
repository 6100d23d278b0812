from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Student
from app.core import clock
from app.core.enums import AttendanceStatus
from app.core.models import Attendance, Schedule

from .schemas import TodayStatsResponse


async def get_today_stats(db: AsyncSession) -> TodayStatsResponse:
    """Totals plus today's attendance by status, keyed on the occurrence date."""
    total_students = (await db.execute(select(func.count(Student.id)))).scalar_one()
    total_schedules = (await db.execute(select(func.count(Schedule.id)))).scalar_one()

    start, end = clock.day_window(clock.today_local())
    result = await db.execute(
        select(Attendance.status, func.count(Attendance.id))
        .where(Attendance.schedule_date >= start, Attendance.schedule_date < end)
        .group_by(Attendance.status)
    )
    by_status = {s: n for s, n in result.all()}

    return TodayStatsResponse(
        total_students=total_students,
        total_schedules=total_schedules,
        today_attendance=sum(by_status.values()),
        present_count=by_status.get(AttendanceStatus.PRESENT.value, 0),
        sick_count=by_status.get(AttendanceStatus.SICK.value, 0),
        permission_count=by_status.get(AttendanceStatus.PERMISSION.value, 0),
        absent_count=by_status.get(AttendanceStatus.ABSENT.value, 0),
    )
