from pydantic import BaseModel


class TodayStatsResponse(BaseModel):
    total_students: int
    total_schedules: int
    today_attendance: int
    present_count: int
    sick_count: int
    permission_count: int
    absent_count: int
