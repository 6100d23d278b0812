from app.core.models.schedule import Schedule, ScheduleStudent
from app.core.models.attendance import Attendance
from app.core.models.payment import Payment
from app.core.models.material import Material, MaterialSection

__all__ = [
    "Attendance",
    "Material",
    "MaterialSection",
    "Payment",
    "Schedule",
    "ScheduleStudent",
]
