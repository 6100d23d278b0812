"""Local wall-clock helpers.

All datetimes stored by the service are naive values in the configured
TIMEZONE, so "today" windows can be compared directly in SQL.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from app.core.config import settings

# Index matches date.weekday(): 0=Monday .. 6=Sunday
DAY_NAMES = ("Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu")

ENGLISH_DAY_NAMES = {
    "Monday": "Senin",
    "Tuesday": "Selasa",
    "Wednesday": "Rabu",
    "Thursday": "Kamis",
    "Friday": "Jumat",
    "Saturday": "Sabtu",
    "Sunday": "Minggu",
}


def now_local() -> datetime:
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def today_local() -> date:
    return now_local().date()


def day_name(d: date) -> str:
    return DAY_NAMES[d.weekday()]


def normalize_day_name(value: str) -> str:
    """Map an English or Indonesian weekday name (any case) to the stored Indonesian form."""
    cleaned = value.strip().capitalize()
    if cleaned in DAY_NAMES:
        return cleaned
    if cleaned in ENGLISH_DAY_NAMES:
        return ENGLISH_DAY_NAMES[cleaned]
    raise ValueError(f"Unknown day name: {value}")


def day_window(d: date) -> Tuple[datetime, datetime]:
    """Half-open window [start of d, start of d + 1 day)."""
    start = datetime.combine(d, time.min)
    return start, start + timedelta(days=1)


def occurrence_at(d: date, start_time: Optional[time]) -> datetime:
    return datetime.combine(d, start_time or time.min)
