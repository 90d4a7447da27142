from datetime import date, datetime, time
from typing import Union
from zoneinfo import ZoneInfo

from booking_engine.core.config import settings

TimeOfDay = Union[str, time]

def to_minutes(value: TimeOfDay) -> int:
    """
    Minutes since midnight for 'HH:MM', 'HH:MM:SS' or a datetime.time.
    Input is assumed well-formed.
    """
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)

def from_minutes(minutes: int) -> str:
    """Inverse of to_minutes, zero padded 'HH:MM'."""
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"

def to_time(value: TimeOfDay) -> time:
    minutes = to_minutes(value)
    return time(minutes // 60, minutes % 60)

def overlaps(start_a: int, duration_a: int, start_b: int, duration_b: int) -> bool:
    """
    Half-open interval test on [start, start + duration).
    Touching intervals (end of A == start of B) do not overlap.
    """
    return start_a < start_b + duration_b and start_a + duration_a > start_b

def day_of_week(value: date) -> int:
    """Weekday in the store's convention: 0 = Sunday ... 6 = Saturday."""
    return (value.weekday() + 1) % 7

def local_now() -> datetime:
    """Current wall-clock time in the marketplace timezone, naive like stored booking times."""
    return datetime.now(ZoneInfo(settings.BOOKING_TIMEZONE)).replace(tzinfo=None)
