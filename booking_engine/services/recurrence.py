"""
Expansion of a recurrence plan into concrete booking dates.

Weekdays follow the store's convention (0 = Sunday ... 6 = Saturday).
"""
from datetime import date, timedelta
from typing import Iterable, List, Optional

from dateutil.relativedelta import relativedelta

from booking_engine.models.schemas import RecurrenceClass, RecurrencePlan
from booking_engine.services.time_utils import day_of_week

WEEK_STEP = {
    RecurrenceClass.WEEKLY: 1,
    RecurrenceClass.BIWEEKLY: 2,
}


def _monthly(start_date: date, end_date: date) -> List[date]:
    dates = []
    months = 0
    current = start_date
    while current <= end_date:
        dates.append(current)
        months += 1
        # Offset from the start so a 31st clamps per month without drifting
        current = start_date + relativedelta(months=months)
    return dates


def _weekly_on_days(start_date: date, end_date: date, step_weeks: int, weekdays: Iterable[int]) -> List[date]:
    wanted = set(weekdays)
    dates = []
    week_start = start_date
    while week_start <= end_date:
        for offset in range(7):
            candidate = week_start + timedelta(days=offset)
            if candidate > end_date:
                break
            if day_of_week(candidate) in wanted:
                dates.append(candidate)
        week_start += timedelta(weeks=step_weeks)
    return dates


def _fixed_interval(start_date: date, end_date: date, step_weeks: int) -> List[date]:
    dates = []
    current = start_date
    while current <= end_date:
        dates.append(current)
        current += timedelta(weeks=step_weeks)
    return dates


def expand(
    start_date: date,
    end_date: date,
    recurrence_class: RecurrenceClass,
    weekdays: Optional[Iterable[int]] = None,
) -> List[date]:
    """Sorted, de-duplicated dates in [start_date, end_date] implied by the recurrence."""
    if start_date > end_date:
        return []

    recurrence_class = RecurrenceClass(recurrence_class)
    weekdays = list(weekdays or [])

    if recurrence_class == RecurrenceClass.MONTHLY:
        dates = _monthly(start_date, end_date)
    elif weekdays:
        dates = _weekly_on_days(start_date, end_date, WEEK_STEP[recurrence_class], weekdays)
    else:
        dates = _fixed_interval(start_date, end_date, WEEK_STEP[recurrence_class])

    return sorted(set(dates))


def expand_plan(plan: RecurrencePlan) -> List[date]:
    return expand(plan.start_date, plan.end_date, plan.recurrence_class, plan.weekdays)
