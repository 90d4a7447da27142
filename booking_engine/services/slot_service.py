from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Sequence

from booking_engine.core.config import settings
from booking_engine.core.errors import DataUnavailableError
from booking_engine.core.logger import logger
from booking_engine.models.db_models import ACTIVE_STATUSES, AvailabilityWindow, Booking
from booking_engine.models.schemas import Slot, TimeWindow
from booking_engine.services.conflict_service import find_overlapping
from booking_engine.services.db_service import db_service
from booking_engine.services.time_utils import day_of_week, from_minutes, local_now, to_minutes

REASON_BOOKED = "Already booked"
REASON_PAST = "Past time"

# Used when a provider has not published any window for the weekday
DEFAULT_AVAILABILITY_WINDOW = TimeWindow(
    start_time=settings.DEFAULT_AVAILABILITY_START,
    end_time=settings.DEFAULT_AVAILABILITY_END,
)


def generate_slots(
    windows: Sequence[TimeWindow],
    bookings: Sequence[Booking],
    booking_date: date,
    service_duration: int,
    now: datetime,
    granularity: int = 30,
    buffer_minutes: int = 0,
) -> List[Slot]:
    """
    Candidate start times for every window, each with an availability verdict.

    Overlapping windows yield each start time once, in time order. A
    candidate that overlaps a booking is reported as "Already booked" even
    when it is also in the past.
    """
    slots = []
    seen = set()
    for window in sorted(windows, key=lambda w: (w.start_time, w.end_time)):
        start = to_minutes(window.start_time)
        last_start = to_minutes(window.end_time) - service_duration

        for minutes in range(start, last_start + 1, granularity):
            if minutes in seen:
                continue
            seen.add(minutes)
            slot_time = from_minutes(minutes)
            slot_dt = datetime.combine(booking_date, datetime.min.time()) + timedelta(minutes=minutes)

            if find_overlapping(bookings, minutes, service_duration, buffer_minutes):
                slots.append(Slot(time=slot_time, available=False, reason=REASON_BOOKED))
            elif slot_dt <= now:
                slots.append(Slot(time=slot_time, available=False, reason=REASON_PAST))
            else:
                slots.append(Slot(time=slot_time, available=True))
    return sorted(slots, key=lambda s: s.time)


class SlotGenerator:
    def __init__(
        self,
        store=None,
        default_window: Optional[TimeWindow] = None,
        granularity: Optional[int] = None,
        buffer_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = local_now,
    ):
        self.store = store or db_service
        self.default_window = default_window or DEFAULT_AVAILABILITY_WINDOW
        self.granularity = granularity or settings.SLOT_GRANULARITY_MINUTES
        self.buffer_minutes = settings.BOOKING_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes
        self.clock = clock

    async def get_windows(self, provider_id: str, booking_date: date) -> List[TimeWindow]:
        windows: List[AvailabilityWindow] = await self.store.fetch_availability(
            provider_id, day_of_week(booking_date)
        )
        active = [TimeWindow(start_time=w.start_time, end_time=w.end_time) for w in windows if w.is_available]
        if not active:
            logger.debug(f"No availability rows for {provider_id} on {booking_date}, using default window")
            return [self.default_window]
        return active

    async def available_slots(self, provider_id: str, booking_date: date, service_duration: int) -> List[Slot]:
        """
        Slots for a provider on a date (Async).
        Returns an empty list when availability or bookings cannot be read.
        """
        try:
            windows = await self.get_windows(provider_id, booking_date)
            bookings = await self.store.fetch_bookings(provider_id, booking_date, ACTIVE_STATUSES)
        except DataUnavailableError as e:
            logger.error(f"❌ Cannot build slots for {provider_id} on {booking_date}: {e}")
            return []

        return generate_slots(
            windows,
            bookings,
            booking_date,
            service_duration,
            now=self.clock(),
            granularity=self.granularity,
            buffer_minutes=self.buffer_minutes,
        )
