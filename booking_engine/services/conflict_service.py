from datetime import date
from typing import Iterable, List, Optional

from booking_engine.core.config import settings
from booking_engine.core.errors import DataUnavailableError
from booking_engine.core.logger import logger
from booking_engine.models.db_models import ACTIVE_STATUSES, Booking
from booking_engine.models.schemas import ConflictCheck, ConflictingBooking
from booking_engine.services.db_service import db_service
from booking_engine.services.time_utils import TimeOfDay, from_minutes, overlaps, to_minutes


def booking_overlaps(booking: Booking, start_minutes: int, duration: int, buffer_minutes: int = 0) -> bool:
    """Overlap of a requested interval with an existing booking, padded by the buffer on both sides."""
    existing_start = to_minutes(booking.booking_time) - buffer_minutes
    existing_duration = booking.duration_minutes + 2 * buffer_minutes
    return overlaps(start_minutes, duration, existing_start, existing_duration)


def find_overlapping(
    bookings: Iterable[Booking], start_minutes: int, duration: int, buffer_minutes: int = 0
) -> List[Booking]:
    return [b for b in bookings if booking_overlaps(b, start_minutes, duration, buffer_minutes)]


def describe_conflicts(conflicts: List[ConflictingBooking]) -> str:
    parts = [
        f"{c.service_name} at {c.booking_time} for {c.duration_minutes} min (booking {c.id})"
        for c in conflicts
    ]
    return "Conflicts with existing booking: " + "; ".join(parts)


class ConflictDetector:
    """
    Decides whether a requested interval is free for a provider on a date.

    A store outage fails closed: the result reports a conflict with
    data_unavailable=True and no conflicting bookings.
    """

    def __init__(self, store=None, buffer_minutes: Optional[int] = None):
        self.store = store or db_service
        self.buffer_minutes = settings.BOOKING_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes

    async def has_conflict(
        self, provider_id: str, booking_date: date, requested_start: TimeOfDay, requested_duration: int
    ) -> ConflictCheck:
        try:
            existing = await self.store.fetch_bookings(provider_id, booking_date, ACTIVE_STATUSES)
        except DataUnavailableError as e:
            logger.error(f"❌ Conflict check failed closed for {provider_id} on {booking_date}: {e}")
            return ConflictCheck(
                has_conflict=True,
                data_unavailable=True,
                reason=f"Could not verify availability: {e.message}",
            )

        start = to_minutes(requested_start)
        conflicts = [
            ConflictingBooking(
                id=b.id,
                booking_date=b.booking_date,
                booking_time=from_minutes(to_minutes(b.booking_time)),
                service_name=b.service_name or "Unknown Service",
                duration_minutes=b.duration_minutes,
            )
            for b in find_overlapping(existing, start, requested_duration, self.buffer_minutes)
        ]

        if conflicts:
            logger.info(f"⛔ {len(conflicts)} conflict(s) for {provider_id} on {booking_date} at {from_minutes(start)}")
            return ConflictCheck(has_conflict=True, conflicts=conflicts, reason=describe_conflicts(conflicts))
        return ConflictCheck(has_conflict=False)
