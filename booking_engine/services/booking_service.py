from datetime import date, time
from decimal import Decimal
from typing import Dict, Iterable, Optional, Set

from booking_engine.core.errors import (
    BookingConflictError,
    BookingNotFoundError,
    DataUnavailableError,
    InvalidStatusTransitionError,
    ServiceNotFoundError,
    StoreWriteError,
)
from booking_engine.core.logger import logger
from booking_engine.models.db_models import Booking, BookingStatus
from booking_engine.models.schemas import (
    BookingTemplate,
    DateOutcome,
    RecurrencePlan,
    RecurringBookingResult,
)
from booking_engine.services.conflict_service import ConflictDetector
from booking_engine.services.db_service import db_service
from booking_engine.services.locks import KeyedLock, slot_key, slot_locks
from booking_engine.services.recurrence import expand_plan
from booking_engine.services.time_utils import from_minutes, to_minutes

ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED},
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}

INSERT_EXCLUDE = {"id", "duration_minutes", "service_name"}


class BookingService:
    def __init__(self, store=None, detector: Optional[ConflictDetector] = None, locks: Optional[KeyedLock] = None):
        self.store = store or db_service
        self.detector = detector or ConflictDetector(store=self.store)
        self.locks = locks or slot_locks

    async def reserve(self, booking: Booking) -> str:
        """
        Conflict check and insert under the provider/day lock.
        Raises BookingConflictError when the slot is taken, DataUnavailableError when
        the calendar cannot be read and StoreWriteError when the insert fails.
        """
        async with self.locks.hold(slot_key(booking.provider_id, booking.booking_date)):
            check = await self.detector.has_conflict(
                booking.provider_id, booking.booking_date, booking.booking_time, booking.duration_minutes
            )
            if check.data_unavailable:
                raise DataUnavailableError(check.reason or "Could not verify availability")
            if check.has_conflict:
                raise BookingConflictError(check.reason or "Time slot is not available", check.conflicts)

            data = booking.model_dump(exclude=INSERT_EXCLUDE)
            data["booking_time"] = from_minutes(to_minutes(booking.booking_time))
            return await self.store.insert_booking(data)

    async def create_booking(
        self,
        provider_id: str,
        service_id: str,
        customer_id: str,
        booking_date: date,
        booking_time: time,
        customer_address: Optional[str] = None,
        customer_notes: Optional[str] = None,
    ) -> Booking:
        """
        Book a single slot (Async). Price and duration come from the service.
        """
        logger.info(f'📥 Booking Request - Provider: {provider_id}, Day: {booking_date}, Time: {booking_time}')

        service = await self.store.get_service(service_id)
        if not service:
            raise ServiceNotFoundError(f"Service {service_id} not found")

        booking = Booking(
            provider_id=provider_id,
            service_id=service_id,
            customer_id=customer_id,
            booking_date=booking_date,
            booking_time=booking_time,
            duration_minutes=service.duration_minutes,
            service_name=service.name,
            total_amount=service.price,
            customer_address=customer_address,
            customer_notes=customer_notes,
        )
        booking.id = await self.reserve(booking)
        logger.info(f"✅ Booking {booking.id} created for {booking_date} at {booking_time}")
        return booking

    async def create_recurring(self, template: BookingTemplate, dates: Iterable[date]) -> RecurringBookingResult:
        """
        One independent booking per date, in the given order.
        A conflict or failed insert is recorded for its date and the batch carries on.
        """
        slot_time = from_minutes(to_minutes(template.booking_time))
        outcomes = []

        for booking_date in dates:
            booking = Booking(
                provider_id=template.provider_id,
                service_id=template.service_id,
                customer_id=template.customer_id,
                booking_date=booking_date,
                booking_time=template.booking_time,
                duration_minutes=template.duration_minutes,
                total_amount=template.total_amount or Decimal("0"),
                customer_address=template.customer_address,
                customer_notes=template.customer_notes,
            )
            try:
                booking_id = await self.reserve(booking)
                outcomes.append(DateOutcome(date=booking_date, booking_id=booking_id))
            except BookingConflictError as e:
                logger.info(f"⛔ Recurring date skipped: {booking_date} {slot_time}")
                outcomes.append(DateOutcome(
                    date=booking_date, error=f"Conflict found for {booking_date} at {slot_time}: {e.message}"
                ))
            except (StoreWriteError, DataUnavailableError) as e:
                logger.error(f"❌ Recurring booking failed for {booking_date}: {e.message}")
                outcomes.append(DateOutcome(
                    date=booking_date, error=f"Failed to create booking for {booking_date}: {e.message}"
                ))

        booking_ids = [o.booking_id for o in outcomes if o.succeeded]
        errors = [o.error for o in outcomes if o.error]
        logger.info(f"🏁 Recurring batch: {len(booking_ids)} created, {len(errors)} failed")
        return RecurringBookingResult(
            success=len(booking_ids) > 0,
            booking_ids=booking_ids,
            errors=errors,
            outcomes=outcomes,
        )

    async def create_recurring_from_plan(self, template: BookingTemplate, plan: RecurrencePlan) -> RecurringBookingResult:
        """Expand the plan and book every date; price and duration come from the service when one is given."""
        dates = expand_plan(plan)
        if not dates:
            return RecurringBookingResult(success=False, errors=["No valid dates found for recurring booking"])

        if template.service_id:
            service = await self.store.get_service(template.service_id)
            if not service:
                raise ServiceNotFoundError(f"Service {template.service_id} not found")
            template = template.model_copy(
                update={"duration_minutes": service.duration_minutes, "total_amount": service.price}
            )

        logger.info(f"📅 Recurring request for {template.provider_id}: {len(dates)} date(s), {plan.recurrence_class.value}")
        return await self.create_recurring(template, dates)

    async def update_status(
        self, booking_id: str, new_status: BookingStatus, provider_notes: Optional[str] = None
    ) -> Booking:
        booking = await self.store.get_booking(booking_id)
        if not booking:
            raise BookingNotFoundError(f"Booking {booking_id} not found")

        if new_status not in ALLOWED_TRANSITIONS[booking.status]:
            raise InvalidStatusTransitionError(
                f"Cannot change booking {booking_id} from {booking.status.value} to {new_status.value}"
            )

        fields = {"status": new_status}
        if provider_notes:
            fields["provider_notes"] = provider_notes
        await self.store.update_booking(booking_id, fields)
        logger.info(f"🔄 Booking {booking_id}: {booking.status.value} -> {new_status.value}")
        return booking.model_copy(update=fields)

    async def cancel_booking(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        return await self.update_status(booking_id, BookingStatus.CANCELLED, reason or "Cancelled by customer")
