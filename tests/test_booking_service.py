import pytest
from datetime import date, time
from decimal import Decimal
from unittest.mock import AsyncMock

from booking_engine.core.errors import (
    BookingConflictError,
    BookingNotFoundError,
    DataUnavailableError,
    InvalidStatusTransitionError,
    ServiceNotFoundError,
)
from booking_engine.models.db_models import BookingStatus
from booking_engine.services.booking_service import BookingService
from booking_engine.services.locks import KeyedLock

MONDAY = date(2024, 1, 15)


@pytest.fixture
def service(store):
    return BookingService(store=store, locks=KeyedLock())

@pytest.mark.asyncio
async def test_create_booking_takes_price_and_duration_from_service(store, service):
    booking = await service.create_booking("prov-1", "svc-clean", "cust-1", MONDAY, time(10, 0))

    assert booking.id in store.bookings
    assert booking.total_amount == Decimal("1000.00")
    assert booking.duration_minutes == 60
    assert booking.service_name == "Deep Cleaning"
    assert store.bookings[booking.id].status == BookingStatus.PENDING

@pytest.mark.asyncio
async def test_create_booking_rejects_overlap(store, service):
    existing = store.add_booking("prov-1", MONDAY, "09:30", 60)

    with pytest.raises(BookingConflictError) as exc:
        await service.create_booking("prov-1", "svc-clean", "cust-1", MONDAY, time(10, 0))

    assert [c.id for c in exc.value.conflicts] == [existing.id]
    assert store.insert_attempts == 0

@pytest.mark.asyncio
async def test_create_booking_unknown_service(service):
    with pytest.raises(ServiceNotFoundError):
        await service.create_booking("prov-1", "svc-missing", "cust-1", MONDAY, time(10, 0))

@pytest.mark.asyncio
async def test_status_moves_forward(store, service):
    booking = store.add_booking("prov-1", MONDAY, "10:00")

    updated = await service.update_status(booking.id, BookingStatus.CONFIRMED, "On my way")

    assert updated.status == BookingStatus.CONFIRMED
    assert store.bookings[booking.id].status == BookingStatus.CONFIRMED
    assert store.bookings[booking.id].provider_notes == "On my way"

    await service.update_status(booking.id, BookingStatus.IN_PROGRESS)
    await service.update_status(booking.id, BookingStatus.COMPLETED)
    assert store.bookings[booking.id].status == BookingStatus.COMPLETED

@pytest.mark.asyncio
@pytest.mark.parametrize("current,target", [
    (BookingStatus.PENDING, BookingStatus.COMPLETED),
    (BookingStatus.CONFIRMED, BookingStatus.PENDING),
    (BookingStatus.COMPLETED, BookingStatus.CANCELLED),
    (BookingStatus.CANCELLED, BookingStatus.CONFIRMED),
])
async def test_invalid_transitions(store, service, current, target):
    booking = store.add_booking("prov-1", MONDAY, "10:00", status=current)

    with pytest.raises(InvalidStatusTransitionError):
        await service.update_status(booking.id, target)
    assert store.bookings[booking.id].status == current

@pytest.mark.asyncio
async def test_unknown_booking(service):
    with pytest.raises(BookingNotFoundError):
        await service.update_status("bk-missing", BookingStatus.CONFIRMED)

@pytest.mark.asyncio
async def test_cancel_frees_the_slot(store, service):
    booking = store.add_booking("prov-1", MONDAY, "10:00")

    cancelled = await service.cancel_booking(booking.id)

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.provider_notes == "Cancelled by customer"
    again = await service.create_booking("prov-1", "svc-clean", "cust-2", MONDAY, time(10, 0))
    assert again.id != booking.id

@pytest.mark.asyncio
async def test_unreadable_calendar_is_not_reported_as_a_conflict(store, service):
    store.fetch_bookings = AsyncMock(side_effect=DataUnavailableError("store offline"))

    with pytest.raises(DataUnavailableError) as exc:
        await service.create_booking("prov-1", "svc-clean", "cust-1", MONDAY, time(10, 0))

    assert "Could not verify availability" in exc.value.message
    assert store.insert_attempts == 0
