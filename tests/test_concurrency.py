import asyncio
import pytest
from datetime import date, time
from decimal import Decimal
from itertools import combinations

from booking_engine.core.errors import BookingConflictError
from booking_engine.models.db_models import Booking
from booking_engine.models.schemas import BookingTemplate
from booking_engine.services.booking_service import BookingService
from booking_engine.services.locks import KeyedLock, slot_key
from booking_engine.services.time_utils import overlaps, to_minutes

MONDAY = date(2024, 1, 15)


def split(results):
    booked = [r for r in results if isinstance(r, Booking)]
    rejected = [r for r in results if isinstance(r, BookingConflictError)]
    return booked, rejected

def assert_no_overlaps(bookings):
    for a, b in combinations(bookings, 2):
        if a.booking_date != b.booking_date:
            continue
        assert not overlaps(
            to_minutes(a.booking_time), a.duration_minutes, to_minutes(b.booking_time), b.duration_minutes
        ), f"{a.id} overlaps {b.id}"

@pytest.mark.asyncio
async def test_simultaneous_requests_book_the_slot_once(store):
    store.latency = 0.01
    locks = KeyedLock()
    first = BookingService(store=store, locks=locks)
    second = BookingService(store=store, locks=locks)

    results = await asyncio.gather(
        first.create_booking("prov-1", "svc-clean", "cust-1", MONDAY, time(10, 0)),
        second.create_booking("prov-1", "svc-clean", "cust-2", MONDAY, time(10, 0)),
        return_exceptions=True,
    )

    booked, rejected = split(results)
    assert len(booked) == 1
    assert len(rejected) == 1
    assert len(store.active_bookings("prov-1")) == 1

@pytest.mark.asyncio
async def test_store_uniqueness_catches_requests_from_separate_processes(store):
    # separate lock registries behave like two app instances
    store.latency = 0.01
    first = BookingService(store=store, locks=KeyedLock())
    second = BookingService(store=store, locks=KeyedLock())

    results = await asyncio.gather(
        first.create_booking("prov-1", "svc-clean", "cust-1", MONDAY, time(10, 0)),
        second.create_booking("prov-1", "svc-clean", "cust-2", MONDAY, time(10, 0)),
        return_exceptions=True,
    )

    booked, rejected = split(results)
    assert len(booked) == 1
    assert len(rejected) == 1
    # both requests passed the conflict check before either inserted
    assert store.insert_attempts == 2
    assert len(store.active_bookings("prov-1")) == 1

@pytest.mark.asyncio
async def test_overlapping_starts_never_coexist(store):
    store.latency = 0.005
    locks = KeyedLock()
    starts = [time(9, 30), time(10, 0), time(10, 30), time(11, 0), time(11, 30), time(13, 0)]

    results = await asyncio.gather(
        *[
            BookingService(store=store, locks=locks).create_booking("prov-1", "svc-clean", f"cust-{i}", MONDAY, t)
            for i, t in enumerate(starts)
        ],
        return_exceptions=True,
    )

    booked, rejected = split(results)
    assert len(booked) + len(rejected) == len(starts)
    assert_no_overlaps(store.active_bookings("prov-1"))

@pytest.mark.asyncio
async def test_recurring_batch_racing_a_single_booking(store):
    store.latency = 0.005
    locks = KeyedLock()
    template = BookingTemplate(
        provider_id="prov-1",
        service_id="svc-clean",
        customer_id="cust-1",
        booking_time=time(10, 0),
        total_amount=Decimal("1000.00"),
    )
    dates = [date(2024, 1, 15), date(2024, 1, 22), date(2024, 1, 29)]

    batch, single = await asyncio.gather(
        BookingService(store=store, locks=locks).create_recurring(template, dates),
        BookingService(store=store, locks=locks).create_booking(
            "prov-1", "svc-clean", "cust-2", date(2024, 1, 22), time(10, 30)
        ),
        return_exceptions=True,
    )

    active = store.active_bookings("prov-1")
    assert_no_overlaps(active)
    on_contested_day = [b for b in active if b.booking_date == date(2024, 1, 22)]
    assert len(on_contested_day) == 1
    assert len(batch.booking_ids) + (0 if isinstance(single, Exception) else 1) == len(active)

@pytest.mark.asyncio
async def test_keyed_lock_is_released_and_dropped():
    locks = KeyedLock()
    key = slot_key("prov-1", MONDAY)

    async with locks.hold(key):
        assert locks.is_held(key)
        assert not locks.is_held(slot_key("prov-2", MONDAY))

    assert not locks.is_held(key)
    assert locks._locks == {}

@pytest.mark.asyncio
async def test_keyed_lock_released_on_error():
    locks = KeyedLock()
    key = slot_key("prov-1", MONDAY)

    with pytest.raises(RuntimeError):
        async with locks.hold(key):
            raise RuntimeError("boom")

    assert not locks.is_held(key)
