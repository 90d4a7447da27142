import asyncio
from datetime import date, datetime, time
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from booking_engine.core.errors import (
    BookingConflictError,
    BookingInsertError,
    DataUnavailableError,
    StoreWriteError,
)
from booking_engine.models.db_models import (
    ACTIVE_STATUSES,
    AvailabilityWindow,
    Booking,
    BookingStatus,
    PaymentStatus,
    RefundRecord,
    Service,
    ServiceProvider,
)
from booking_engine.services.time_utils import to_time

# Wednesday morning; every test date below is after it unless stated otherwise
FIXED_NOW = datetime(2024, 1, 10, 8, 0)


def fixed_clock(now: datetime = FIXED_NOW):
    return lambda: now


class InMemoryStore:
    """
    Stand-in for DBService. Enforces the same unique (provider, date, time)
    rule on active bookings as the partial index in the migrations.

    `latency` sleeps inside every call so that concurrent coroutines
    interleave between the conflict check and the insert.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.bookings: Dict[str, Booking] = {}
        self.availability: List[AvailabilityWindow] = []
        self.services: Dict[str, Service] = {}
        self.providers: Dict[str, List[ServiceProvider]] = {}
        self.refunds: List[RefundRecord] = []
        self.fail_reads = False
        self.fail_updates = False
        self.fail_insert_dates = set()
        self.insert_attempts = 0
        self.fetch_calls = 0
        self._next_id = 1

    async def _pause(self):
        if self.latency:
            await asyncio.sleep(self.latency)

    def _check_reads(self):
        if self.fail_reads:
            raise DataUnavailableError("store offline")

    # --- seeding helpers ---

    def add_booking(self, provider_id: str, booking_date: date, booking_time: str, duration: int = 60, **fields) -> Booking:
        booking = Booking(
            id=fields.pop("id", f"bk-{self._next_id}"),
            provider_id=provider_id,
            booking_date=booking_date,
            booking_time=booking_time,
            duration_minutes=duration,
            service_name=fields.pop("service_name", "Deep Cleaning"),
            **fields,
        )
        self._next_id += 1
        self.bookings[booking.id] = booking
        return booking

    def add_window(self, provider_id: str, weekday: int, start: str, end: str, is_available: bool = True):
        self.availability.append(AvailabilityWindow(
            provider_id=provider_id,
            day_of_week=weekday,
            start_time=start,
            end_time=end,
            is_available=is_available,
        ))

    def active_bookings(self, provider_id: str) -> List[Booking]:
        return [b for b in self.bookings.values() if b.provider_id == provider_id and b.status in ACTIVE_STATUSES]

    # --- store contract ---

    async def fetch_bookings(self, provider_id, booking_date, statuses) -> List[Booking]:
        self.fetch_calls += 1
        await self._pause()
        self._check_reads()
        return [
            b.model_copy()
            for b in self.bookings.values()
            if b.provider_id == provider_id and b.booking_date == booking_date and b.status in statuses
        ]

    async def fetch_availability(self, provider_id, weekday) -> List[AvailabilityWindow]:
        self._check_reads()
        return [w for w in self.availability if w.provider_id == provider_id and w.day_of_week == weekday]

    async def fetch_service_providers(self, service_id) -> List[ServiceProvider]:
        self._check_reads()
        return list(self.providers.get(service_id, []))

    async def get_service(self, service_id) -> Optional[Service]:
        self._check_reads()
        return self.services.get(service_id)

    async def get_booking(self, booking_id) -> Optional[Booking]:
        self._check_reads()
        booking = self.bookings.get(booking_id)
        return booking.model_copy() if booking else None

    async def insert_booking(self, data: dict) -> str:
        self.insert_attempts += 1
        await self._pause()
        if data["booking_date"] in self.fail_insert_dates:
            raise BookingInsertError("insert rejected by store")

        slot_time = to_time(data["booking_time"])
        for existing in self.active_bookings(data["provider_id"]):
            if existing.booking_date == data["booking_date"] and existing.booking_time == slot_time:
                raise BookingConflictError("Time slot was just booked by someone else")

        service = self.services.get(data.get("service_id"))
        booking = Booking(
            **data,
            id=f"bk-{self._next_id}",
            duration_minutes=service.duration_minutes if service else 60,
            service_name=service.name if service else None,
        )
        self._next_id += 1
        self.bookings[booking.id] = booking
        return booking.id

    async def update_booking(self, booking_id, fields) -> None:
        if self.fail_updates:
            raise StoreWriteError("update rejected by store")
        self.bookings[booking_id] = self.bookings[booking_id].model_copy(update=fields)

    async def insert_refund(self, record: RefundRecord) -> None:
        if self.fail_updates:
            raise StoreWriteError("refund insert rejected by store")
        self.refunds.append(record.model_copy(update={"id": f"rf-{len(self.refunds) + 1}"}))

    async def fetch_refunds(self, booking_id) -> List[RefundRecord]:
        self._check_reads()
        rows = [r for r in self.refunds if r.booking_id == booking_id]
        return sorted(rows, key=lambda r: r.processed_at, reverse=True)


@pytest.fixture
def store():
    s = InMemoryStore()
    s.services["svc-clean"] = Service(
        id="svc-clean", name="Deep Cleaning", price=Decimal("1000.00"), duration_minutes=60, provider_id="prov-1"
    )
    s.providers["svc-clean"] = [
        ServiceProvider(provider_id="prov-1", provider_name="Sparkle Co"),
        ServiceProvider(provider_id="prov-2", provider_name="Shine Bros"),
    ]
    return s


@pytest.fixture
def paid_booking(store):
    """Paid, confirmed booking on 2024-01-12 10:00 (50 hours after FIXED_NOW)."""
    return store.add_booking(
        "prov-1",
        date(2024, 1, 12),
        "10:00",
        id="bk-paid",
        status=BookingStatus.CONFIRMED,
        payment_status=PaymentStatus.PAID,
        total_amount=Decimal("1000.00"),
        payment_id="pi_123",
    )
