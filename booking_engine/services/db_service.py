from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from postgrest.exceptions import APIError
from supabase import create_async_client, AsyncClient

from booking_engine.core.config import settings
from booking_engine.core.errors import (
    BookingConflictError,
    BookingInsertError,
    DataUnavailableError,
    StoreWriteError,
)
from booking_engine.core.logger import logger
from booking_engine.models.db_models import (
    AvailabilityWindow,
    Booking,
    BookingStatus,
    RefundRecord,
    Service,
    ServiceProvider,
)
from booking_engine.services.time_utils import from_minutes, to_minutes

# Postgres unique_violation, raised by the partial unique index on active slots
UNIQUE_VIOLATION = "23505"

BOOKING_COLUMNS = (
    "id, provider_id, service_id, customer_id, booking_date, booking_time, status, "
    "payment_status, total_amount, payment_id, provider_notes, customer_address, "
    "customer_notes, services(name, duration_minutes)"
)


def _row_to_booking(row: Dict[str, Any]) -> Booking:
    service = row.get("services") or {}
    return Booking(
        id=str(row["id"]) if row.get("id") is not None else None,
        provider_id=str(row["provider_id"]),
        service_id=row.get("service_id"),
        customer_id=row.get("customer_id"),
        booking_date=row["booking_date"],
        booking_time=from_minutes(to_minutes(row["booking_time"])),
        duration_minutes=service.get("duration_minutes") or settings.DEFAULT_DURATION_MINUTES,
        service_name=service.get("name"),
        status=row.get("status") or BookingStatus.PENDING,
        payment_status=row.get("payment_status") or "pending",
        total_amount=Decimal(str(row.get("total_amount") or 0)),
        payment_id=row.get("payment_id"),
        provider_notes=row.get("provider_notes"),
        customer_address=row.get("customer_address"),
        customer_notes=row.get("customer_notes"),
    )


def _serialize(value: Any) -> Any:
    if isinstance(value, (date, datetime, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if hasattr(value, "value"):
        return value.value
    return value


class DBService:
    """
    Supabase-backed store for bookings, availability, services and refunds.

    Reads raise DataUnavailableError instead of returning empty results so
    that callers can fail closed. Bookings are never cached between calls.
    """
    _instance = None
    _client: AsyncClient = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(DBService, cls).__new__(cls)
        return cls._instance

    async def get_client(self) -> Optional[AsyncClient]:
        if not self._client:
            try:
                if settings.SUPABASE_URL and settings.SUPABASE_KEY:
                    self._client = await create_async_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
                    logger.info("✅ Supabase Async client initialized")
                else:
                    logger.warning("⚠️ Supabase credentials missing")
            except Exception as e:
                logger.error(f"❌ Failed to initialize Supabase Async: {e}")
        return self._client

    async def _require_client(self) -> AsyncClient:
        client = await self.get_client()
        if not client:
            raise DataUnavailableError("Booking store is not configured or unreachable")
        return client

    # --- Reads ---

    async def fetch_bookings(
        self, provider_id: str, booking_date: date, statuses: Sequence[BookingStatus]
    ) -> List[Booking]:
        """
        Bookings of a provider on a date, filtered by status.
        """
        client = await self._require_client()
        try:
            response = await client.table('bookings')\
                .select(BOOKING_COLUMNS)\
                .eq('provider_id', provider_id)\
                .eq('booking_date', booking_date.isoformat())\
                .in_('status', [_serialize(s) for s in statuses])\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (fetch_bookings {provider_id} {booking_date}): {e}")
            raise DataUnavailableError(f"Could not load bookings: {e}") from e
        return [_row_to_booking(row) for row in response.data or []]

    async def fetch_availability(self, provider_id: str, weekday: int) -> List[AvailabilityWindow]:
        """
        Active availability windows of a provider for a weekday (0 = Sunday).
        """
        client = await self._require_client()
        try:
            response = await client.table('provider_availability')\
                .select("provider_id, day_of_week, start_time, end_time, is_available")\
                .eq('provider_id', provider_id)\
                .eq('day_of_week', weekday)\
                .eq('is_available', True)\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (fetch_availability {provider_id} day {weekday}): {e}")
            raise DataUnavailableError(f"Could not load availability: {e}") from e
        return [AvailabilityWindow(**row) for row in response.data or []]

    async def fetch_service_providers(self, service_id: str) -> List[ServiceProvider]:
        client = await self._require_client()
        try:
            response = await client.table('services')\
                .select("provider_id, profiles!provider_id(id, full_name, business_name)")\
                .eq('id', service_id)\
                .eq('is_active', True)\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (fetch_service_providers {service_id}): {e}")
            raise DataUnavailableError(f"Could not load providers: {e}") from e

        providers = []
        for row in response.data or []:
            profile = row.get("profiles") or {}
            name = profile.get("business_name") or profile.get("full_name") or "Unknown Provider"
            providers.append(ServiceProvider(provider_id=str(row["provider_id"]), provider_name=name))
        return providers

    async def get_service(self, service_id: str) -> Optional[Service]:
        client = await self._require_client()
        try:
            response = await client.table('services')\
                .select("id, name, price, duration_minutes, provider_id, is_active")\
                .eq('id', service_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (get_service {service_id}): {e}")
            raise DataUnavailableError(f"Could not load service: {e}") from e
        if not response.data:
            return None
        row = response.data[0]
        return Service(
            id=str(row["id"]),
            name=row.get("name") or "Unknown Service",
            price=Decimal(str(row.get("price") or 0)),
            duration_minutes=row.get("duration_minutes") or settings.DEFAULT_DURATION_MINUTES,
            provider_id=row.get("provider_id"),
            is_active=row.get("is_active", True),
        )

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        client = await self._require_client()
        try:
            response = await client.table('bookings')\
                .select(BOOKING_COLUMNS)\
                .eq('id', booking_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (get_booking {booking_id}): {e}")
            raise DataUnavailableError(f"Could not load booking: {e}") from e
        if not response.data:
            return None
        return _row_to_booking(response.data[0])

    async def fetch_refunds(self, booking_id: str) -> List[RefundRecord]:
        """Refunds of a booking, newest first."""
        client = await self._require_client()
        try:
            response = await client.table('refunds')\
                .select("id, booking_id, refund_id, amount, reason, status, processed_at")\
                .eq('booking_id', booking_id)\
                .order('processed_at', desc=True)\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (fetch_refunds {booking_id}): {e}")
            raise DataUnavailableError(f"Could not load refunds: {e}") from e
        return [
            RefundRecord(**{**row, "id": str(row["id"]), "amount": Decimal(str(row["amount"]))})
            for row in response.data or []
        ]

    # --- Writes ---

    async def insert_booking(self, booking_data: Dict[str, Any]) -> str:
        """
        Inserts a booking and returns its id.
        A unique violation on the active-slot index is reported as a conflict.
        """
        client = await self._require_client()
        payload = {key: _serialize(value) for key, value in booking_data.items()}
        try:
            response = await client.table('bookings').insert(payload).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.warning(f"⚠️ Slot already taken at insert time: {payload.get('provider_id')} "
                               f"{payload.get('booking_date')} {payload.get('booking_time')}")
                raise BookingConflictError(
                    f"Time slot {payload.get('booking_date')} {payload.get('booking_time')} was just booked"
                ) from e
            logger.error(f"❌ DB Error (insert_booking): {e.message}")
            raise BookingInsertError(e.message or "Insert rejected") from e
        except Exception as e:
            logger.error(f"❌ DB Error (insert_booking): {e}")
            raise BookingInsertError(str(e)) from e

        if not response.data:
            raise BookingInsertError("Insert returned no row")
        booking_id = str(response.data[0]["id"])
        logger.info(f"✅ Booking {booking_id} stored for provider {payload.get('provider_id')}")
        return booking_id

    async def update_booking(self, booking_id: str, fields: Dict[str, Any]) -> None:
        client = await self._require_client()
        payload = {key: _serialize(value) for key, value in fields.items()}
        payload["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            await client.table('bookings').update(payload).eq('id', booking_id).execute()
        except Exception as e:
            logger.error(f"❌ DB Error (update_booking {booking_id}): {e}")
            raise StoreWriteError(f"Could not update booking {booking_id}: {e}") from e

    async def insert_refund(self, record: RefundRecord) -> Optional[str]:
        client = await self._require_client()
        payload = {key: _serialize(value) for key, value in record.model_dump(exclude={"id"}).items()}
        try:
            response = await client.table('refunds').insert(payload).execute()
        except Exception as e:
            logger.error(f"❌ DB Error (insert_refund {record.booking_id}): {e}")
            raise StoreWriteError(f"Could not store refund record: {e}") from e
        if response.data:
            return str(response.data[0]["id"])
        return None

db_service = DBService()
