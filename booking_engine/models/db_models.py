from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


# Statuses that occupy a provider's calendar
ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS)


class Booking(BaseModel):
    id: Optional[str] = None
    provider_id: str
    service_id: Optional[str] = None
    customer_id: Optional[str] = None
    booking_date: date
    booking_time: time
    duration_minutes: int = 60
    service_name: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    total_amount: Decimal = Decimal("0")
    payment_id: Optional[str] = None
    provider_notes: Optional[str] = None
    customer_address: Optional[str] = None
    customer_notes: Optional[str] = None

    @property
    def start_datetime(self) -> datetime:
        return datetime.combine(self.booking_date, self.booking_time)


class AvailabilityWindow(BaseModel):
    provider_id: Optional[str] = None
    day_of_week: int = Field(ge=0, le=6)  # 0 = Sunday
    start_time: time
    end_time: time
    is_available: bool = True


class ServiceProvider(BaseModel):
    provider_id: str
    provider_name: str = "Unknown Provider"


class Service(BaseModel):
    id: str
    name: str = "Unknown Service"
    price: Decimal = Decimal("0")
    duration_minutes: int = 60
    provider_id: Optional[str] = None
    is_active: bool = True


class RefundRecord(BaseModel):
    id: Optional[str] = None
    booking_id: str
    refund_id: str
    amount: Decimal
    reason: str
    status: str
    processed_at: datetime

    model_config = {"frozen": True}
