import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from booking_engine.models.db_models import RefundRecord

# --- Scheduling ---

class ConflictingBooking(BaseModel):
    id: Optional[str] = None
    booking_date: dt.date
    booking_time: str
    service_name: str = "Unknown Service"
    duration_minutes: int

class ConflictCheck(BaseModel):
    has_conflict: bool
    conflicts: List[ConflictingBooking] = Field(default_factory=list)
    # True when the store could not be read and the check failed closed
    data_unavailable: bool = False
    reason: Optional[str] = None

class Slot(BaseModel):
    time: str
    available: bool
    reason: Optional[str] = None

class AlternativeSlot(BaseModel):
    date: dt.date
    time: str
    provider_id: str
    provider_name: str

class TimeWindow(BaseModel):
    start_time: dt.time
    end_time: dt.time

# --- Recurrence ---

class RecurrenceClass(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

class RecurrencePlan(BaseModel):
    start_date: dt.date
    end_date: dt.date
    recurrence_class: RecurrenceClass
    # 0 = Sunday ... 6 = Saturday
    weekdays: Optional[List[int]] = None

class BookingTemplate(BaseModel):
    provider_id: str
    service_id: Optional[str] = None
    customer_id: Optional[str] = None
    booking_time: dt.time
    duration_minutes: int = 60
    total_amount: Decimal = Decimal("0")
    customer_address: Optional[str] = None
    customer_notes: Optional[str] = None

class DateOutcome(BaseModel):
    date: dt.date
    booking_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.booking_id is not None

class RecurringBookingResult(BaseModel):
    success: bool
    booking_ids: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    outcomes: List[DateOutcome] = Field(default_factory=list)

# --- Refunds ---

class RefundReason(str, Enum):
    CUSTOMER_REQUEST = "customer_request"
    PROVIDER_CANCELLATION = "provider_cancellation"
    SERVICE_ISSUE = "service_issue"
    DUPLICATE = "duplicate"

class RefundEligibility(BaseModel):
    eligible: bool
    reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_percentage: Optional[int] = None

class RefundExecution(BaseModel):
    refund_id: str
    status: str
    amount_minor_units: int

class RefundResult(BaseModel):
    success: bool
    refund_id: Optional[str] = None
    error: Optional[str] = None

class RefundHistory(BaseModel):
    success: bool
    refunds: List[RefundRecord] = Field(default_factory=list)
    error: Optional[str] = None
