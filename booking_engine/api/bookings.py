import datetime as dt
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from booking_engine.core.config import settings
from booking_engine.core.security import is_admin_token
from booking_engine.models.db_models import Booking, BookingStatus
from booking_engine.models.schemas import (
    BookingTemplate,
    ConflictCheck,
    RecurrencePlan,
    RecurringBookingResult,
    RefundEligibility,
    RefundHistory,
    RefundReason,
    RefundResult,
)
from booking_engine.services.alternatives_service import AlternativeSlotFinder
from booking_engine.services.booking_service import BookingService
from booking_engine.services.conflict_service import ConflictDetector
from booking_engine.services.recurrence import expand_plan
from booking_engine.services.refund_service import RefundService
from booking_engine.services.slot_service import SlotGenerator

router = APIRouter()

# Services are stateless wrappers around the store; overridden in tests
def get_conflict_detector() -> ConflictDetector:
    return ConflictDetector()

def get_slot_generator() -> SlotGenerator:
    return SlotGenerator()

def get_alternative_finder() -> AlternativeSlotFinder:
    return AlternativeSlotFinder()

def get_booking_service() -> BookingService:
    return BookingService()

def get_refund_service() -> RefundService:
    return RefundService()

class CheckConflictRequest(BaseModel):
    provider_id: str
    date: dt.date
    time: dt.time
    duration_minutes: int = Field(default=60, gt=0)

class AlternativesRequest(BaseModel):
    service_id: str
    date: dt.date
    time: dt.time
    duration_minutes: int = Field(default=60, gt=0)
    provider_id: Optional[str] = None
    max_alternatives: int = Field(default=settings.MAX_ALTERNATIVES, ge=0)
    time_budget_seconds: Optional[float] = Field(default=settings.ALTERNATIVE_TIME_BUDGET_SECONDS, gt=0)

class CreateBookingRequest(BaseModel):
    provider_id: str
    service_id: str
    customer_id: str
    date: dt.date
    time: dt.time
    customer_address: Optional[str] = None
    customer_notes: Optional[str] = None

class RecurringBookingRequest(BaseModel):
    template: BookingTemplate
    plan: RecurrencePlan

class StatusUpdateRequest(BaseModel):
    status: BookingStatus
    provider_notes: Optional[str] = None

class RefundRequest(BaseModel):
    reason: RefundReason
    amount: Optional[Decimal] = Field(default=None, gt=0)
    admin_override: bool = False

@router.post("/bookings/check_conflict", response_model=ConflictCheck)
async def check_conflict(req: CheckConflictRequest, detector: ConflictDetector = Depends(get_conflict_detector)):
    return await detector.has_conflict(req.provider_id, req.date, req.time, req.duration_minutes)

@router.get("/providers/{provider_id}/slots")
async def provider_slots(
    provider_id: str,
    date: dt.date,
    duration: int = Query(default=60, gt=0),
    generator: SlotGenerator = Depends(get_slot_generator),
):
    slots = await generator.available_slots(provider_id, date, duration)
    return {"provider_id": provider_id, "date": date, "slots": slots}

@router.post("/bookings/alternatives")
async def alternatives(req: AlternativesRequest, finder: AlternativeSlotFinder = Depends(get_alternative_finder)):
    found = await finder.find_alternatives(
        req.service_id,
        req.date,
        req.time,
        req.duration_minutes,
        max_alternatives=req.max_alternatives,
        original_provider_id=req.provider_id,
        time_budget_seconds=req.time_budget_seconds,
    )
    return {"alternatives": found}

@router.post("/bookings/recurring/preview")
async def recurring_preview(plan: RecurrencePlan):
    return {"dates": expand_plan(plan)}

@router.post("/bookings", response_model=Booking, status_code=201)
async def create_booking(req: CreateBookingRequest, service: BookingService = Depends(get_booking_service)):
    return await service.create_booking(
        req.provider_id,
        req.service_id,
        req.customer_id,
        req.date,
        req.time,
        customer_address=req.customer_address,
        customer_notes=req.customer_notes,
    )

@router.post("/bookings/recurring", response_model=RecurringBookingResult)
async def create_recurring(req: RecurringBookingRequest, service: BookingService = Depends(get_booking_service)):
    return await service.create_recurring_from_plan(req.template, req.plan)

@router.post("/bookings/{booking_id}/status", response_model=Booking)
async def update_status(
    booking_id: str, req: StatusUpdateRequest, service: BookingService = Depends(get_booking_service)
):
    return await service.update_status(booking_id, req.status, req.provider_notes)

@router.get("/bookings/{booking_id}/refund_eligibility", response_model=RefundEligibility)
async def refund_eligibility(booking_id: str, refunds: RefundService = Depends(get_refund_service)):
    return await refunds.check_booking_eligibility(booking_id)

@router.post("/bookings/{booking_id}/refund", response_model=RefundResult)
async def refund_booking(
    booking_id: str,
    req: RefundRequest,
    is_admin: bool = Depends(is_admin_token),
    refunds: RefundService = Depends(get_refund_service),
):
    if req.admin_override and not is_admin:
        raise HTTPException(status_code=403, detail="Admin override requires a valid X-Secret-Token header")
    return await refunds.process_refund(booking_id, req.reason, req.amount, req.admin_override)

@router.get("/bookings/{booking_id}/refunds", response_model=RefundHistory)
async def refund_history(booking_id: str, refunds: RefundService = Depends(get_refund_service)):
    return await refunds.get_booking_refunds(booking_id)
