"""
Cancellation refunds: the tiered refund policy and the refund workflow
around the payment processor.

Refund policy (hours until the service starts):
    service time passed  ->   0%
    less than 6 hours    ->  25%
    6 to 12 hours        ->  50%
    12 to 24 hours       ->  75%
    24 hours or more     -> 100%
"""
import asyncio
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional, Tuple

from booking_engine.core.errors import DataUnavailableError, PaymentProviderError, StoreWriteError
from booking_engine.core.logger import logger
from booking_engine.models.db_models import Booking, BookingStatus, PaymentStatus, RefundRecord
from booking_engine.models.schemas import RefundEligibility, RefundHistory, RefundReason, RefundResult
from booking_engine.services.db_service import db_service
from booking_engine.services.notification_service import send_refund_notification
from booking_engine.services.payment_service import execute_refund
from booking_engine.services.time_utils import local_now

# (minimum hours until service, percentage), most generous first
REFUND_TIERS = ((24, 100), (12, 75), (6, 50), (0, 25))

CENT = Decimal("0.01")
FOLLOW_UP_ATTEMPTS = 2


def tier_percentage(hours_until_service: float) -> int:
    for min_hours, percentage in REFUND_TIERS:
        if hours_until_service >= min_hours:
            return percentage
    return 0


def calculate_refund_amount(
    original_amount: Decimal, hours_until_service: float, admin_override: bool = False
) -> Tuple[Decimal, int]:
    """Refund amount (half-up to the cent) and the percentage applied."""
    percentage = 100 if admin_override else tier_percentage(hours_until_service)
    amount = (Decimal(original_amount) * percentage / 100).quantize(CENT, rounding=ROUND_HALF_UP)
    return amount, percentage


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def hours_until(booking: Booking, now: datetime) -> float:
    return (booking.start_datetime - now).total_seconds() / 3600


def check_eligibility(booking: Booking, now: Optional[datetime] = None) -> RefundEligibility:
    if booking.payment_status != PaymentStatus.PAID:
        return RefundEligibility(eligible=False, reason="Booking not paid")
    if booking.status == BookingStatus.COMPLETED:
        return RefundEligibility(eligible=False, reason="Service already completed")
    if booking.status == BookingStatus.CANCELLED:
        return RefundEligibility(eligible=False, reason="Booking already cancelled")

    hours = hours_until(booking, now or local_now())
    if hours < 0:
        return RefundEligibility(eligible=False, reason="Service time has passed")

    amount, percentage = calculate_refund_amount(booking.total_amount, hours)
    return RefundEligibility(eligible=True, refund_amount=amount, refund_percentage=percentage)


class RefundService:
    def __init__(
        self,
        store=None,
        executor=execute_refund,
        notifier=send_refund_notification,
        clock: Callable[[], datetime] = local_now,
    ):
        self.store = store or db_service
        self.executor = executor
        self.notifier = notifier
        self.clock = clock

    async def check_booking_eligibility(self, booking_id: str) -> RefundEligibility:
        try:
            booking = await self.store.get_booking(booking_id)
        except DataUnavailableError as e:
            logger.error(f"❌ Error checking refund eligibility for {booking_id}: {e}")
            return RefundEligibility(eligible=False, reason="Error checking eligibility")
        if not booking:
            return RefundEligibility(eligible=False, reason="Booking not found")
        return check_eligibility(booking, self.clock())

    async def process_refund(
        self,
        booking_id: str,
        reason: RefundReason,
        amount: Optional[Decimal] = None,
        admin_override: bool = False,
    ) -> RefundResult:
        """
        Refund a booking through the payment processor (Async).

        Booking state is only touched after the processor confirms the refund;
        failed follow-up writes are logged and do not fail the refund.
        """
        try:
            booking = await self.store.get_booking(booking_id)
        except DataUnavailableError as e:
            return RefundResult(success=False, error=e.message)
        if not booking:
            return RefundResult(success=False, error="Booking not found")
        if not booking.payment_id:
            return RefundResult(success=False, error="No payment reference found")

        eligibility = None
        if not admin_override:
            eligibility = check_eligibility(booking, self.clock())
            if not eligibility.eligible:
                logger.info(f"🚫 Refund refused for {booking_id}: {eligibility.reason}")
                return RefundResult(success=False, error=eligibility.reason)

        if amount is not None:
            refund_amount = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
        elif eligibility is not None:
            refund_amount = eligibility.refund_amount
        else:
            refund_amount = Decimal(booking.total_amount).quantize(CENT, rounding=ROUND_HALF_UP)

        if refund_amount <= 0 or refund_amount > booking.total_amount:
            return RefundResult(success=False, error=f"Invalid refund amount {refund_amount}")
        # Partial refunds stay within the tier unless an admin overrides
        if eligibility is not None and refund_amount > eligibility.refund_amount:
            return RefundResult(
                success=False,
                error=f"Refund amount {refund_amount} exceeds the allowed {eligibility.refund_amount}",
            )

        try:
            execution = await self.executor(booking.payment_id, to_minor_units(refund_amount), reason, booking_id)
        except PaymentProviderError as e:
            return RefundResult(success=False, error=e.message)

        if execution.status != "succeeded":
            logger.warning(f"⚠️ Refund {execution.refund_id} for {booking_id} returned status {execution.status}")
            return RefundResult(success=False, error="Refund processing failed")

        await self._with_retry(
            f"mark booking {booking_id} refunded",
            lambda: self.store.update_booking(
                booking_id, {"status": BookingStatus.CANCELLED, "payment_status": PaymentStatus.REFUNDED}
            ),
        )
        record = RefundRecord(
            booking_id=booking_id,
            refund_id=execution.refund_id,
            amount=refund_amount,
            reason=reason.value,
            status=execution.status,
            processed_at=self.clock(),
        )
        await self._with_retry(f"store refund record {execution.refund_id}", lambda: self.store.insert_refund(record))

        try:
            await asyncio.to_thread(self.notifier, booking_id, refund_amount, execution.refund_id)
        except Exception:
            logger.exception(f"❌ Refund notification failed for booking {booking_id}")
        logger.info(f"✅ Refund {execution.refund_id} of {refund_amount} processed for booking {booking_id}")
        return RefundResult(success=True, refund_id=execution.refund_id)

    async def get_booking_refunds(self, booking_id: str) -> RefundHistory:
        try:
            refunds = await self.store.fetch_refunds(booking_id)
        except DataUnavailableError as e:
            logger.error(f"❌ Error fetching refund history for {booking_id}: {e}")
            return RefundHistory(success=False, error=e.message)
        return RefundHistory(success=True, refunds=refunds)

    async def _with_retry(self, description: str, write) -> bool:
        for attempt in range(1, FOLLOW_UP_ATTEMPTS + 1):
            try:
                await write()
                return True
            except (StoreWriteError, DataUnavailableError) as e:
                logger.error(f"❌ Failed to {description} (attempt {attempt}/{FOLLOW_UP_ATTEMPTS}): {e}")
        return False
