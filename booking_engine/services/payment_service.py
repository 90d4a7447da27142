import asyncio
from typing import Optional

import stripe

from booking_engine.core.config import settings
from booking_engine.core.errors import PaymentProviderError
from booking_engine.core.logger import logger
from booking_engine.models.schemas import RefundExecution, RefundReason

# Stripe only knows a handful of refund reasons
STRIPE_REFUND_REASONS = {
    RefundReason.CUSTOMER_REQUEST: "requested_by_customer",
    RefundReason.DUPLICATE: "duplicate",
}

def to_stripe_reason(reason: RefundReason) -> str:
    return STRIPE_REFUND_REASONS.get(reason, "requested_by_customer")

async def execute_refund(
    payment_reference: str,
    amount_minor_units: int,
    reason: RefundReason,
    booking_id: Optional[str] = None,
) -> RefundExecution:
    """
    Refunds part or all of a captured payment intent (Async).
    Raises PaymentProviderError when Stripe rejects the refund or is unreachable.
    """
    if not settings.STRIPE_API_KEY:
        logger.error("❌ STRIPE_API_KEY missing, refund cannot be executed.")
        raise PaymentProviderError("Payment processor is not configured")

    def _refund():
        return stripe.Refund.create(
            api_key=settings.STRIPE_API_KEY,
            payment_intent=payment_reference,
            amount=amount_minor_units,
            reason=to_stripe_reason(reason),
            metadata={"booking_id": booking_id or "", "engine_reason": reason.value},
        )

    try:
        logger.info(f"💸 Requesting refund of {amount_minor_units} on {payment_reference}")
        refund = await asyncio.to_thread(_refund)
    except stripe.StripeError as e:
        logger.error(f"❌ Stripe refund failed for {payment_reference}: {e.user_message or e}")
        raise PaymentProviderError(f"Refund processing failed: {e.user_message or e}") from e

    logger.info(f"✅ Refund {refund.id} status={refund.status}")
    return RefundExecution(refund_id=refund.id, status=refund.status, amount_minor_units=amount_minor_units)
