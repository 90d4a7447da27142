import pytest
import stripe
from unittest.mock import MagicMock, patch

from booking_engine.core.config import settings
from booking_engine.core.errors import PaymentProviderError
from booking_engine.models.schemas import RefundReason
from booking_engine.services.payment_service import execute_refund, to_stripe_reason


def test_reasons_map_to_stripe_values():
    assert to_stripe_reason(RefundReason.CUSTOMER_REQUEST) == "requested_by_customer"
    assert to_stripe_reason(RefundReason.DUPLICATE) == "duplicate"
    assert to_stripe_reason(RefundReason.SERVICE_ISSUE) == "requested_by_customer"

@pytest.mark.asyncio
@patch.object(settings, "STRIPE_API_KEY", "sk_test_123")
@patch("booking_engine.services.payment_service.stripe.Refund.create")
async def test_execute_refund_calls_stripe(mock_create):
    mock_create.return_value = MagicMock(id="re_123", status="succeeded")

    execution = await execute_refund("pi_123", 75000, RefundReason.DUPLICATE, booking_id="bk-1")

    assert execution.refund_id == "re_123"
    assert execution.status == "succeeded"
    assert execution.amount_minor_units == 75000
    _, kwargs = mock_create.call_args
    assert kwargs["payment_intent"] == "pi_123"
    assert kwargs["amount"] == 75000
    assert kwargs["reason"] == "duplicate"
    assert kwargs["api_key"] == "sk_test_123"
    assert kwargs["metadata"]["booking_id"] == "bk-1"

@pytest.mark.asyncio
@patch.object(settings, "STRIPE_API_KEY", "sk_test_123")
@patch("booking_engine.services.payment_service.stripe.Refund.create")
async def test_stripe_errors_become_payment_provider_errors(mock_create):
    mock_create.side_effect = stripe.StripeError("Charge has already been refunded")

    with pytest.raises(PaymentProviderError) as exc:
        await execute_refund("pi_123", 100, RefundReason.CUSTOMER_REQUEST)

    assert "already been refunded" in exc.value.message

@pytest.mark.asyncio
@patch.object(settings, "STRIPE_API_KEY", "")
@patch("booking_engine.services.payment_service.stripe.Refund.create")
async def test_missing_api_key(mock_create):
    with pytest.raises(PaymentProviderError):
        await execute_refund("pi_123", 100, RefundReason.CUSTOMER_REQUEST)
    mock_create.assert_not_called()
