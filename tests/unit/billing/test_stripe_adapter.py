"""
Unit tests for the Stripe adapter: payload narrowing, error mapping and
webhook verification.
"""
import hashlib
import hmac
import json
import time

import pytest
import stripe

from billing.infrastructure.stripe_provider import (
    StripeBillingProvider,
    customer_snapshot,
    session_snapshot,
    subscription_snapshot,
)
from billing.infrastructure.stripe_webhooks import construct_billing_event
from core.domain.exceptions import (
    BillingProviderError,
    InvalidWebhookSignatureError,
    NoBillingConfigError,
    ProviderResourceMissingError,
    TransientProviderError,
)
from core.domain.value_objects import Plan, SubscriptionStatus

WEBHOOK_SECRET = "whsec_unit"


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    digest = hmac.new(
        secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


def event_payload(event_type: str, obj: dict, event_id: str = "evt_1") -> str:
    return json.dumps({"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}})


class TestSubscriptionSnapshot:
    """Tests for subscription payload narrowing."""

    def test_fields(self):
        snapshot = subscription_snapshot(
            {
                "id": "sub_1",
                "status": "trialing",
                "customer": {"id": "cus_1", "object": "customer"},
                "current_period_start": 1717200000,
                "current_period_end": 1719792000,
                "cancel_at_period_end": True,
                "created": 1717200000,
                "metadata": {"planId": "monthly", "serviceEnabled": "false"},
            }
        )

        assert snapshot.subscription_ref == "sub_1"
        assert snapshot.status == SubscriptionStatus.TRIALING
        assert snapshot.customer_ref == "cus_1"
        assert snapshot.current_period_end.timestamp() == 1719792000
        assert snapshot.current_period_end.tzinfo is not None
        assert snapshot.cancel_at_period_end is True
        assert snapshot.plan_hint == Plan.MONTHLY
        assert snapshot.service_enabled is False
        assert snapshot.is_valid

    def test_period_from_first_item_and_price_plan(self):
        """Test newer payloads carry the period and plan on the subscription item."""
        snapshot = subscription_snapshot(
            {
                "id": "sub_1",
                "status": "active",
                "customer": "cus_1",
                "items": {
                    "data": [
                        {
                            "current_period_start": 1717200000,
                            "current_period_end": 1719792000,
                            "price": {"metadata": {"planId": "lifetime"}},
                        }
                    ]
                },
            }
        )

        assert snapshot.current_period_end.timestamp() == 1719792000
        assert snapshot.plan_hint == Plan.LIFETIME
        assert snapshot.service_enabled is True

    def test_subscription_metadata_wins_over_price(self):
        snapshot = subscription_snapshot(
            {
                "id": "sub_1",
                "status": "active",
                "metadata": {"planId": "lifetime"},
                "items": {"data": [{"price": {"metadata": {"planId": "monthly"}}}]},
            }
        )
        assert snapshot.plan_hint == Plan.LIFETIME

    def test_unknown_status(self):
        snapshot = subscription_snapshot({"id": "sub_1", "status": "incomplete_expired"})
        assert snapshot.status == SubscriptionStatus.UNKNOWN
        assert not snapshot.is_valid


class TestSessionSnapshot:
    """Tests for checkout session narrowing."""

    @pytest.mark.parametrize(
        "payment_status, paid",
        [("paid", True), ("no_payment_required", True), ("unpaid", False)],
    )
    def test_paid(self, payment_status, paid):
        snapshot = session_snapshot({"id": "cs_1", "payment_status": payment_status})
        assert snapshot.paid is paid

    def test_email_and_plan(self):
        snapshot = session_snapshot(
            {
                "id": "cs_1",
                "payment_status": "paid",
                "mode": "subscription",
                "customer_details": {"email": "buyer@example.com"},
                "subscription": "sub_1",
                "metadata": {"planId": "MONTHLY", "owner_id": "abc"},
            }
        )
        assert snapshot.customer_email == "buyer@example.com"
        assert snapshot.plan_hint == Plan.MONTHLY
        assert snapshot.subscription_ref == "sub_1"
        assert snapshot.mode == "subscription"
        assert snapshot.metadata["owner_id"] == "abc"

    def test_email_falls_back_to_metadata(self):
        snapshot = session_snapshot(
            {"id": "cs_1", "metadata": {"email": "meta@example.com", "planId": "weekly"}}
        )
        assert snapshot.customer_email == "meta@example.com"
        assert snapshot.plan_hint is None


class TestCustomerSnapshot:
    def test_deleted_customer_is_missing(self):
        with pytest.raises(ProviderResourceMissingError):
            customer_snapshot({"id": "cus_1", "deleted": True})

    def test_service_flag(self):
        snapshot = customer_snapshot({"id": "cus_1", "metadata": {"serviceEnabled": "False"}})
        assert snapshot.service_enabled is False


@pytest.mark.asyncio
class TestErrorMapping:
    """Tests for mapping Stripe errors to billing exceptions."""

    @pytest.fixture
    def provider(self):
        return StripeBillingProvider(secret_key="sk_test_unit")

    async def test_resource_missing(self, provider):
        def missing(*args, **kwargs):
            raise stripe.InvalidRequestError("No such subscription", "id", code="resource_missing")

        with pytest.raises(ProviderResourceMissingError):
            await provider._call("subscription retrieve", missing)

    async def test_rejected_request(self, provider):
        def rejected(*args, **kwargs):
            raise stripe.InvalidRequestError("Bad amount", "amount", code="parameter_invalid_integer")

        with pytest.raises(BillingProviderError) as exc_info:
            await provider._call("checkout session create", rejected)
        assert not isinstance(exc_info.value, TransientProviderError)

    async def test_connection_error_is_transient(self, provider):
        def offline(*args, **kwargs):
            raise stripe.APIConnectionError("Network down")

        with pytest.raises(TransientProviderError):
            await provider._call("subscription retrieve", offline)

    async def test_result_converted_to_dict(self, provider):
        result = await provider._call("noop", lambda: {"id": "sub_1", "items": {"data": []}})
        assert result == {"id": "sub_1", "items": {"data": []}}


class TestConstructBillingEvent:
    """Tests for webhook verification."""

    def test_subscription_event(self):
        payload = event_payload(
            "customer.subscription.updated", {"id": "sub_1", "object": "subscription"}
        )

        event = construct_billing_event(payload.encode(), sign(payload), WEBHOOK_SECRET)

        assert event.event_id == "evt_1"
        assert event.event_type == "customer.subscription.updated"
        assert event.subscription_ref == "sub_1"

    def test_checkout_event(self):
        payload = event_payload(
            "checkout.session.completed",
            {"id": "cs_1", "object": "checkout.session", "subscription": "sub_9"},
        )

        event = construct_billing_event(payload.encode(), sign(payload), WEBHOOK_SECRET)

        assert event.object_id == "cs_1"
        assert event.subscription_ref == "sub_9"

    def test_invoice_event_new_api_shape(self):
        """Test invoices locate their subscription under parent details."""
        payload = event_payload(
            "invoice.payment_succeeded",
            {
                "id": "in_1",
                "object": "invoice",
                "parent": {"subscription_details": {"subscription": "sub_2"}},
            },
        )

        event = construct_billing_event(payload.encode(), sign(payload), WEBHOOK_SECRET)

        assert event.subscription_ref == "sub_2"

    def test_bad_signature(self):
        payload = event_payload("customer.subscription.updated", {"id": "sub_1"})
        with pytest.raises(InvalidWebhookSignatureError):
            construct_billing_event(payload.encode(), sign(payload, secret="whsec_other"), WEBHOOK_SECRET)

    def test_malformed_payload(self):
        with pytest.raises(InvalidWebhookSignatureError):
            construct_billing_event(b"not json", sign("not json"), WEBHOOK_SECRET)

    def test_missing_secret(self):
        with pytest.raises(NoBillingConfigError):
            construct_billing_event(b"{}", "t=1,v1=x", "")
