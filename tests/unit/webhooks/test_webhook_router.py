"""
Unit tests for WebhookEventRouter.
"""
import pytest

from billing.domain.snapshots import BillingEvent
from core.domain.exceptions import TransientProviderError
from core.domain.value_objects import EntitlementStatus, Plan, SubscriptionStatus


def checkout_event(session_ref="cs_paid", event_id="evt_checkout"):
    return BillingEvent(event_id, "checkout.session.completed", session_ref)


def subscription_event(subscription_ref="sub_1", event_id="evt_sub", event_type="customer.subscription.updated"):
    return BillingEvent(event_id, event_type, subscription_ref, subscription_ref=subscription_ref)


@pytest.mark.asyncio
class TestCheckoutEvents:
    """Tests for checkout-completed events."""

    async def test_replayed_event_issues_one_entitlement(
        self, webhook_router, billing_provider, entitlement_repository, notifier, processed_events
    ):
        """Test a redelivered checkout event yields one record and one email."""
        billing_provider.add_session(
            "cs_paid", customer_email="buyer@example.com", plan_hint=Plan.LIFETIME
        )

        first = await webhook_router.route(checkout_event())
        second = await webhook_router.route(checkout_event())

        assert first == "processed"
        assert second == "duplicate"
        assert len(entitlement_repository.records) == 1
        assert len(notifier.notices) == 1
        assert processed_events.processed == {"evt_checkout": "checkout.session.completed"}

    async def test_distinct_events_for_same_session(
        self, webhook_router, billing_provider, entitlement_repository, notifier
    ):
        """Test completed and async-succeeded events for one session share a record."""
        billing_provider.add_session(
            "cs_paid", customer_email="buyer@example.com", plan_hint=Plan.LIFETIME
        )

        await webhook_router.route(checkout_event(event_id="evt_a"))
        await webhook_router.route(
            BillingEvent("evt_b", "checkout.session.async_payment_succeeded", "cs_paid")
        )

        assert len(entitlement_repository.records) == 1
        assert len(notifier.notices) == 1

    async def test_unpaid_session_not_recorded(
        self, webhook_router, billing_provider, entitlement_repository, processed_events
    ):
        billing_provider.add_session(
            "cs_unpaid", paid=False, customer_email="buyer@example.com", plan_hint=Plan.MONTHLY
        )

        result = await webhook_router.route(checkout_event("cs_unpaid"))

        assert result == "ignored"
        assert not entitlement_repository.records
        assert not processed_events.processed

    async def test_session_without_metadata_is_consumed(
        self, webhook_router, billing_provider, entitlement_repository, processed_events
    ):
        billing_provider.add_session("cs_bare")

        result = await webhook_router.route(checkout_event("cs_bare"))

        assert result == "processed"
        assert not entitlement_repository.records
        assert "evt_checkout" in processed_events.processed

    async def test_owner_session_goes_to_lifecycle(
        self, webhook_router, billing_provider, make_owner, entitlement_repository, owner_repository
    ):
        owner = make_owner(customer_ref="cus_owner")
        billing_provider.add_session(
            "cs_owner",
            mode="payment",
            plan_hint=Plan.LIFETIME,
            customer_ref="cus_owner",
            metadata={"owner_id": str(owner.id), "planId": "lifetime"},
        )

        result = await webhook_router.route(checkout_event("cs_owner"))

        assert result == "processed"
        (record,) = entitlement_repository.records.values()
        assert record.plan == Plan.LIFETIME
        assert str(record.email) == "owner@example.com"
        assert owner_repository.owners[owner.id].plan == Plan.LIFETIME

    async def test_provider_outage_leaves_event_for_redelivery(
        self, webhook_router, billing_provider, processed_events
    ):
        billing_provider.add_session("cs_paid", customer_email="buyer@example.com", plan_hint=Plan.LIFETIME)
        billing_provider.failures["retrieve_session"] = TransientProviderError()

        with pytest.raises(TransientProviderError):
            await webhook_router.route(checkout_event())

        assert not processed_events.processed


@pytest.mark.asyncio
class TestSubscriptionEvents:
    """Tests for subscription and invoice events."""

    async def test_canceled_subscription_revokes(
        self, webhook_router, billing_provider, make_entitlement, entitlement_repository
    ):
        _, record = make_entitlement(
            subscription_ref="sub_1", subscription_status=SubscriptionStatus.ACTIVE
        )
        billing_provider.add_subscription("sub_1", status=SubscriptionStatus.CANCELED)

        result = await webhook_router.route(
            subscription_event(event_type="customer.subscription.deleted")
        )

        assert result == "processed"
        stored = entitlement_repository.records[record.id]
        assert stored.status == EntitlementStatus.REVOKED
        assert stored.external_subscription_status == SubscriptionStatus.CANCELED

    async def test_missing_subscription_treated_as_canceled(
        self, webhook_router, make_entitlement, entitlement_repository
    ):
        _, record = make_entitlement(
            subscription_ref="sub_gone", subscription_status=SubscriptionStatus.ACTIVE
        )

        result = await webhook_router.route(subscription_event("sub_gone"))

        assert result == "processed"
        assert entitlement_repository.records[record.id].status == EntitlementStatus.REVOKED

    async def test_invoice_paid_resurrects_revoked_record(
        self, webhook_router, billing_provider, make_entitlement, entitlement_repository
    ):
        _, record = make_entitlement(
            subscription_ref="sub_1",
            subscription_status=SubscriptionStatus.PAST_DUE,
            status=EntitlementStatus.REVOKED,
        )
        billing_provider.add_subscription("sub_1", status=SubscriptionStatus.ACTIVE)

        await webhook_router.route(
            subscription_event(event_type="invoice.payment_succeeded", event_id="evt_inv")
        )

        assert entitlement_repository.records[record.id].status == EntitlementStatus.ACTIVE

    async def test_late_delete_after_repurchase(
        self, webhook_router, billing_provider, make_owner, make_entitlement, entitlement_repository,
        owner_repository,
    ):
        """Test a delete for a replaced subscription arriving late keeps the new one's access."""
        owner = make_owner(
            plan=Plan.MONTHLY,
            external_subscription_ref="sub_new",
            subscription_status=SubscriptionStatus.ACTIVE,
        )
        _, record = make_entitlement(
            email="owner@example.com", subscription_ref="sub_new", customer_ref="cus_owner"
        )
        billing_provider.add_subscription("sub_new", customer_ref="cus_owner")
        billing_provider.add_subscription(
            "sub_old", status=SubscriptionStatus.CANCELED, customer_ref="cus_owner"
        )

        result = await webhook_router.route(
            subscription_event("sub_old", event_type="customer.subscription.deleted")
        )

        assert result == "processed"
        assert entitlement_repository.records[record.id].status == EntitlementStatus.ACTIVE
        assert owner_repository.owners[owner.id].external_subscription_ref == "sub_new"

    async def test_event_without_subscription_ignored(self, webhook_router, processed_events):
        event = BillingEvent("evt_inv", "invoice.payment_succeeded", "in_1")

        assert await webhook_router.route(event) == "ignored"
        assert not processed_events.processed


@pytest.mark.asyncio
class TestUnhandledEvents:
    async def test_unknown_type_ignored(self, webhook_router, billing_provider, processed_events):
        result = await webhook_router.route(BillingEvent("evt_x", "customer.created", "cus_1"))

        assert result == "ignored"
        assert not billing_provider.calls
        assert not processed_events.processed
