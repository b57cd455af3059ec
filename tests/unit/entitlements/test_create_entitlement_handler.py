"""
Unit tests for CreateEntitlementHandler and ConfirmPaymentSessionHandler.
"""
from datetime import timedelta

import pytest

from billing.application.services.billing_oracle import BillingOracle
from core.domain.exceptions import (
    DuplicateActivationCodeError,
    InvalidPaymentSessionError,
    NoBillingConfigError,
    PaymentIncompleteError,
    PlanNotFoundError,
)
from core.domain.value_objects import Plan, SubscriptionStatus, utcnow
from entitlements.application.commands.confirm_payment_session import ConfirmPaymentSessionCommand
from entitlements.application.commands.create_entitlement import CreateEntitlementCommand
from entitlements.application.handlers.confirm_payment_session_handler import (
    ConfirmPaymentSessionHandler,
)
from entitlements.domain.events import EntitlementCreated


@pytest.mark.asyncio
class TestCreateEntitlementHandler:
    """Tests for CreateEntitlementHandler."""

    async def test_create_monthly(self, create_handler, notifier, events):
        """Test a monthly entitlement gets the plan's default expiry and a notice."""
        entitlement = await create_handler.handle(
            CreateEntitlementCommand(payment_event_ref="cs_1", email="a@x.com", plan_id="monthly")
        )

        assert entitlement.plan == Plan.MONTHLY
        assert entitlement.expires_at > utcnow() + timedelta(days=29)
        assert len(notifier.notices) == 1
        notice = notifier.notices[0]
        assert notice.recipient == "a@x.com"
        assert notice.code_reference == entitlement.code_hash
        assert notice.plan_label == "One-Month Access"
        assert len(events.of_type(EntitlementCreated)) == 1

    async def test_create_lifetime_has_no_expiry(self, create_handler):
        entitlement = await create_handler.handle(
            CreateEntitlementCommand(payment_event_ref="cs_1", email="a@x.com", plan_id="LIFETIME")
        )
        assert entitlement.plan == Plan.LIFETIME
        assert entitlement.expires_at is None

    async def test_provider_expiry_overrides_default(self, create_handler):
        period_end = utcnow() + timedelta(days=12)
        entitlement = await create_handler.handle(
            CreateEntitlementCommand(
                payment_event_ref="sub:sub_1",
                email="a@x.com",
                plan_id="monthly",
                expires_at=period_end,
            )
        )
        assert entitlement.expires_at == period_end

    async def test_idempotent_on_payment_event(
        self, create_handler, entitlement_repository, notifier, events
    ):
        """Test a repeated payment event returns the first record unchanged."""
        command = CreateEntitlementCommand(payment_event_ref="evt1", email="a@x.com", plan_id="monthly")

        first = await create_handler.handle(command)
        second = await create_handler.handle(command)

        assert second.id == first.id
        assert second.code_hash == first.code_hash
        assert len(entitlement_repository.records) == 1
        assert len(notifier.notices) == 1
        assert len(events.of_type(EntitlementCreated)) == 1

    async def test_unknown_plan(self, create_handler):
        with pytest.raises(PlanNotFoundError):
            await create_handler.handle(
                CreateEntitlementCommand(payment_event_ref="evt1", email="a@x.com", plan_id="weekly")
            )

    async def test_code_collision_retried(self, create_handler, entitlement_repository, monkeypatch):
        """Test a colliding code is regenerated."""
        codes = iter(["AAAAAAAAAAAAAAAA", "AAAAAAAAAAAAAAAA", "BBBBBBBBBBBBBBBB"])
        monkeypatch.setattr(
            "entitlements.application.handlers.create_entitlement_handler.generate_activation_code",
            lambda: next(codes),
        )

        await create_handler.handle(
            CreateEntitlementCommand(payment_event_ref="evt1", email="a@x.com", plan_id="monthly")
        )
        second = await create_handler.handle(
            CreateEntitlementCommand(payment_event_ref="evt2", email="a@x.com", plan_id="monthly")
        )

        assert second.payment_event_ref == "evt2"
        assert len(entitlement_repository.records) == 2

    async def test_code_collision_gives_up(self, create_handler, monkeypatch):
        monkeypatch.setattr(
            "entitlements.application.handlers.create_entitlement_handler.generate_activation_code",
            lambda: "AAAAAAAAAAAAAAAA",
        )
        await create_handler.handle(
            CreateEntitlementCommand(payment_event_ref="evt1", email="a@x.com", plan_id="monthly")
        )
        with pytest.raises(DuplicateActivationCodeError):
            await create_handler.handle(
                CreateEntitlementCommand(payment_event_ref="evt2", email="a@x.com", plan_id="monthly")
            )

    async def test_notifier_failure_does_not_fail_creation(
        self, create_handler, entitlement_repository, notifier
    ):
        """Test the notice is fire-and-forget."""
        notifier.fail_with = RuntimeError("smtp down")

        entitlement = await create_handler.handle(
            CreateEntitlementCommand(payment_event_ref="evt1", email="a@x.com", plan_id="monthly")
        )

        assert entitlement.id in entitlement_repository.records


@pytest.mark.asyncio
class TestConfirmPaymentSessionHandler:
    """Tests for ConfirmPaymentSessionHandler."""

    async def test_confirm_paid_session(self, confirm_handler, billing_provider):
        """Test a paid one-time session issues its entitlement."""
        billing_provider.add_session(
            "cs_paid",
            customer_email="buyer@example.com",
            plan_hint=Plan.LIFETIME,
            customer_ref="cus_1",
        )

        entitlement = await confirm_handler.handle(ConfirmPaymentSessionCommand("cs_paid"))

        assert entitlement.payment_event_ref == "cs_paid"
        assert entitlement.external_session_ref == "cs_paid"
        assert entitlement.external_customer_ref == "cus_1"
        assert entitlement.plan == Plan.LIFETIME

    async def test_confirm_twice_is_idempotent(self, confirm_handler, billing_provider, notifier):
        billing_provider.add_session(
            "cs_paid", customer_email="buyer@example.com", plan_hint=Plan.MONTHLY
        )

        first = await confirm_handler.handle(ConfirmPaymentSessionCommand("cs_paid"))
        second = await confirm_handler.handle(ConfirmPaymentSessionCommand("cs_paid"))

        assert first.id == second.id
        assert len(notifier.notices) == 1

    async def test_subscription_session_takes_period_end(self, confirm_handler, billing_provider):
        """Test a subscription checkout uses the subscription's period end."""
        period_end = utcnow() + timedelta(days=31)
        billing_provider.add_subscription("sub_1", current_period_end=period_end)
        billing_provider.add_session(
            "cs_sub",
            customer_email="buyer@example.com",
            plan_hint=Plan.MONTHLY,
            subscription_ref="sub_1",
            mode="subscription",
        )

        entitlement = await confirm_handler.handle(ConfirmPaymentSessionCommand("cs_sub"))

        assert entitlement.expires_at == period_end
        assert entitlement.external_subscription_ref == "sub_1"
        assert entitlement.external_subscription_status == SubscriptionStatus.ACTIVE

    @pytest.mark.parametrize("session_ref", ["", "pi_123", None])
    async def test_malformed_session_ref(self, confirm_handler, session_ref):
        with pytest.raises(InvalidPaymentSessionError):
            await confirm_handler.handle(ConfirmPaymentSessionCommand(session_ref))

    async def test_unpaid_session(self, confirm_handler, billing_provider):
        billing_provider.add_session(
            "cs_unpaid", paid=False, customer_email="buyer@example.com", plan_hint=Plan.MONTHLY
        )
        with pytest.raises(PaymentIncompleteError):
            await confirm_handler.handle(ConfirmPaymentSessionCommand("cs_unpaid"))

    async def test_session_without_plan(self, confirm_handler, billing_provider):
        billing_provider.add_session("cs_bare", customer_email="buyer@example.com")
        with pytest.raises(InvalidPaymentSessionError):
            await confirm_handler.handle(ConfirmPaymentSessionCommand("cs_bare"))

    async def test_billing_not_configured(self, create_handler):
        handler = ConfirmPaymentSessionHandler(BillingOracle(None), create_handler)
        with pytest.raises(NoBillingConfigError):
            await handler.handle(ConfirmPaymentSessionCommand("cs_any"))
