"""
Unit tests for ActivationVerifier.
"""
import asyncio
import dataclasses
from datetime import timedelta

import pytest

from activations.domain.verdict import VerdictReason
from activations.domain.verifier import ActivationVerifier
from core.domain.exceptions import TransientProviderError
from core.domain.value_objects import EntitlementStatus, Plan, SubscriptionStatus, utcnow
from entitlements.application.commands.create_entitlement import CreateEntitlementCommand
from entitlements.domain.activation_code import hash_activation_code
from entitlements.domain.events import EntitlementRedeemed, EntitlementResurrected


def verifier_at(now, entitlement_repository, owner_repository, oracle, events):
    return ActivationVerifier(
        entitlement_repository=entitlement_repository,
        owner_repository=owner_repository,
        oracle=oracle,
        event_bus=events,
        clock=lambda: now,
    )


@pytest.mark.asyncio
class TestLookup:
    """Tests for code lookup."""

    async def test_unknown_code_not_found(self, verifier):
        """Test verifying a code nobody issued."""
        verdict = await verifier.verify("ZZZZZZZZZZZZZZZZ", "device-a")
        assert not verdict.ok
        assert verdict.reason == VerdictReason.NOT_FOUND

    async def test_blank_code_not_found(self, verifier):
        verdict = await verifier.verify("   ", "device-a")
        assert verdict.reason == VerdictReason.NOT_FOUND

    async def test_code_is_normalized(self, verifier, make_entitlement):
        """Test lowercase and padded codes match their hash."""
        code, _ = make_entitlement()
        verdict = await verifier.verify(f"  {code.lower()} ", "device-a")
        assert verdict.ok

    async def test_lookup_by_hash(self, verifier, make_entitlement):
        """Test a submitted code hash is looked up directly."""
        _, entitlement = make_entitlement()
        verdict = await verifier.verify(entitlement.code_hash.upper(), "device-a")
        assert verdict.ok
        assert verdict.entitlement_id == entitlement.id

    async def test_legacy_plaintext_code_is_migrated(
        self, verifier, entitlement_repository, make_entitlement
    ):
        """Test legacy plaintext records are found and rehashed."""
        _, entitlement = make_entitlement()
        legacy = dataclasses.replace(entitlement, code_hash=None, legacy_code="LEGACY0000000001")
        entitlement_repository.add(legacy)

        verdict = await verifier.verify("legacy0000000001", "device-a")

        assert verdict.ok
        stored = entitlement_repository.records[entitlement.id]
        assert stored.code_hash == hash_activation_code("LEGACY0000000001")
        assert stored.legacy_code is None

    @pytest.mark.parametrize("device_id", [None, "", "   "])
    async def test_device_required(self, verifier, make_entitlement, device_id):
        """Test a missing device identifier is refused before lookup."""
        code, _ = make_entitlement()
        verdict = await verifier.verify(code, device_id)
        assert verdict.reason == VerdictReason.DEVICE_REQUIRED


@pytest.mark.asyncio
class TestDeviceBinding:
    """Tests for first-use device binding."""

    async def test_binding_is_one_way(self, verifier, make_entitlement, events):
        """Test the first device keeps the code and others are refused."""
        code, _ = make_entitlement()

        first = await verifier.verify(code, "device-a")
        other = await verifier.verify(code, "device-b")
        again = await verifier.verify(code, "device-a")

        assert first.ok and first.device_id == "device-a"
        assert first.redeemed_at is not None
        assert other.reason == VerdictReason.DEVICE_MISMATCH
        assert again.ok
        assert again.redeemed_at == first.redeemed_at
        assert len(events.of_type(EntitlementRedeemed)) == 1

    async def test_concurrent_devices_bind_once(self, verifier, make_entitlement, entitlement_repository):
        """Test two devices racing for a fresh code never both win."""
        code, entitlement = make_entitlement()

        verdicts = await asyncio.gather(
            verifier.verify(code, "device-a"),
            verifier.verify(code, "device-b"),
        )

        winners = [v for v in verdicts if v.ok]
        losers = [v for v in verdicts if not v.ok]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].reason == VerdictReason.DEVICE_MISMATCH
        assert entitlement_repository.records[entitlement.id].redeemed_device_id == winners[0].device_id

    async def test_refused_code_does_not_bind(self, verifier, make_entitlement, entitlement_repository):
        """Test an expired code leaves the device slot free."""
        code, entitlement = make_entitlement(expires_at=utcnow() - timedelta(days=1))

        verdict = await verifier.verify(code, "device-a")

        assert verdict.reason == VerdictReason.EXPIRED
        assert entitlement_repository.records[entitlement.id].redeemed_device_id is None


@pytest.mark.asyncio
class TestExpiry:
    """Tests for stored expiry."""

    async def test_monthly_expiry_boundary(
        self, make_entitlement, entitlement_repository, owner_repository, oracle, events
    ):
        """Test a monthly code works one second before expiry and not after."""
        expires_at = utcnow() + timedelta(days=3)
        code, _ = make_entitlement(expires_at=expires_at)

        before = verifier_at(
            expires_at - timedelta(seconds=1), entitlement_repository, owner_repository, oracle, events
        )
        after = verifier_at(
            expires_at + timedelta(seconds=1), entitlement_repository, owner_repository, oracle, events
        )

        assert (await before.verify(code, "device-a")).ok
        verdict = await after.verify(code, "device-a")
        assert verdict.reason == VerdictReason.EXPIRED

    async def test_lifetime_never_expires(
        self, make_entitlement, entitlement_repository, owner_repository, oracle, events
    ):
        """Test lifetime codes stay valid at any time."""
        code, _ = make_entitlement(plan=Plan.LIFETIME)

        for years in (0, 10, 100):
            verifier = verifier_at(
                utcnow() + timedelta(days=365 * years),
                entitlement_repository,
                owner_repository,
                oracle,
                events,
            )
            verdict = await verifier.verify(code, "device-a")
            assert verdict.ok
            assert verdict.plan == Plan.LIFETIME
            assert verdict.expires_at is None
            assert verdict.subscription_status == "active"

    async def test_lifetime_outlives_canceled_subscription(
        self, verifier, make_entitlement, billing_provider
    ):
        """Test a lifetime record is not refused when its old subscription ended."""
        billing_provider.add_subscription("sub_old", status=SubscriptionStatus.CANCELED)
        code, _ = make_entitlement(plan=Plan.LIFETIME, subscription_ref="sub_old")

        verdict = await verifier.verify(code, "device-a")

        assert verdict.ok
        assert verdict.subscription_status == "active"


@pytest.mark.asyncio
class TestSubscriptionSource:
    """Tests for the subscription reconciliation sources."""

    async def test_period_end_corrects_stored_expiry(
        self, verifier, make_entitlement, billing_provider, entitlement_repository
    ):
        """Test the subscription's period end replaces a stale expiry."""
        period_end = utcnow() + timedelta(days=25)
        billing_provider.add_subscription("sub_1", current_period_end=period_end)
        code, entitlement = make_entitlement(
            subscription_ref="sub_1", expires_at=utcnow() - timedelta(days=2)
        )

        verdict = await verifier.verify(code, "device-a")

        assert verdict.ok
        assert verdict.source == "subscription"
        assert verdict.expires_at == period_end
        stored = entitlement_repository.records[entitlement.id]
        assert stored.expires_at == period_end
        assert stored.external_subscription_status == SubscriptionStatus.ACTIVE

    async def test_plan_hint_corrects_plan(
        self, verifier, make_entitlement, billing_provider, entitlement_repository
    ):
        """Test a subscription marked lifetime turns the record lifetime."""
        billing_provider.add_subscription(
            "sub_1", plan_hint=Plan.LIFETIME, current_period_end=utcnow() + timedelta(days=3)
        )
        code, entitlement = make_entitlement(subscription_ref="sub_1")

        verdict = await verifier.verify(code, "device-a")

        assert verdict.ok
        assert verdict.plan == Plan.LIFETIME
        stored = entitlement_repository.records[entitlement.id]
        assert stored.plan == Plan.LIFETIME
        assert stored.expires_at is None

    async def test_inactive_subscription_refused(self, verifier, make_entitlement, billing_provider):
        billing_provider.add_subscription("sub_1", status=SubscriptionStatus.UNPAID)
        code, _ = make_entitlement(subscription_ref="sub_1")

        verdict = await verifier.verify(code, "device-a")

        assert verdict.reason == VerdictReason.SUBSCRIPTION_INACTIVE

    async def test_service_disabled_on_subscription(self, verifier, make_entitlement, billing_provider):
        """Test the service flag refuses even a paid subscription."""
        billing_provider.add_subscription("sub_1", metadata={"serviceEnabled": "false"})
        code, _ = make_entitlement(subscription_ref="sub_1")

        verdict = await verifier.verify(code, "device-a")

        assert verdict.reason == VerdictReason.SERVICE_DISABLED

    async def test_service_disabled_on_customer(
        self, verifier, make_entitlement, make_owner, billing_provider
    ):
        """Test the customer's service flag applies when the owner has no subscription."""
        make_owner(customer_ref="cus_1")
        billing_provider.add_customer("cus_1", metadata={"serviceEnabled": "false"})
        code, _ = make_entitlement(customer_ref="cus_1")

        verdict = await verifier.verify(code, "device-a")

        assert verdict.reason == VerdictReason.SERVICE_DISABLED
        assert verdict.source == "owner_subscription"

    async def test_owner_subscription_links_record(
        self, verifier, make_entitlement, make_owner, billing_provider, entitlement_repository
    ):
        """Test a record without a subscription is judged by its owner's subscription."""
        make_owner(customer_ref="cus_1", external_subscription_ref="sub_owner")
        billing_provider.add_subscription(
            "sub_owner", current_period_end=utcnow() + timedelta(days=10)
        )
        code, entitlement = make_entitlement(customer_ref="cus_1")

        verdict = await verifier.verify(code, "device-a")

        assert verdict.ok
        assert verdict.source == "owner_subscription"
        stored = entitlement_repository.records[entitlement.id]
        assert stored.external_subscription_ref == "sub_owner"

    async def test_provider_failure_falls_back_to_stored_expiry(
        self, verifier, make_entitlement, billing_provider
    ):
        """Test billing outages defer to the stored record."""
        billing_provider.failures["retrieve_subscription"] = TransientProviderError()
        code, _ = make_entitlement(subscription_ref="sub_1")

        verdict = await verifier.verify(code, "device-a")

        assert verdict.ok
        assert verdict.source == "stored"

    async def test_missing_billing_config_falls_back(
        self, make_entitlement, entitlement_repository, owner_repository, events
    ):
        """Test verification works with billing unconfigured."""
        from billing.application.services.billing_oracle import BillingOracle

        verifier = ActivationVerifier(
            entitlement_repository, owner_repository, BillingOracle(None), events
        )
        code, _ = make_entitlement(subscription_ref="sub_1", session_ref="cs_1")

        verdict = await verifier.verify(code, "device-a")

        assert verdict.ok
        assert verdict.source == "stored"


@pytest.mark.asyncio
class TestSessionSource:
    """Tests for the checkout session source."""

    async def test_unpaid_session_refused(self, verifier, make_entitlement, billing_provider):
        billing_provider.add_session("cs_1", paid=False)
        code, _ = make_entitlement(session_ref="cs_1")

        verdict = await verifier.verify(code, "device-a")

        assert verdict.reason == VerdictReason.PAYMENT_INCOMPLETE

    async def test_missing_monthly_expiry_derived_from_session(
        self, verifier, make_entitlement, billing_provider, entitlement_repository
    ):
        """Test a monthly record without expiry gets one calendar month from the session."""
        created = utcnow() - timedelta(days=3)
        billing_provider.add_session("cs_1", created_at=created)
        code, entitlement = make_entitlement(session_ref="cs_1", expires_in=None)

        verdict = await verifier.verify(code, "device-a")

        assert verdict.ok
        assert verdict.source == "session"
        stored = entitlement_repository.records[entitlement.id]
        assert stored.expires_at is not None
        assert stored.expires_at > utcnow() + timedelta(days=20)

    async def test_old_session_without_expiry_is_expired(
        self, verifier, make_entitlement, billing_provider, entitlement_repository
    ):
        billing_provider.add_session("cs_1", created_at=utcnow() - timedelta(days=70))
        code, entitlement = make_entitlement(session_ref="cs_1", expires_in=None)

        verdict = await verifier.verify(code, "device-a")

        assert verdict.reason == VerdictReason.EXPIRED
        assert entitlement_repository.records[entitlement.id].expires_at is not None

    async def test_pending_record_activated_by_paid_session(
        self, verifier, make_entitlement, billing_provider, entitlement_repository
    ):
        """Test a pending record becomes active once its session is paid."""
        billing_provider.add_session("cs_1")
        code, entitlement = make_entitlement(session_ref="cs_1", status=EntitlementStatus.PENDING)

        verdict = await verifier.verify(code, "device-a")

        assert verdict.ok
        assert entitlement_repository.records[entitlement.id].status == EntitlementStatus.ACTIVE


@pytest.mark.asyncio
class TestRevocation:
    """Tests for revoked records."""

    async def test_revoked_without_subscription_stays_revoked(self, verifier, make_entitlement):
        code, _ = make_entitlement(status=EntitlementStatus.REVOKED)

        verdict = await verifier.verify(code, "device-a")

        assert verdict.reason == VerdictReason.REVOKED

    async def test_revoked_with_canceled_subscription_is_expired(
        self, verifier, make_entitlement, billing_provider
    ):
        billing_provider.add_subscription("sub_1", status=SubscriptionStatus.CANCELED)
        code, _ = make_entitlement(status=EntitlementStatus.REVOKED, subscription_ref="sub_1")

        verdict = await verifier.verify(code, "device-a")

        assert verdict.reason == VerdictReason.EXPIRED

    async def test_revocation_sticky_until_subscription_valid(
        self, verifier, make_entitlement, billing_provider, entitlement_repository, events
    ):
        """Test a revoked record comes back when its subscription is active again."""
        billing_provider.add_subscription("sub_1", status=SubscriptionStatus.CANCELED)
        code, entitlement = make_entitlement(
            status=EntitlementStatus.REVOKED, subscription_ref="sub_1"
        )

        assert not (await verifier.verify(code, "device-a")).ok
        assert entitlement_repository.records[entitlement.id].status == EntitlementStatus.REVOKED

        billing_provider.add_subscription(
            "sub_1", current_period_end=utcnow() + timedelta(days=30)
        )
        verdict = await verifier.verify(code, "device-a")

        assert verdict.ok
        assert entitlement_repository.records[entitlement.id].status == EntitlementStatus.ACTIVE
        assert len(events.of_type(EntitlementResurrected)) == 1


@pytest.mark.asyncio
class TestPurchaseScenario:
    """End-to-end scenario over the create handler and the verifier."""

    async def test_fresh_monthly_purchase(self, create_handler, verifier):
        """Test a new monthly entitlement verifies and binds."""
        entitlement = await create_handler.handle(
            CreateEntitlementCommand(payment_event_ref="evt1", email="a@x.com", plan_id="monthly")
        )

        remaining = entitlement.expires_at - utcnow()
        assert timedelta(days=29) < remaining <= timedelta(days=30)

        verdict = await verifier.verify(entitlement.code_hash, "dev1")

        assert verdict.to_dict()["ok"] is True
        assert verdict.to_dict()["plan"] == "monthly"
        assert verdict.to_dict()["device_id"] == "dev1"

    async def test_failure_serializes_reason_only(self, verifier):
        verdict = await verifier.verify("NOPE", "dev1")
        assert verdict.to_dict() == {"ok": False, "reason": "not_found"}
