"""
Pytest configuration and shared fixtures.
"""

from datetime import timedelta

import pytest

from accounts.domain.owner import Owner
from activations.domain.verifier import ActivationVerifier
from billing.application.services.billing_oracle import BillingOracle
from core.domain.value_objects import EntitlementStatus, Plan, utcnow
from entitlements.application.handlers.confirm_payment_session_handler import (
    ConfirmPaymentSessionHandler,
)
from entitlements.application.handlers.create_entitlement_handler import CreateEntitlementHandler
from entitlements.domain.activation_code import generate_activation_code, hash_activation_code
from entitlements.domain.entitlement import BillingRefs, Entitlement
from fakes import (
    FakeBillingProvider,
    InMemoryCache,
    InMemoryEntitlementRepository,
    InMemoryOwnerRepository,
    InMemoryPlanPriceRepository,
    InMemoryProcessedEventRepository,
    RecordingEventBus,
    RecordingNotifier,
)
from plans.application.services.plan_catalog import PlanCatalog
from subscriptions.application.services.lifecycle_manager import (
    LifecycleConfig,
    SubscriptionLifecycleManager,
)
from webhooks.application.services.webhook_router import WebhookEventRouter


@pytest.fixture
def entitlement_repository():
    """Fixture for an in-memory EntitlementRepository."""
    return InMemoryEntitlementRepository()


@pytest.fixture
def owner_repository():
    """Fixture for an in-memory OwnerRepository."""
    return InMemoryOwnerRepository()


@pytest.fixture
def price_repository():
    return InMemoryPlanPriceRepository()


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def billing_provider():
    """Fixture for a scriptable billing provider."""
    return FakeBillingProvider()


@pytest.fixture
def oracle(billing_provider):
    """Fixture for a BillingOracle with a short timeout."""
    return BillingOracle(billing_provider, timeout=0.5)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def events():
    """Fixture for an event bus that records what was published."""
    return RecordingEventBus()


@pytest.fixture
def plan_catalog(price_repository, cache):
    return PlanCatalog(price_repository, cache)


@pytest.fixture
def create_handler(entitlement_repository, plan_catalog, notifier, events):
    """Fixture for CreateEntitlementHandler."""
    return CreateEntitlementHandler(
        entitlement_repository=entitlement_repository,
        plan_catalog=plan_catalog,
        notifier=notifier,
        event_bus=events,
    )


@pytest.fixture
def confirm_handler(oracle, create_handler):
    return ConfirmPaymentSessionHandler(oracle, create_handler)


@pytest.fixture
def verifier(entitlement_repository, owner_repository, oracle, events):
    """Fixture for ActivationVerifier."""
    return ActivationVerifier(
        entitlement_repository=entitlement_repository,
        owner_repository=owner_repository,
        oracle=oracle,
        event_bus=events,
    )


@pytest.fixture
def lifecycle_manager(
    owner_repository, entitlement_repository, billing_provider, plan_catalog, create_handler, events
):
    """Fixture for SubscriptionLifecycleManager."""
    return SubscriptionLifecycleManager(
        owner_repository=owner_repository,
        entitlement_repository=entitlement_repository,
        provider=billing_provider,
        plan_catalog=plan_catalog,
        create_handler=create_handler,
        event_bus=events,
        config=LifecycleConfig(
            success_url="https://app.test/success",
            cancel_url="https://app.test/cancel",
        ),
    )


@pytest.fixture
def processed_events():
    return InMemoryProcessedEventRepository()


@pytest.fixture
def webhook_router(oracle, lifecycle_manager, confirm_handler, processed_events):
    """Fixture for WebhookEventRouter."""
    return WebhookEventRouter(
        oracle=oracle,
        lifecycle_manager=lifecycle_manager,
        confirm_handler=confirm_handler,
        ledger=processed_events,
    )


@pytest.fixture
def make_entitlement(entitlement_repository):
    """
    Factory fixture storing an entitlement.

    Returns a function that creates a record and returns the plaintext
    activation code together with the stored entity.
    """

    def factory(
        plan=Plan.MONTHLY,
        email="buyer@example.com",
        expires_at=None,
        status=EntitlementStatus.ACTIVE,
        session_ref=None,
        customer_ref=None,
        subscription_ref=None,
        subscription_status=None,
        expires_in=timedelta(days=30),
    ):
        code = generate_activation_code()
        if expires_at is None and plan == Plan.MONTHLY and expires_in is not None:
            expires_at = utcnow() + expires_in
        entitlement = Entitlement.create(
            payment_event_ref=session_ref or subscription_ref or f"evt_{code}",
            email=email,
            plan=plan,
            code_hash=hash_activation_code(code),
            expires_at=expires_at,
            billing_refs=BillingRefs(
                session_ref=session_ref,
                customer_ref=customer_ref,
                subscription_ref=subscription_ref,
                subscription_status=subscription_status,
            ),
            status=status,
        )
        return code, entitlement_repository.add(entitlement)

    return factory


@pytest.fixture
def make_owner(owner_repository):
    """Factory fixture storing an owner with an optional billing relationship."""

    def factory(email="owner@example.com", customer_ref="cus_owner", **fields):
        owner = Owner.create(email=email, name="Owner", external_customer_ref=customer_ref)
        if fields:
            owner = owner.apply(fields)
        return owner_repository.add(owner)

    return factory


@pytest.fixture
def api_client():
    """Fixture for DRF API client."""
    from rest_framework.test import APIClient

    return APIClient()
