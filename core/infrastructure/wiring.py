"""
Composition of application services from Django settings.

Views, tasks and management commands build their collaborators here so
that every entry point uses the same repositories, billing provider and
event bus.
"""

from django.conf import settings
from django.utils.module_loading import import_string

from accounts.infrastructure.repositories.django_owner_repository import DjangoOwnerRepository
from activations.domain.verifier import ActivationVerifier
from billing.application.services.billing_oracle import BillingOracle
from billing.infrastructure.stripe_provider import build_billing_provider
from core.infrastructure.cache_adapters import cache_adapter
from core.infrastructure.events import event_bus
from entitlements.application.handlers.confirm_payment_session_handler import (
    ConfirmPaymentSessionHandler,
)
from entitlements.application.handlers.create_entitlement_handler import CreateEntitlementHandler
from entitlements.infrastructure.notifier import CeleryEmailNotifier
from entitlements.infrastructure.repositories.django_entitlement_repository import (
    DjangoEntitlementRepository,
)
from plans.application.services.plan_catalog import PlanCatalog
from plans.infrastructure.repositories.django_plan_price_repository import (
    DjangoPlanPriceRepository,
)
from subscriptions.application.services.lifecycle_manager import (
    LifecycleConfig,
    SubscriptionLifecycleManager,
)
from webhooks.application.services.webhook_router import WebhookEventRouter
from webhooks.infrastructure.repositories.django_processed_event_repository import (
    DjangoProcessedEventRepository,
)


def build_oracle() -> BillingOracle:
    return BillingOracle(build_billing_provider(), timeout=settings.BILLING_PROVIDER_TIMEOUT)


def build_plan_catalog() -> PlanCatalog:
    return PlanCatalog(DjangoPlanPriceRepository(), cache_adapter)


def build_create_handler() -> CreateEntitlementHandler:
    return CreateEntitlementHandler(
        entitlement_repository=DjangoEntitlementRepository(),
        plan_catalog=build_plan_catalog(),
        notifier=CeleryEmailNotifier(),
        event_bus=event_bus,
    )


def build_verifier() -> ActivationVerifier:
    return ActivationVerifier(
        entitlement_repository=DjangoEntitlementRepository(),
        owner_repository=DjangoOwnerRepository(),
        oracle=build_oracle(),
        event_bus=event_bus,
    )


def build_confirm_handler() -> ConfirmPaymentSessionHandler:
    return ConfirmPaymentSessionHandler(build_oracle(), build_create_handler())


def build_lifecycle_manager() -> SubscriptionLifecycleManager:
    """Build the lifecycle manager with the configured proration policy."""
    policy_class = import_string(settings.ENTITLEMENT_PRORATION_POLICY)
    config = LifecycleConfig(
        success_url=settings.CHECKOUT_SUCCESS_URL,
        cancel_url=settings.CHECKOUT_CANCEL_URL,
        downgrade_trial_days=settings.DOWNGRADE_TRIAL_DAYS,
        bootstrap_window_seconds=settings.SUBSCRIPTION_BOOTSTRAP_WINDOW_SECONDS,
    )
    return SubscriptionLifecycleManager(
        owner_repository=DjangoOwnerRepository(),
        entitlement_repository=DjangoEntitlementRepository(),
        provider=build_billing_provider(),
        plan_catalog=build_plan_catalog(),
        create_handler=build_create_handler(),
        event_bus=event_bus,
        proration_policy=policy_class(),
        config=config,
    )


def build_webhook_router() -> WebhookEventRouter:
    oracle = build_oracle()
    return WebhookEventRouter(
        oracle=oracle,
        lifecycle_manager=build_lifecycle_manager(),
        confirm_handler=ConfirmPaymentSessionHandler(oracle, build_create_handler()),
        ledger=DjangoProcessedEventRepository(),
    )
