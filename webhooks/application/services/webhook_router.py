"""
Billing webhook event router.

Dispatches verified billing events by type. Handling is idempotent on
two levels: entitlement creation is keyed on the payment event, and a
ledger of processed event ids skips redeliveries outright. An event is
recorded in the ledger only after it was handled, so a failed attempt
is retried by the provider's redelivery.
"""

import logging

from billing.application.services.billing_oracle import BillingOracle
from billing.domain.snapshots import BillingEvent, SubscriptionSnapshot
from core.domain.exceptions import (
    InvalidPaymentSessionError,
    PaymentIncompleteError,
    ProviderResourceMissingError,
)
from core.domain.value_objects import SubscriptionStatus
from core.instrumentation import Status, StatusCode, get_tracer
from core.metrics import webhook_events_total
from entitlements.application.handlers.confirm_payment_session_handler import (
    ConfirmPaymentSessionHandler,
)
from subscriptions.application.services.lifecycle_manager import (
    OWNER_ID_KEY,
    SubscriptionLifecycleManager,
)
from webhooks.ports.processed_event_repository import ProcessedEventRepository

logger = logging.getLogger(__name__)

tracer = get_tracer(__name__)

CHECKOUT_COMPLETED_EVENTS = frozenset(
    {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
)
SUBSCRIPTION_EVENTS = frozenset(
    {
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
        "invoice.payment_succeeded",
        "invoice.payment_failed",
    }
)

PROCESSED = "processed"
DUPLICATE = "duplicate"
IGNORED = "ignored"


class WebhookEventRouter:
    """Routes billing events to their handlers."""

    def __init__(
        self,
        oracle: BillingOracle,
        lifecycle_manager: SubscriptionLifecycleManager,
        confirm_handler: ConfirmPaymentSessionHandler,
        ledger: ProcessedEventRepository,
    ):
        """Initialize router with its collaborators."""
        self.oracle = oracle
        self.lifecycle_manager = lifecycle_manager
        self.confirm_handler = confirm_handler
        self.ledger = ledger

    async def route(self, event: BillingEvent) -> str:
        """
        Handle a verified billing event.

        Args:
            event: Verified billing event

        Returns:
            "processed", "duplicate" or "ignored"

        Raises:
            TransientProviderError: If the provider or the store is unreachable;
                the event stays unrecorded so that redelivery retries it
        """
        with tracer.start_as_current_span("route_webhook_event") as span:
            span.set_attribute("webhook.event_type", event.event_type)
            span.set_attribute("webhook.event_id", event.event_id)

            if await self.ledger.has_processed(event.event_id):
                logger.info("Webhook event %s already processed", event.event_id)
                webhook_events_total.labels(event_type=event.event_type, result=DUPLICATE).inc()
                return DUPLICATE

            try:
                result = await self._dispatch(event)
            except Exception as e:
                webhook_events_total.labels(event_type=event.event_type, result="error").inc()
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            if result != IGNORED:
                await self.ledger.mark_processed(event.event_id, event.event_type)
            webhook_events_total.labels(event_type=event.event_type, result=result).inc()
            span.set_attribute("webhook.result", result)
            return result

    async def _dispatch(self, event: BillingEvent) -> str:
        if event.event_type in CHECKOUT_COMPLETED_EVENTS:
            return await self._checkout_completed(event)
        if event.event_type in SUBSCRIPTION_EVENTS:
            return await self._subscription_changed(event)
        logger.debug("Ignoring webhook event type %s", event.event_type)
        return IGNORED

    async def _checkout_completed(self, event: BillingEvent) -> str:
        if not event.object_id:
            logger.warning("Checkout event %s has no session", event.event_id)
            return IGNORED

        # The payload is not trusted beyond its references
        session = await self.oracle.get_session_status(event.object_id)

        if session.metadata.get(OWNER_ID_KEY):
            await self.lifecycle_manager.handle_checkout_completed(session)
            return PROCESSED

        try:
            await self.confirm_handler.confirm(session)
        except PaymentIncompleteError:
            logger.info("Session %s is not paid yet; waiting for payment", session.session_ref)
            return IGNORED
        except InvalidPaymentSessionError as e:
            logger.error("Cannot issue entitlement for session %s: %s", session.session_ref, e.message)
            return PROCESSED
        return PROCESSED

    async def _subscription_changed(self, event: BillingEvent) -> str:
        if not event.subscription_ref:
            logger.debug("Event %s carries no subscription", event.event_id)
            return IGNORED

        try:
            subscription = await self.oracle.get_subscription_status(event.subscription_ref)
        except ProviderResourceMissingError:
            logger.warning("Subscription %s no longer exists; treating as canceled", event.subscription_ref)
            subscription = SubscriptionSnapshot(
                subscription_ref=event.subscription_ref, status=SubscriptionStatus.CANCELED
            )
        summary = await self.lifecycle_manager.apply_subscription_update(subscription)
        logger.info(
            "Subscription %s (%s) applied: %s",
            subscription.subscription_ref,
            subscription.status.value,
            summary,
        )
        return PROCESSED
