"""
Stripe webhook verification.

Verifies the `Stripe-Signature` header and narrows the event to the
references the webhook router needs.
"""

import logging
from typing import Any, Dict, Optional

import stripe

from billing.domain.snapshots import BillingEvent
from billing.infrastructure.stripe_provider import ref_of, to_plain
from core.domain.exceptions import InvalidWebhookSignatureError, NoBillingConfigError

logger = logging.getLogger(__name__)


def _invoice_subscription_ref(data: Dict[str, Any]) -> Optional[str]:
    """Subscription of an invoice, on old and new API versions."""
    subscription = ref_of(data.get("subscription"))
    if subscription:
        return subscription
    details = ((data.get("parent") or {}).get("subscription_details")) or {}
    return ref_of(details.get("subscription"))


def construct_billing_event(payload: bytes, signature: str, secret: str) -> BillingEvent:
    """
    Verify and parse a Stripe webhook payload.

    Args:
        payload: Raw request body
        signature: Value of the Stripe-Signature header
        secret: Webhook endpoint signing secret

    Returns:
        BillingEvent

    Raises:
        NoBillingConfigError: If no signing secret is configured
        InvalidWebhookSignatureError: If the payload or signature is invalid
    """
    if not secret:
        raise NoBillingConfigError("Webhook signing secret is not configured")

    try:
        event = stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError as e:
        logger.warning("Invalid webhook payload: %s", e)
        raise InvalidWebhookSignatureError("Invalid webhook payload") from e
    except stripe.SignatureVerificationError as e:
        logger.warning("Invalid webhook signature: %s", e)
        raise InvalidWebhookSignatureError() from e

    data = to_plain(event)
    obj = (data.get("data") or {}).get("object") or {}
    event_type = data.get("type", "")

    if obj.get("object") == "subscription":
        subscription_ref = obj.get("id")
    elif obj.get("object") == "invoice":
        subscription_ref = _invoice_subscription_ref(obj)
    else:
        subscription_ref = ref_of(obj.get("subscription"))

    return BillingEvent(
        event_id=data["id"],
        event_type=event_type,
        object_id=obj.get("id"),
        subscription_ref=subscription_ref,
    )
