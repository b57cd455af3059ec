"""
ConfirmPaymentSessionHandler.

Confirms a one-time checkout session that was not started by an owner
and issues its entitlement. Used both by the checkout success redirect
and by the checkout-completed webhook, so it must be idempotent: the
session reference is the payment event reference.
"""

import logging

from billing.application.services.billing_oracle import BillingOracle
from billing.domain.snapshots import SessionSnapshot
from core.domain.exceptions import (
    BillingException,
    InvalidPaymentSessionError,
    PaymentIncompleteError,
)
from core.domain.value_objects import Email
from entitlements.application.commands.confirm_payment_session import ConfirmPaymentSessionCommand
from entitlements.application.commands.create_entitlement import CreateEntitlementCommand
from entitlements.application.handlers.create_entitlement_handler import CreateEntitlementHandler
from entitlements.domain.entitlement import BillingRefs, Entitlement

logger = logging.getLogger(__name__)

SESSION_REF_PREFIX = "cs_"


class ConfirmPaymentSessionHandler:
    """Handler for ConfirmPaymentSessionCommand."""

    def __init__(self, oracle: BillingOracle, create_handler: CreateEntitlementHandler):
        """Initialize handler."""
        self.oracle = oracle
        self.create_handler = create_handler

    async def handle(self, command: ConfirmPaymentSessionCommand) -> Entitlement:
        """
        Handle confirm payment session command.

        Raises:
            InvalidPaymentSessionError: If the session reference is malformed
                or the session lacks email or plan
            PaymentIncompleteError: If the session is not paid
            NoBillingConfigError: If billing is not configured
            TransientProviderError: If the provider is unreachable
        """
        session_ref = (command.session_ref or "").strip()
        if not session_ref.startswith(SESSION_REF_PREFIX):
            raise InvalidPaymentSessionError("Invalid session ID format")

        session = await self.oracle.get_session_status(session_ref)
        return await self.confirm(session)

    async def confirm(self, session: SessionSnapshot) -> Entitlement:
        """Issue the entitlement for an already retrieved session."""
        if not session.paid:
            raise PaymentIncompleteError(f"Payment not completed for session {session.session_ref}")

        if not session.customer_email or not session.plan_hint:
            logger.error(
                "Session %s is missing email or plan metadata", session.session_ref
            )
            raise InvalidPaymentSessionError("Missing email or plan metadata on checkout session")
        email = Email(session.customer_email)

        refs = BillingRefs(
            session_ref=session.session_ref,
            customer_ref=session.customer_ref,
            subscription_ref=session.subscription_ref,
        )
        expires_at = None
        if session.subscription_ref:
            try:
                subscription = await self.oracle.get_subscription_status(session.subscription_ref)
                refs = BillingRefs(
                    session_ref=session.session_ref,
                    customer_ref=session.customer_ref,
                    subscription_ref=session.subscription_ref,
                    subscription_status=subscription.status,
                    period_end=subscription.current_period_end,
                )
                expires_at = subscription.current_period_end
            except BillingException as e:
                logger.warning(
                    "Could not retrieve subscription %s: %s", session.subscription_ref, e.message
                )

        return await self.create_handler.handle(
            CreateEntitlementCommand(
                payment_event_ref=session.session_ref,
                email=email.value,
                plan_id=session.plan_hint.value,
                billing_refs=refs,
                expires_at=expires_at,
            )
        )
