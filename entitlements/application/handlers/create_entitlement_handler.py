"""
CreateEntitlementHandler.

Handles the create entitlement command. Creation is idempotent on the
payment event reference: a repeated payment event returns the record it
created the first time, and no notice is sent again.
"""

import logging

from core.domain.events import EventBus
from core.domain.exceptions import DuplicateActivationCodeError
from core.domain.value_objects import utcnow
from core.metrics import entitlements_created_total
from entitlements.application.commands.create_entitlement import CreateEntitlementCommand
from entitlements.domain.activation_code import generate_activation_code, hash_activation_code
from entitlements.domain.entitlement import Entitlement
from entitlements.domain.events import EntitlementCreated
from entitlements.ports.entitlement_repository import EntitlementRepository
from entitlements.ports.notifier import ActivationNotice, ActivationNotifier
from plans.application.services.plan_catalog import PlanCatalog

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 3


class CreateEntitlementHandler:
    """Handler for CreateEntitlementCommand."""

    def __init__(
        self,
        entitlement_repository: EntitlementRepository,
        plan_catalog: PlanCatalog,
        notifier: ActivationNotifier,
        event_bus: EventBus,
    ):
        """Initialize handler with its collaborators."""
        self.entitlement_repository = entitlement_repository
        self.plan_catalog = plan_catalog
        self.notifier = notifier
        self.event_bus = event_bus

    async def handle(self, command: CreateEntitlementCommand) -> Entitlement:
        """
        Handle create entitlement command.

        Args:
            command: CreateEntitlementCommand

        Returns:
            The created entitlement, or the one already stored for the
            payment event

        Raises:
            PlanNotFoundError: If the plan is unknown
            InvalidEmailError: If the email is malformed
            DuplicateActivationCodeError: If every generated code collided
        """
        plan = await self.plan_catalog.resolve_plan(command.plan_id)
        expires_at = command.expires_at or plan.default_expiry(utcnow())

        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            entitlement = Entitlement.create(
                payment_event_ref=command.payment_event_ref,
                email=command.email,
                plan=plan.id,
                code_hash=hash_activation_code(generate_activation_code()),
                expires_at=expires_at,
                billing_refs=command.billing_refs,
                status=command.status,
            )
            try:
                stored, created = await self.entitlement_repository.create_if_absent(entitlement)
                break
            except DuplicateActivationCodeError:
                logger.warning(
                    "Activation code collision for %s (attempt %d)",
                    command.payment_event_ref,
                    attempt,
                )
                if attempt == MAX_CODE_ATTEMPTS:
                    raise

        if not created:
            logger.info("Entitlement for %s already exists", command.payment_event_ref)
            return stored

        entitlements_created_total.labels(plan=stored.plan.value).inc()
        logger.info("Entitlement %s created for %s", stored.id, command.payment_event_ref)

        await self.event_bus.publish(
            EntitlementCreated(
                entitlement_id=stored.id,
                email=str(stored.email),
                plan=stored.plan.value,
                payment_event_ref=stored.payment_event_ref,
            )
        )

        try:
            await self.notifier.notify(
                ActivationNotice(
                    recipient=str(stored.email),
                    code_reference=stored.code_hash,
                    plan_label=plan.label,
                    expires_at=stored.expires_at,
                )
            )
        except Exception as e:
            logger.error("Activation notice for %s failed: %s", stored.id, e, exc_info=True)

        return stored
