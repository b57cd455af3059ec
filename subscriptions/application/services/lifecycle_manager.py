"""
Subscription lifecycle manager.

Applies owner-level billing transitions and cascades them to the owner's
entitlement group: every record tied to the owner's subscription, or to
the owner's customer and email together.

Failure semantics:
- The transition's own provider call (the cancellation, the metadata
  flag, the checkout) must succeed before local state changes; its
  error propagates to the caller.
- Revoke tolerates provider failure: a subscription that is already
  canceled or missing counts as canceled.
- Secondary provider calls made while cascading are logged and never
  abort the local cascade.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from accounts.domain.owner import Owner
from accounts.ports.owner_repository import OwnerRepository
from billing.domain.snapshots import (
    SERVICE_ENABLED_KEY,
    CheckoutRequest,
    SessionSnapshot,
    SubscriptionSnapshot,
)
from billing.ports.billing_provider import BillingProvider
from core.domain.events import EventBus
from core.domain.exceptions import (
    BillingException,
    EntitlementNotFoundError,
    InvalidTransitionError,
    NoBillingConfigError,
    OwnerNotFoundError,
    ProviderResourceMissingError,
    SubscriptionExpiredError,
)
from core.domain.value_objects import (
    EntitlementStatus,
    Plan,
    SubscriptionStatus,
    utcnow,
)
from core.metrics import entitlement_cascade_updates_total
from entitlements.application.commands.create_entitlement import CreateEntitlementCommand
from entitlements.application.handlers.create_entitlement_handler import CreateEntitlementHandler
from entitlements.domain.entitlement import BillingRefs, Entitlement
from entitlements.domain.events import (
    EntitlementDeleted,
    EntitlementResurrected,
    EntitlementRevoked,
)
from entitlements.domain.group import EntitlementGroup
from entitlements.ports.entitlement_repository import EntitlementRepository
from plans.application.services.plan_catalog import PlanCatalog
from subscriptions.domain.events import SubscriptionSynced
from subscriptions.domain.proration import LinearRemainingValuePolicy, ProrationPolicy
from subscriptions.domain.transition import (
    LifecycleOutcome,
    OutcomeStatus,
    SubscriptionStatusView,
    TransitionKind,
)

logger = logging.getLogger(__name__)

OWNER_ID_KEY = "owner_id"
PLAN_ID_KEY = "planId"

# Subscription statuses that end access for the subscription's records
TERMINAL_SUBSCRIPTION_STATUSES = frozenset({SubscriptionStatus.CANCELED, SubscriptionStatus.UNPAID})


@dataclass(frozen=True)
class LifecycleConfig:
    """Deployment settings of the lifecycle manager."""

    success_url: str = "http://localhost:8000/subscription/success?session_id={CHECKOUT_SESSION_ID}"
    cancel_url: str = "http://localhost:8000/subscription/cancel"
    downgrade_trial_days: int = 30
    bootstrap_window_seconds: int = 300


PatchBuilder = Callable[[Entitlement], Optional[Dict[str, Any]]]


class SubscriptionLifecycleManager:
    """Applies lifecycle transitions for owners."""

    def __init__(
        self,
        owner_repository: OwnerRepository,
        entitlement_repository: EntitlementRepository,
        provider: Optional[BillingProvider],
        plan_catalog: PlanCatalog,
        create_handler: CreateEntitlementHandler,
        event_bus: EventBus,
        proration_policy: Optional[ProrationPolicy] = None,
        config: Optional[LifecycleConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize manager with its collaborators."""
        self.owner_repository = owner_repository
        self.entitlement_repository = entitlement_repository
        self.provider = provider
        self.plan_catalog = plan_catalog
        self.create_handler = create_handler
        self.event_bus = event_bus
        self.proration_policy = proration_policy or LinearRemainingValuePolicy()
        self.config = config or LifecycleConfig()
        self.clock = clock

    # Helpers

    def _require_provider(self) -> BillingProvider:
        if self.provider is None:
            raise NoBillingConfigError()
        return self.provider

    async def _require_owner(self, owner_id: uuid.UUID) -> Owner:
        owner = await self.owner_repository.find_by_id(owner_id)
        if not owner:
            raise OwnerNotFoundError(f"Owner {owner_id} not found")
        return owner

    async def _ensure_customer(self, owner: Owner) -> Owner:
        """Give the owner a billing customer if it has none yet."""
        if owner.external_customer_ref:
            return owner
        customer = await self._require_provider().create_customer(
            email=str(owner.email),
            name=owner.name,
            metadata={OWNER_ID_KEY: str(owner.id)},
        )
        logger.info("Created billing customer %s for owner %s", customer.customer_ref, owner.id)
        return await self.owner_repository.mutate(
            owner.id, {"external_customer_ref": customer.customer_ref}
        )

    def _checkout_metadata(self, owner: Owner, plan: Plan, **extra: str) -> Dict[str, str]:
        return {
            OWNER_ID_KEY: str(owner.id),
            PLAN_ID_KEY: plan.value,
            "email": str(owner.email),
            **extra,
        }

    async def _cascade(self, records: List[Entitlement], kind: str, build_patch: PatchBuilder) -> int:
        """
        Apply a patch to every record of a group.

        Records deleted concurrently are skipped. Returns the number of
        records updated.
        """
        updated = 0
        for record in records:
            patch = build_patch(record)
            if not patch:
                continue
            try:
                refreshed = await self.entitlement_repository.mutate(record.id, patch)
            except EntitlementNotFoundError:
                entitlement_cascade_updates_total.labels(kind=kind, result="missing").inc()
                logger.info("Entitlement %s disappeared during %s cascade", record.id, kind)
                continue

            updated += 1
            entitlement_cascade_updates_total.labels(kind=kind, result="updated").inc()
            if record.is_active and not refreshed.is_active:
                await self.event_bus.publish(EntitlementRevoked(record.id, reason=kind))
            elif not record.is_active and refreshed.is_active:
                await self.event_bus.publish(EntitlementResurrected(record.id, reason=kind))
        return updated

    async def _group_records(self, owner: Owner) -> List[Entitlement]:
        return await self.entitlement_repository.find_all_for_group(EntitlementGroup.for_owner(owner))

    async def _set_service_flag(self, owner: Owner, enabled: bool) -> None:
        provider = self._require_provider()
        metadata = {SERVICE_ENABLED_KEY: "true" if enabled else "false"}
        if owner.external_subscription_ref:
            await provider.update_subscription(owner.external_subscription_ref, metadata=metadata)
        elif owner.external_customer_ref:
            await provider.update_customer_metadata(owner.external_customer_ref, metadata)
        else:
            raise InvalidTransitionError("No billing subscription or customer found")

    # Transitions

    async def checkout(self, owner_id: uuid.UUID, plan_id) -> LifecycleOutcome:
        """
        Start a checkout for a plan.

        Monthly plans check out as a recurring subscription, lifetime as a
        one-time payment.

        Raises:
            OwnerNotFoundError: If the owner does not exist
            PlanNotFoundError: If the plan is unknown
            NoBillingConfigError: If billing is not configured
            InvalidTransitionError: If the owner already holds the plan
        """
        provider = self._require_provider()
        plan = await self.plan_catalog.resolve_plan(plan_id)
        owner = await self._require_owner(owner_id)

        if owner.plan == plan.id and (
            owner.is_lifetime or (owner.subscription_status and owner.subscription_status.is_valid)
        ):
            raise InvalidTransitionError(f"Owner already has the {plan.id.value} plan")

        owner = await self._ensure_customer(owner)
        price = await provider.find_or_create_price(plan)
        metadata = self._checkout_metadata(owner, plan.id)

        session = await provider.create_checkout_session(
            CheckoutRequest(
                mode="subscription" if plan.recurring else "payment",
                success_url=self.config.success_url,
                cancel_url=self.config.cancel_url,
                customer_ref=owner.external_customer_ref,
                price_ref=price.price_ref,
                metadata=metadata,
                subscription_metadata=metadata if plan.recurring else {},
            )
        )
        logger.info("Checkout %s started for owner %s (%s)", session.session_ref, owner.id, plan.id)
        return LifecycleOutcome(
            kind=TransitionKind.CHECKOUT,
            owner_id=owner.id,
            status=OutcomeStatus.CHECKOUT_REQUIRED,
            message="Complete checkout to activate the plan",
            plan=plan.id,
            checkout_url=session.url,
            session_ref=session.session_ref,
        )

    async def change_plan(self, owner_id: uuid.UUID, plan_id) -> LifecycleOutcome:
        """
        Upgrade or downgrade an owner's plan.

        Lifetime to monthly starts a subscription checkout whose first
        period is a free trial. Monthly to lifetime charges the prorated
        difference through a one-time checkout, or flips the plan at once
        when the remaining period value already covers it.

        Raises:
            InvalidTransitionError: If the owner already has the plan, has
                no plan, or has no subscription to upgrade
            SubscriptionExpiredError: If the subscription to upgrade lapsed
        """
        provider = self._require_provider()
        target = await self.plan_catalog.resolve_plan(plan_id)
        owner = await self._require_owner(owner_id)

        if owner.plan == target.id:
            raise InvalidTransitionError(f"Owner already has the {target.id.value} plan")

        if owner.plan == Plan.LIFETIME and target.id == Plan.MONTHLY:
            owner = await self._ensure_customer(owner)
            price = await provider.find_or_create_price(target)
            session = await provider.create_checkout_session(
                CheckoutRequest(
                    mode="subscription",
                    success_url=self.config.success_url,
                    cancel_url=self.config.cancel_url,
                    customer_ref=owner.external_customer_ref,
                    price_ref=price.price_ref,
                    metadata=self._checkout_metadata(
                        owner, Plan.MONTHLY, action="downgrade", fromPlan=Plan.LIFETIME.value
                    ),
                    subscription_metadata=self._checkout_metadata(
                        owner, Plan.MONTHLY, downgradedFrom=Plan.LIFETIME.value
                    ),
                    trial_period_days=self.config.downgrade_trial_days,
                )
            )
            logger.info("Downgrade checkout %s started for owner %s", session.session_ref, owner.id)
            return LifecycleOutcome(
                kind=TransitionKind.CHANGE_PLAN,
                owner_id=owner.id,
                status=OutcomeStatus.CHECKOUT_REQUIRED,
                message=(
                    f"Complete checkout to switch to the monthly plan. The first "
                    f"{self.config.downgrade_trial_days} days are free, then "
                    f"{target.price} per month."
                ),
                plan=Plan.MONTHLY,
                checkout_url=session.url,
                session_ref=session.session_ref,
            )

        if owner.plan == Plan.MONTHLY and target.id == Plan.LIFETIME:
            return await self._upgrade(owner, target)

        raise InvalidTransitionError("No current plan to change; start a checkout instead")

    async def _upgrade(self, owner: Owner, lifetime) -> LifecycleOutcome:
        provider = self._require_provider()
        if not owner.external_subscription_ref:
            raise InvalidTransitionError("No active subscription found")

        subscription = await provider.retrieve_subscription(owner.external_subscription_ref)
        if not subscription.is_valid:
            raise SubscriptionExpiredError(
                f"Subscription {subscription.subscription_ref} is {subscription.status.value}"
            )

        monthly = await self.plan_catalog.resolve_plan(Plan.MONTHLY)
        quote = self.proration_policy.quote(
            monthly_price=monthly.price,
            lifetime_price=lifetime.price,
            period_start=subscription.current_period_start,
            period_end=subscription.current_period_end,
            now=self.clock(),
        )

        if quote.is_free:
            affected = await self._complete_upgrade(owner)
            return LifecycleOutcome(
                kind=TransitionKind.CHANGE_PLAN,
                owner_id=owner.id,
                status=OutcomeStatus.COMPLETED,
                message="Upgraded to the lifetime plan at no additional charge",
                affected=affected,
                plan=Plan.LIFETIME,
                subscription_status=SubscriptionStatus.ACTIVE,
                price_difference=quote.price_difference,
            )

        owner = await self._ensure_customer(owner)
        session = await provider.create_checkout_session(
            CheckoutRequest(
                mode="payment",
                success_url=self.config.success_url,
                cancel_url=self.config.cancel_url,
                customer_ref=owner.external_customer_ref,
                amount=quote.amount_cents,
                product_name="Upgrade to Lifetime Plan",
                metadata=self._checkout_metadata(
                    owner,
                    Plan.LIFETIME,
                    action="upgrade",
                    fromPlan=Plan.MONTHLY.value,
                    priceDifference=str(quote.price_difference),
                ),
            )
        )
        logger.info(
            "Upgrade checkout %s started for owner %s (%s)",
            session.session_ref,
            owner.id,
            quote.price_difference,
        )
        return LifecycleOutcome(
            kind=TransitionKind.CHANGE_PLAN,
            owner_id=owner.id,
            status=OutcomeStatus.CHECKOUT_REQUIRED,
            message=f"Upgrade to the lifetime plan. Price difference: {quote.price_difference}",
            plan=Plan.LIFETIME,
            checkout_url=session.url,
            session_ref=session.session_ref,
            price_difference=quote.price_difference,
        )

    async def _complete_upgrade(self, owner: Owner) -> int:
        """
        Move an owner and its group to the lifetime plan.

        The old subscription is kept for reference, marked lifetime and set
        to end with its current period. Verification reads the plan from
        that subscription, so marking it must succeed before any record
        moves; only a subscription that no longer exists is skipped.

        Raises:
            BillingException: If the subscription could not be marked
        """
        if owner.external_subscription_ref:
            try:
                await self._require_provider().update_subscription(
                    owner.external_subscription_ref,
                    metadata={
                        PLAN_ID_KEY: Plan.LIFETIME.value,
                        "upgradedToLifetime": "true",
                        "upgradedAt": self.clock().isoformat(),
                        "originalPlan": Plan.MONTHLY.value,
                    },
                    cancel_at_period_end=True,
                )
            except ProviderResourceMissingError:
                logger.warning(
                    "Subscription %s vanished before it could be marked as upgraded",
                    owner.external_subscription_ref,
                )

        records = await self._group_records(owner)
        await self.owner_repository.mutate(
            owner.id,
            {
                "plan": Plan.LIFETIME,
                "subscription_status": SubscriptionStatus.ACTIVE,
                "current_period_end": None,
            },
        )
        affected = await self._cascade(
            records,
            "upgrade",
            lambda record: {
                "plan": Plan.LIFETIME,
                "expires_at": None,
                "status": EntitlementStatus.ACTIVE,
            },
        )
        logger.info("Owner %s upgraded to lifetime (%d entitlements)", owner.id, affected)
        return affected

    async def cancel(self, owner_id: uuid.UUID, immediate: bool = False) -> LifecycleOutcome:
        """
        Cancel an owner's subscription.

        Deferred cancellation keeps entitlements active until the period
        elapses; immediate cancellation revokes them now. Lifetime records
        outlive the subscription either way.

        Raises:
            InvalidTransitionError: If the owner has no subscription
        """
        provider = self._require_provider()
        owner = await self._require_owner(owner_id)
        if not owner.external_subscription_ref:
            raise InvalidTransitionError("No active subscription to cancel")

        records = await self._group_records(owner)

        if immediate:
            subscription = await provider.cancel_subscription(owner.external_subscription_ref)
            await self.owner_repository.mutate(
                owner.id,
                {"subscription_status": SubscriptionStatus.CANCELED, "current_period_end": None},
            )

            def revoke_patch(record: Entitlement):
                patch = {"external_subscription_status": SubscriptionStatus.CANCELED}
                if record.is_active and not record.is_lifetime:
                    patch["status"] = EntitlementStatus.REVOKED
                return patch

            affected = await self._cascade(records, "cancel", revoke_patch)
            logger.info("Subscription %s canceled immediately", subscription.subscription_ref)
            return LifecycleOutcome(
                kind=TransitionKind.CANCEL,
                owner_id=owner.id,
                status=OutcomeStatus.COMPLETED,
                message="Subscription canceled immediately. Activation codes have been revoked.",
                affected=affected,
                plan=owner.plan,
                subscription_status=SubscriptionStatus.CANCELED,
                cancel_at_period_end=False,
            )

        subscription = await provider.update_subscription(
            owner.external_subscription_ref, cancel_at_period_end=True
        )
        await self.owner_repository.mutate(
            owner.id, {"subscription_status": subscription.status}
        )
        affected = await self._cascade(
            records,
            "cancel_at_period_end",
            lambda record: {"external_subscription_status": subscription.status},
        )
        logger.info(
            "Subscription %s will cancel at %s",
            subscription.subscription_ref,
            subscription.current_period_end,
        )
        return LifecycleOutcome(
            kind=TransitionKind.CANCEL,
            owner_id=owner.id,
            status=OutcomeStatus.SCHEDULED,
            message="Subscription will be canceled at the end of the current period",
            affected=affected,
            plan=owner.plan,
            subscription_status=subscription.status,
            current_period_end=subscription.current_period_end,
            cancel_at_period_end=subscription.cancel_at_period_end,
        )

    async def revoke(self, owner_id: uuid.UUID) -> LifecycleOutcome:
        """
        Hard stop: cancel any subscription and revoke every entitlement.

        Applies to lifetime plans too. A subscription that cannot be
        canceled (already canceled, missing, provider down) does not stop
        the revocation.

        Raises:
            InvalidTransitionError: If the owner has neither subscription nor lifetime plan
        """
        owner = await self._require_owner(owner_id)
        if not owner.external_subscription_ref and not owner.is_lifetime:
            raise InvalidTransitionError("No active subscription or lifetime plan to revoke")

        records = await self._group_records(owner)
        had_subscription = bool(owner.external_subscription_ref)

        if had_subscription:
            if self.provider is None:
                logger.warning("Billing not configured; revoking %s without provider cancel", owner.id)
            else:
                try:
                    await self.provider.cancel_subscription(owner.external_subscription_ref)
                except BillingException as e:
                    logger.warning(
                        "Could not cancel subscription %s (may already be canceled): %s",
                        owner.external_subscription_ref,
                        e.message,
                    )

        await self.owner_repository.mutate(
            owner.id,
            {
                "plan": None,
                "subscription_status": SubscriptionStatus.CANCELED,
                "external_subscription_ref": None,
                "current_period_end": None,
            },
        )

        def revoke_patch(record: Entitlement):
            if not record.is_active:
                return None
            patch = {"status": EntitlementStatus.REVOKED}
            if had_subscription:
                patch["external_subscription_status"] = SubscriptionStatus.CANCELED
            return patch

        affected = await self._cascade(records, "revoke", revoke_patch)
        logger.info("Owner %s revoked (%d entitlements)", owner.id, affected)
        return LifecycleOutcome(
            kind=TransitionKind.REVOKE,
            owner_id=owner.id,
            status=OutcomeStatus.COMPLETED,
            message="Access revoked. All activation codes have been disabled.",
            affected=affected,
            subscription_status=SubscriptionStatus.CANCELED,
        )

    async def reactivate(self, owner_id: uuid.UUID) -> LifecycleOutcome:
        """
        Clear a deferred cancellation and restore the owner's entitlements.

        Raises:
            InvalidTransitionError: If the owner has no subscription
            SubscriptionExpiredError: If the subscription already ended
        """
        provider = self._require_provider()
        owner = await self._require_owner(owner_id)
        if not owner.external_subscription_ref:
            raise InvalidTransitionError("No subscription to reactivate")

        subscription = await provider.update_subscription(
            owner.external_subscription_ref, cancel_at_period_end=False
        )
        if not subscription.is_valid:
            raise SubscriptionExpiredError(
                f"Subscription {subscription.subscription_ref} is {subscription.status.value}"
            )

        await self.owner_repository.mutate(
            owner.id,
            {
                "subscription_status": subscription.status,
                "current_period_end": subscription.current_period_end,
            },
        )
        records = await self._group_records(owner)
        affected = await self._cascade(
            records, "reactivate", lambda record: self._refresh_patch(record, subscription)
        )
        logger.info("Subscription %s reactivated", subscription.subscription_ref)
        return LifecycleOutcome(
            kind=TransitionKind.REACTIVATE,
            owner_id=owner.id,
            status=OutcomeStatus.COMPLETED,
            message="Subscription reactivated",
            affected=affected,
            plan=owner.plan,
            subscription_status=subscription.status,
            current_period_end=subscription.current_period_end,
            cancel_at_period_end=subscription.cancel_at_period_end,
        )

    def _refresh_patch(
        self, record: Entitlement, subscription: SubscriptionSnapshot, plan: Optional[Plan] = None
    ) -> Dict[str, Any]:
        """Patch restoring a record from a valid subscription."""
        patch: Dict[str, Any] = {
            "status": EntitlementStatus.ACTIVE,
            "external_subscription_status": subscription.status,
        }
        plan = plan or record.plan
        if plan != record.plan:
            patch["plan"] = plan
        if subscription.current_period_end:
            patch["external_period_end"] = subscription.current_period_end
        if plan == Plan.LIFETIME:
            patch["expires_at"] = None
        elif subscription.current_period_end:
            patch["expires_at"] = subscription.current_period_end
        return patch

    async def stop_service(self, owner_id: uuid.UUID) -> LifecycleOutcome:
        """
        Switch the owner's service flag off and revoke active entitlements.

        Raises:
            InvalidTransitionError: If the owner has no subscription or customer
        """
        owner = await self._require_owner(owner_id)
        await self._set_service_flag(owner, enabled=False)

        records = await self._group_records(owner)
        affected = await self._cascade(
            records,
            "stop_service",
            lambda record: {"status": EntitlementStatus.REVOKED} if record.is_active else None,
        )
        logger.info("Service stopped for owner %s (%d entitlements)", owner.id, affected)
        return LifecycleOutcome(
            kind=TransitionKind.STOP_SERVICE,
            owner_id=owner.id,
            status=OutcomeStatus.COMPLETED,
            message="Service stopped. All activation codes have been disabled.",
            affected=affected,
            plan=owner.plan,
            subscription_status=owner.subscription_status,
        )

    async def start_service(self, owner_id: uuid.UUID) -> LifecycleOutcome:
        """
        Switch the owner's service flag back on and restore valid entitlements.

        The underlying plan is re-validated first; an entitlement whose
        period actually elapsed stays revoked.

        Raises:
            SubscriptionExpiredError: If the owner's plan or subscription lapsed
            InvalidTransitionError: If the owner has no subscription or customer
        """
        provider = self._require_provider()
        owner = await self._require_owner(owner_id)
        now = self.clock()

        valid = False
        expired = False
        if owner.external_subscription_ref:
            try:
                subscription = await provider.retrieve_subscription(owner.external_subscription_ref)
                valid = subscription.is_valid
                if subscription.current_period_end:
                    expired = subscription.current_period_end < now
            except BillingException as e:
                logger.error(
                    "Could not check subscription %s: %s", owner.external_subscription_ref, e.message
                )
        elif owner.is_lifetime:
            valid = True
        elif owner.current_period_end:
            valid = owner.has_unexpired_period(now)
            expired = not valid

        if expired:
            raise SubscriptionExpiredError(
                "Your subscription has expired. Please purchase a new subscription to continue."
            )
        if not valid:
            raise SubscriptionExpiredError(
                "Your subscription is not active. Please purchase a new subscription to continue."
            )

        await self._set_service_flag(owner, enabled=True)

        records = await self._group_records(owner)
        snapshots: Dict[str, Optional[SubscriptionSnapshot]] = {}
        patches: Dict[uuid.UUID, Dict[str, Any]] = {}
        for record in records:
            if record.status != EntitlementStatus.REVOKED:
                continue
            if record.is_lifetime:
                patches[record.id] = {"status": EntitlementStatus.ACTIVE}
            elif record.external_subscription_ref:
                ref = record.external_subscription_ref
                if ref not in snapshots:
                    snapshots[ref] = await self._try_retrieve(ref)
                subscription = snapshots[ref]
                if subscription is not None and subscription.is_valid:
                    patches[record.id] = self._refresh_patch(record, subscription)
            elif not record.is_expired(now):
                patches[record.id] = {"status": EntitlementStatus.ACTIVE}

        affected = await self._cascade(
            records, "start_service", lambda record: patches.get(record.id)
        )
        logger.info("Service started for owner %s (%d entitlements)", owner.id, affected)
        return LifecycleOutcome(
            kind=TransitionKind.START_SERVICE,
            owner_id=owner.id,
            status=OutcomeStatus.COMPLETED,
            message="Service started. All valid activation codes have been reactivated.",
            affected=affected,
            plan=owner.plan,
            subscription_status=owner.subscription_status,
        )

    async def _try_retrieve(self, subscription_ref: str) -> Optional[SubscriptionSnapshot]:
        try:
            return await self._require_provider().retrieve_subscription(subscription_ref)
        except BillingException as e:
            logger.warning("Could not retrieve subscription %s: %s", subscription_ref, e.message)
            return None

    async def delete(self, owner_id: uuid.UUID) -> LifecycleOutcome:
        """
        Irreversibly remove an owner's subscription and entitlements.

        The billing customer reference is kept for future purchases.
        A subscription the provider no longer has counts as canceled.
        """
        provider = self._require_provider()
        owner = await self._require_owner(owner_id)
        records = await self._group_records(owner)

        if owner.external_subscription_ref:
            try:
                await provider.cancel_subscription(owner.external_subscription_ref)
            except ProviderResourceMissingError as e:
                logger.warning(
                    "Subscription %s already gone: %s", owner.external_subscription_ref, e.message
                )

        deleted = 0
        for record in records:
            if await self.entitlement_repository.delete(record.id):
                deleted += 1
                entitlement_cascade_updates_total.labels(kind="delete", result="deleted").inc()
                await self.event_bus.publish(EntitlementDeleted(record.id))

        await self.owner_repository.mutate(
            owner.id,
            {
                "external_subscription_ref": None,
                "plan": None,
                "subscription_status": None,
                "current_period_end": None,
            },
        )
        logger.info("Owner %s subscription deleted (%d entitlements)", owner.id, deleted)
        return LifecycleOutcome(
            kind=TransitionKind.DELETE,
            owner_id=owner.id,
            status=OutcomeStatus.COMPLETED,
            message="Subscription and all activation codes have been deleted.",
            affected=deleted,
        )

    # Queries

    async def subscription_status(self, owner_id: uuid.UUID) -> SubscriptionStatusView:
        """
        Return the owner's subscription, refreshed from the provider.

        Lifetime owners never take their plan from a subscription and shed
        stale subscription pointers. A subscription the provider no longer
        has is recorded as canceled.
        """
        owner = await self._require_owner(owner_id)
        service_enabled = True
        subscription: Optional[SubscriptionSnapshot] = None

        if owner.is_lifetime:
            if owner.external_subscription_ref:
                logger.info("Clearing stale subscription pointer of lifetime owner %s", owner.id)
                owner = await self.owner_repository.mutate(
                    owner.id, {"external_subscription_ref": None, "current_period_end": None}
                )
            service_enabled = await self._customer_flag(owner)
        elif owner.external_subscription_ref and self.provider is not None:
            try:
                subscription = await self.provider.retrieve_subscription(
                    owner.external_subscription_ref
                )
                service_enabled = subscription.service_enabled
                if subscription.plan_hint != Plan.LIFETIME:
                    owner = await self.owner_repository.mutate(
                        owner.id,
                        {
                            "subscription_status": subscription.status,
                            "plan": Plan.MONTHLY,
                            "current_period_end": subscription.current_period_end,
                        },
                    )
            except ProviderResourceMissingError:
                owner = await self.owner_repository.mutate(
                    owner.id,
                    {
                        "external_subscription_ref": None,
                        "subscription_status": SubscriptionStatus.CANCELED,
                    },
                )
            except BillingException as e:
                logger.error(
                    "Could not retrieve subscription %s: %s", owner.external_subscription_ref, e.message
                )
        else:
            service_enabled = await self._customer_flag(owner)

        return SubscriptionStatusView(
            owner_id=owner.id,
            plan=owner.plan,
            status=owner.subscription_status,
            current_period_end=owner.current_period_end,
            subscription_ref=owner.external_subscription_ref,
            service_enabled=service_enabled,
            cancel_at_period_end=subscription.cancel_at_period_end if subscription else None,
            current_period_start=subscription.current_period_start if subscription else None,
        )

    async def _customer_flag(self, owner: Owner) -> bool:
        if not owner.external_customer_ref or self.provider is None:
            return True
        try:
            customer = await self.provider.retrieve_customer(owner.external_customer_ref)
            return customer.service_enabled
        except BillingException as e:
            logger.error("Could not retrieve customer %s: %s", owner.external_customer_ref, e.message)
            return True

    # Checkout completion

    async def _owner_for_session(self, session: SessionSnapshot) -> Optional[Owner]:
        owner_id = session.metadata.get(OWNER_ID_KEY)
        if owner_id:
            try:
                owner = await self.owner_repository.find_by_id(uuid.UUID(owner_id))
            except ValueError:
                logger.warning("Session %s carries malformed owner id %r", session.session_ref, owner_id)
                owner = None
            if owner:
                return owner
        if session.customer_ref:
            return await self.owner_repository.find_by_customer_ref(session.customer_ref)
        return None

    async def handle_checkout_completed(self, session: SessionSnapshot) -> Optional[Entitlement]:
        """
        Complete an owner checkout.

        Handles new subscriptions, downgrades to monthly and upgrades or
        purchases of lifetime access. Safe to replay.

        Returns:
            The entitlement created for the checkout, if any
        """
        owner = await self._owner_for_session(session)
        if owner is None:
            logger.warning("No owner for checkout session %s", session.session_ref)
            return None

        if session.mode == "subscription" and session.subscription_ref:
            return await self._complete_subscription_checkout(owner, session)
        if session.mode == "payment" and session.plan_hint == Plan.LIFETIME:
            return await self._complete_lifetime_checkout(owner, session)

        logger.info("Checkout session %s needs no lifecycle action", session.session_ref)
        return None

    async def _complete_subscription_checkout(
        self, owner: Owner, session: SessionSnapshot
    ) -> Optional[Entitlement]:
        provider = self._require_provider()
        subscription = await provider.retrieve_subscription(session.subscription_ref)
        is_downgrade = (
            subscription.metadata.get("downgradedFrom") == Plan.LIFETIME.value
            or session.metadata.get("fromPlan") == Plan.LIFETIME.value
            or session.metadata.get("action") == "downgrade"
        )

        if subscription.status == SubscriptionStatus.TRIALING and not is_downgrade:
            try:
                subscription = await provider.update_subscription(
                    subscription.subscription_ref, trial_end="now"
                )
                logger.info("Ended trial of new subscription %s", subscription.subscription_ref)
            except BillingException as e:
                logger.error(
                    "Could not end trial of subscription %s: %s",
                    subscription.subscription_ref,
                    e.message,
                )

        plan = Plan.MONTHLY if is_downgrade else (subscription.plan_hint or Plan.MONTHLY)
        owner = await self.owner_repository.mutate(
            owner.id,
            {
                "external_customer_ref": owner.external_customer_ref or subscription.customer_ref,
                "external_subscription_ref": subscription.subscription_ref,
                "subscription_status": subscription.status,
                "plan": plan,
                "current_period_end": subscription.current_period_end,
            },
        )

        if is_downgrade:
            records = await self._group_records(owner)

            def downgrade_patch(record: Entitlement):
                patch = self._refresh_patch(record, subscription, plan=Plan.MONTHLY)
                patch["external_subscription_ref"] = subscription.subscription_ref
                return patch

            affected = await self._cascade(records, "downgrade", downgrade_patch)
            logger.info("Owner %s downgraded to monthly (%d entitlements)", owner.id, affected)

        return await self._ensure_subscription_entitlement(owner, subscription, plan)

    async def _ensure_subscription_entitlement(
        self, owner: Owner, subscription: SubscriptionSnapshot, plan: Plan
    ) -> Optional[Entitlement]:
        """Create the subscription's entitlement unless a record already carries it."""
        records = await self._group_records(owner)
        if any(r.external_subscription_ref == subscription.subscription_ref for r in records):
            return None

        return await self.create_handler.handle(
            CreateEntitlementCommand(
                payment_event_ref=subscription_event_ref(subscription.subscription_ref),
                email=str(owner.email),
                plan_id=plan.value,
                billing_refs=BillingRefs(
                    customer_ref=owner.external_customer_ref,
                    subscription_ref=subscription.subscription_ref,
                    subscription_status=subscription.status,
                    period_end=subscription.current_period_end,
                ),
                expires_at=subscription.current_period_end,
            )
        )

    async def _complete_lifetime_checkout(
        self, owner: Owner, session: SessionSnapshot
    ) -> Optional[Entitlement]:
        records = await self._group_records(owner)
        if session.metadata.get("action") == "upgrade" and owner.external_subscription_ref:
            await self._complete_upgrade(owner)
        else:
            await self.owner_repository.mutate(
                owner.id,
                {"plan": Plan.LIFETIME, "subscription_status": SubscriptionStatus.ACTIVE},
            )
            await self._cascade(
                records,
                "upgrade",
                lambda record: {
                    "plan": Plan.LIFETIME,
                    "expires_at": None,
                    "status": EntitlementStatus.ACTIVE,
                },
            )

        if records:
            return None
        return await self.create_handler.handle(
            CreateEntitlementCommand(
                payment_event_ref=session.session_ref,
                email=str(owner.email),
                plan_id=Plan.LIFETIME.value,
                billing_refs=BillingRefs(
                    session_ref=session.session_ref,
                    customer_ref=owner.external_customer_ref or session.customer_ref,
                ),
            )
        )

    # Subscription webhooks

    async def apply_subscription_update(self, subscription: SubscriptionSnapshot) -> Dict[str, int]:
        """
        Mirror a subscription change onto its owner and entitlements.

        Only records carrying this subscription are touched. Canceled and
        unpaid subscriptions revoke active monthly records. Valid
        subscriptions refresh their records and bring revoked ones back
        unless the service flag is off. A subscription created within the
        bootstrap window whose owner has no records yet gets its first
        one; older subscriptions without records are renewals and are
        skipped.

        The owner mirrors the subscription only while it is the owner's
        current one or a fresh subscription replacing it; late events for
        a superseded subscription leave the owner alone.

        Returns:
            Counts of revoked, refreshed and created records
        """
        summary = {"revoked": 0, "refreshed": 0, "created": 0}
        owner = await self.owner_repository.find_by_subscription_ref(subscription.subscription_ref)
        if owner is None and subscription.customer_ref:
            owner = await self.owner_repository.find_by_customer_ref(subscription.customer_ref)

        if owner is not None and not self._tracks_subscription(owner, subscription):
            logger.info(
                "Subscription %s is superseded by %s for owner %s; owner left unchanged",
                subscription.subscription_ref,
                owner.external_subscription_ref,
                owner.id,
            )
            owner = None

        if owner is not None:
            owner = await self._mirror_subscription(owner, subscription)
            group = EntitlementGroup(
                email=str(owner.email),
                customer_ref=owner.external_customer_ref,
                subscription_ref=subscription.subscription_ref,
            )
        else:
            logger.info("No owner follows subscription %s", subscription.subscription_ref)
            group = EntitlementGroup(
                email=None, customer_ref=None, subscription_ref=subscription.subscription_ref
            )

        group_records = await self.entitlement_repository.find_all_for_group(group)
        records = [
            r for r in group_records if r.external_subscription_ref == subscription.subscription_ref
        ]

        if subscription.status in TERMINAL_SUBSCRIPTION_STATUSES:

            def lapse_patch(record: Entitlement):
                patch = {}
                if record.external_subscription_status != subscription.status:
                    patch["external_subscription_status"] = subscription.status
                if record.is_active and not record.is_lifetime:
                    patch["status"] = EntitlementStatus.REVOKED
                return patch

            summary["revoked"] = sum(
                1 for r in records if r.is_active and not r.is_lifetime
            )
            await self._cascade(records, f"subscription_{subscription.status.value}", lapse_patch)

        elif subscription.is_valid:
            plan = subscription.plan_hint

            def refresh_patch(record: Entitlement):
                patch = self._refresh_patch(record, subscription, plan=plan)
                if not subscription.service_enabled and not record.is_active:
                    patch.pop("status")
                return patch

            summary["refreshed"] = await self._cascade(records, "subscription_renewed", refresh_patch)

            if not group_records and owner is not None and self._is_fresh(subscription):
                created = await self._ensure_subscription_entitlement(
                    owner, subscription, plan or Plan.MONTHLY
                )
                summary["created"] = 1 if created else 0
            elif not records:
                logger.info(
                    "No entitlements for subscription %s (likely a renewal); skipping creation",
                    subscription.subscription_ref,
                )
        else:
            await self._cascade(
                records,
                "subscription_status",
                lambda record: {"external_subscription_status": subscription.status},
            )

        await self.event_bus.publish(
            SubscriptionSynced(
                subscription.subscription_ref,
                subscription.status.value,
                owner_id=owner.id if owner else None,
            )
        )
        return summary

    def _tracks_subscription(self, owner: Owner, subscription: SubscriptionSnapshot) -> bool:
        """Whether the owner's billing mirror follows this subscription."""
        current = owner.external_subscription_ref
        if not current or current == subscription.subscription_ref:
            return True
        # A different subscription only takes over while it is new and valid
        return subscription.is_valid and self._is_fresh(subscription)

    def _is_fresh(self, subscription: SubscriptionSnapshot) -> bool:
        if subscription.created_at is None:
            return False
        age = self.clock() - subscription.created_at
        return age < timedelta(seconds=self.config.bootstrap_window_seconds)

    async def _mirror_subscription(self, owner: Owner, subscription: SubscriptionSnapshot) -> Owner:
        patch: Dict[str, Any] = {
            "external_subscription_ref": subscription.subscription_ref,
            "subscription_status": subscription.status,
            "current_period_end": subscription.current_period_end,
        }
        if not owner.external_customer_ref and subscription.customer_ref:
            patch["external_customer_ref"] = subscription.customer_ref

        if subscription.status == SubscriptionStatus.CANCELED:
            if owner.is_lifetime:
                patch = {"external_subscription_ref": None}
            else:
                patch["plan"] = None
                patch["current_period_end"] = None
        elif not owner.is_lifetime:
            patch["plan"] = subscription.plan_hint or Plan.MONTHLY

        return await self.owner_repository.mutate(owner.id, patch)

    # Maintenance

    async def sweep_lapsed_entitlements(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Reconcile active subscription records whose stored expiry elapsed.

        Records whose subscription renewed get the new period; records
        whose subscription ended (or vanished) are revoked. Records whose
        subscription cannot be read right now are left for the next sweep.
        """
        now = now or self.clock()
        summary = {"revoked": 0, "refreshed": 0}
        if self.provider is None:
            logger.warning("Billing not configured; skipping entitlement sweep")
            return summary

        records = await self.entitlement_repository.find_active_subscription_lapsed(now)
        snapshots: Dict[str, Optional[SubscriptionSnapshot]] = {}
        for record in records:
            ref = record.external_subscription_ref
            if ref not in snapshots:
                try:
                    snapshots[ref] = await self.provider.retrieve_subscription(ref)
                except ProviderResourceMissingError:
                    snapshots[ref] = SubscriptionSnapshot(
                        subscription_ref=ref, status=SubscriptionStatus.CANCELED
                    )
                except BillingException as e:
                    logger.warning("Sweep could not read subscription %s: %s", ref, e.message)
                    snapshots[ref] = None

            subscription = snapshots[ref]
            if subscription is None:
                continue

            if subscription.is_valid and (
                subscription.current_period_end and subscription.current_period_end > now
            ):
                summary["refreshed"] += await self._cascade(
                    [record], "sweep_refresh", lambda r: self._refresh_patch(r, subscription)
                )
            elif not subscription.is_valid:
                summary["revoked"] += await self._cascade(
                    [record],
                    "sweep_revoke",
                    lambda r: {
                        "status": EntitlementStatus.REVOKED,
                        "external_subscription_status": subscription.status,
                    },
                )
        return summary


def subscription_event_ref(subscription_ref: str) -> str:
    """Payment event reference of an entitlement created for a subscription."""
    return f"sub:{subscription_ref}"
