"""
Reconciliation strategies.

Verification consults its sources of truth in a fixed priority order:
the record's own subscription, the subscription of the owner behind the
record's customer, the one-time checkout session, and finally the stored
expiry. Each strategy either decides (Resolved or Rejected, carrying the
field patch it derived from its single source) or returns None to defer
to the next one. Billing errors always defer.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Union

from accounts.ports.owner_repository import OwnerRepository
from activations.domain.verdict import VerdictReason
from billing.application.services.billing_oracle import BillingOracle
from billing.domain.snapshots import SubscriptionSnapshot
from core.domain.exceptions import BillingException
from core.domain.value_objects import EntitlementStatus, Plan, SubscriptionStatus
from entitlements.domain.entitlement import Entitlement
from plans.domain.plan import add_calendar_months

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolved:
    """The source grants access."""

    source: str
    patch: Dict[str, Any] = field(default_factory=dict)
    # Whether the source may reactivate a revoked or pending record
    restores_access: bool = False


@dataclass(frozen=True)
class Rejected:
    """The source denies access."""

    source: str
    reason: VerdictReason
    patch: Dict[str, Any] = field(default_factory=dict)


Outcome = Union[Resolved, Rejected]


def _set_if_changed(patch: Dict[str, Any], entitlement: Entitlement, name: str, value: Any) -> None:
    if getattr(entitlement, name) != value:
        patch[name] = value


def evaluate_subscription(
    source: str,
    entitlement: Entitlement,
    snapshot: SubscriptionSnapshot,
    link_subscription: bool = False,
) -> Outcome:
    """
    Judge an entitlement against its subscription.

    The subscription's plan hint corrects the record's plan; the expiry
    becomes null for lifetime and the period end for monthly. A lifetime
    purchase outlives its subscription, but only a valid subscription
    may bring a revoked record back.
    """
    patch: Dict[str, Any] = {}
    plan = snapshot.plan_hint or entitlement.plan
    _set_if_changed(patch, entitlement, "plan", plan)

    if plan == Plan.LIFETIME:
        expires_at = None
    else:
        expires_at = snapshot.current_period_end or entitlement.expires_at
    _set_if_changed(patch, entitlement, "expires_at", expires_at)
    _set_if_changed(patch, entitlement, "external_subscription_status", snapshot.status)
    if snapshot.current_period_end is not None:
        _set_if_changed(patch, entitlement, "external_period_end", snapshot.current_period_end)
    if link_subscription:
        _set_if_changed(patch, entitlement, "external_subscription_ref", snapshot.subscription_ref)

    if not snapshot.service_enabled:
        return Rejected(source, VerdictReason.SERVICE_DISABLED, patch)
    if snapshot.is_valid:
        return Resolved(source, patch, restores_access=True)
    if plan == Plan.LIFETIME:
        return Resolved(source, patch)

    if snapshot.status == SubscriptionStatus.CANCELED and entitlement.status == EntitlementStatus.REVOKED:
        return Rejected(source, VerdictReason.EXPIRED, patch)
    return Rejected(source, VerdictReason.SUBSCRIPTION_INACTIVE, patch)


class ReconciliationStrategy(ABC):
    """One source of truth in the reconciliation chain."""

    source = ""

    @abstractmethod
    async def reconcile(self, entitlement: Entitlement, now: datetime) -> Optional[Outcome]:
        """
        Judge an entitlement.

        Returns:
            Resolved or Rejected, or None to defer to the next strategy
        """
        pass


class SubscriptionStrategy(ReconciliationStrategy):
    """The subscription the record itself references."""

    source = "subscription"

    def __init__(self, oracle: BillingOracle):
        self.oracle = oracle

    async def reconcile(self, entitlement: Entitlement, now: datetime) -> Optional[Outcome]:
        if not entitlement.external_subscription_ref:
            return None
        try:
            snapshot = await self.oracle.get_subscription_status(entitlement.external_subscription_ref)
        except BillingException as e:
            logger.warning(
                "Subscription %s unavailable for entitlement %s: %s",
                entitlement.external_subscription_ref,
                entitlement.id,
                e.message,
            )
            return None
        return evaluate_subscription(self.source, entitlement, snapshot)


class OwnerSubscriptionStrategy(ReconciliationStrategy):
    """
    The subscription of the owner behind the record's customer.

    When that owner has no subscription, the customer's service flag can
    still switch access off.
    """

    source = "owner_subscription"

    def __init__(self, oracle: BillingOracle, owner_repository: OwnerRepository):
        self.oracle = oracle
        self.owner_repository = owner_repository

    async def reconcile(self, entitlement: Entitlement, now: datetime) -> Optional[Outcome]:
        customer_ref = entitlement.external_customer_ref
        if not customer_ref:
            return None

        owner = await self.owner_repository.find_by_customer_ref(customer_ref)
        subscription_ref = owner.external_subscription_ref if owner else None

        try:
            if subscription_ref and subscription_ref != entitlement.external_subscription_ref:
                snapshot = await self.oracle.get_subscription_status(subscription_ref)
                return evaluate_subscription(
                    self.source, entitlement, snapshot, link_subscription=True
                )
            if not subscription_ref and not await self.oracle.get_customer_service_flag(customer_ref):
                return Rejected(self.source, VerdictReason.SERVICE_DISABLED)
        except BillingException as e:
            logger.warning(
                "Customer %s unavailable for entitlement %s: %s",
                customer_ref,
                entitlement.id,
                e.message,
            )
        return None


class SessionStrategy(ReconciliationStrategy):
    """The one-time checkout session that paid for the record."""

    source = "session"

    def __init__(self, oracle: BillingOracle):
        self.oracle = oracle

    async def reconcile(self, entitlement: Entitlement, now: datetime) -> Optional[Outcome]:
        if not entitlement.external_session_ref:
            return None
        try:
            session = await self.oracle.get_session_status(entitlement.external_session_ref)
        except BillingException as e:
            logger.warning(
                "Session %s unavailable for entitlement %s: %s",
                entitlement.external_session_ref,
                entitlement.id,
                e.message,
            )
            return None

        if not session.paid:
            return Rejected(self.source, VerdictReason.PAYMENT_INCOMPLETE)

        patch: Dict[str, Any] = {}
        if entitlement.is_lifetime:
            _set_if_changed(patch, entitlement, "expires_at", None)
            return Resolved(self.source, patch)

        expires_at = entitlement.expires_at
        if expires_at is None:
            expires_at = add_calendar_months(session.created_at or entitlement.created_at, 1)
            patch["expires_at"] = expires_at
        if expires_at < now:
            return Rejected(self.source, VerdictReason.EXPIRED, patch)
        return Resolved(self.source, patch)


class StoredExpiryStrategy(ReconciliationStrategy):
    """The record's stored expiry. Always decides."""

    source = "stored"

    async def reconcile(self, entitlement: Entitlement, now: datetime) -> Optional[Outcome]:
        patch: Dict[str, Any] = {}
        if entitlement.is_lifetime:
            _set_if_changed(patch, entitlement, "expires_at", None)
            return Resolved(self.source, patch)
        if entitlement.is_expired(now):
            return Rejected(self.source, VerdictReason.EXPIRED)
        return Resolved(self.source)
