"""
Entitlement domain entity.

An entitlement record is the persisted proof that an email address has
paid access to a plan. It is keyed by the hash of its activation code
and linked to the billing provider's session, customer and subscription
objects. The record is immutable here; changes are expressed as patches
that the repository applies as targeted field updates.
"""
import dataclasses
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from core.domain.exceptions import ImmutableFieldError
from core.domain.value_objects import (
    Email,
    EntitlementStatus,
    Plan,
    SubscriptionStatus,
    utcnow,
)
from entitlements.domain.activation_code import CODE_HASH_LENGTH

# Fields that ordinary patches may change. Device binding fields are
# written only through the repository's compare-and-set.
MUTABLE_FIELDS = frozenset(
    {
        "plan",
        "code_hash",
        "legacy_code",
        "status",
        "expires_at",
        "external_customer_ref",
        "external_subscription_ref",
        "external_subscription_status",
        "external_period_end",
    }
)


def validate_patch(patch: Dict[str, Any]) -> None:
    """
    Reject patches naming fields outside MUTABLE_FIELDS.

    Raises:
        ImmutableFieldError: If the patch touches an immutable field
    """
    forbidden = set(patch) - MUTABLE_FIELDS
    if forbidden:
        raise ImmutableFieldError(f"Fields cannot be patched: {', '.join(sorted(forbidden))}")


@dataclass(frozen=True)
class BillingRefs:
    """References linking an entitlement to billing provider objects."""

    session_ref: Optional[str] = None
    customer_ref: Optional[str] = None
    subscription_ref: Optional[str] = None
    subscription_status: Optional[SubscriptionStatus] = None
    period_end: Optional[datetime] = None


@dataclass(frozen=True)
class Entitlement:
    """
    Entitlement domain entity.

    `payment_event_ref` is the idempotency key of the payment event that
    created the record. `code_hash` is only absent on legacy records that
    still carry a plaintext `legacy_code`.
    """

    id: uuid.UUID
    email: Email
    plan: Plan
    code_hash: Optional[str]
    status: EntitlementStatus
    expires_at: Optional[datetime]
    payment_event_ref: str
    external_session_ref: Optional[str]
    external_customer_ref: Optional[str]
    external_subscription_ref: Optional[str]
    external_subscription_status: Optional[SubscriptionStatus]
    external_period_end: Optional[datetime]
    redeemed_device_id: Optional[str]
    redeemed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    legacy_code: Optional[str] = None

    def __post_init__(self):
        """Validate entitlement entity."""
        if not self.payment_event_ref:
            raise ValueError("Payment event reference is required")
        if self.code_hash is None and not self.legacy_code:
            raise ValueError("Either a code hash or a legacy code is required")
        if self.code_hash is not None and len(self.code_hash) != CODE_HASH_LENGTH:
            raise ValueError("Invalid code hash")

    @classmethod
    def create(
        cls,
        payment_event_ref: str,
        email: str,
        plan: Plan,
        code_hash: str,
        expires_at: Optional[datetime] = None,
        billing_refs: Optional[BillingRefs] = None,
        status: EntitlementStatus = EntitlementStatus.ACTIVE,
        entitlement_id: Optional[uuid.UUID] = None,
    ) -> "Entitlement":
        """
        Create a new Entitlement entity.

        Args:
            payment_event_ref: Idempotency key of the originating payment event
            email: Owner email address
            plan: Purchased plan
            code_hash: Hash of the activation code
            expires_at: Expiry (ignored for lifetime plans)
            billing_refs: Optional billing provider references
            status: Initial status
            entitlement_id: Optional UUID (generated if not provided)

        Returns:
            Entitlement entity instance
        """
        refs = billing_refs or BillingRefs()
        now = utcnow()
        return cls(
            id=entitlement_id or uuid.uuid4(),
            email=Email(email),
            plan=plan,
            code_hash=code_hash,
            status=status,
            expires_at=None if plan == Plan.LIFETIME else expires_at,
            payment_event_ref=payment_event_ref,
            external_session_ref=refs.session_ref,
            external_customer_ref=refs.customer_ref,
            external_subscription_ref=refs.subscription_ref,
            external_subscription_status=refs.subscription_status,
            external_period_end=refs.period_end,
            redeemed_device_id=None,
            redeemed_at=None,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_active(self) -> bool:
        return self.status == EntitlementStatus.ACTIVE

    @property
    def is_lifetime(self) -> bool:
        return self.plan == Plan.LIFETIME

    @property
    def is_bound(self) -> bool:
        return self.redeemed_device_id is not None

    def is_expired(self, current_time: Optional[datetime] = None) -> bool:
        """
        Check whether the stored expiry has elapsed.

        Lifetime entitlements and records without an expiry never expire.
        """
        if self.is_lifetime or self.expires_at is None:
            return False
        return self.expires_at < (current_time or utcnow())

    def subscription_status_view(self) -> str:
        """Subscription status reported to clients; lifetime is always active."""
        if self.is_lifetime or self.external_subscription_status is None:
            return SubscriptionStatus.ACTIVE.value
        return self.external_subscription_status.value

    def apply(self, patch: Dict[str, Any]) -> "Entitlement":
        """
        Return a copy with a patch applied.

        Args:
            patch: Mapping of mutable field names to new values

        Returns:
            New Entitlement instance
        """
        validate_patch(patch)
        return dataclasses.replace(self, updated_at=utcnow(), **patch)
