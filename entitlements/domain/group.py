"""
Entitlement group.

The set of entitlement records a lifecycle transition cascades to: every
record tied to an owner's subscription, or to the owner's customer and
email together.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class EntitlementGroup:
    """Billing identity whose entitlements move together."""

    email: Optional[str]
    customer_ref: Optional[str]
    subscription_ref: Optional[str]

    @classmethod
    def for_owner(cls, owner) -> "EntitlementGroup":
        """Build the group for an owner account."""
        return cls(
            email=str(owner.email) if owner.email else None,
            customer_ref=owner.external_customer_ref,
            subscription_ref=owner.external_subscription_ref,
        )

    @property
    def is_empty(self) -> bool:
        """Whether no reference can match any record."""
        return not self.subscription_ref and not (self.customer_ref and self.email)
