"""
Owner domain entity.

The owner mirrors the billing provider's view of its customer and
subscription. Like entitlements, owners change through targeted patches.
"""

import dataclasses
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from core.domain.exceptions import ImmutableFieldError
from core.domain.value_objects import Email, Plan, SubscriptionStatus, utcnow

OWNER_MUTABLE_FIELDS = frozenset(
    {
        "name",
        "external_customer_ref",
        "external_subscription_ref",
        "plan",
        "subscription_status",
        "current_period_end",
        "is_active",
    }
)


def validate_owner_patch(patch: Dict[str, Any]) -> None:
    """Reject patches naming fields outside OWNER_MUTABLE_FIELDS."""
    forbidden = set(patch) - OWNER_MUTABLE_FIELDS
    if forbidden:
        raise ImmutableFieldError(f"Fields cannot be patched: {', '.join(sorted(forbidden))}")


@dataclass(frozen=True)
class Owner:
    """
    Owner domain entity.

    Represents a customer account with at most one billing relationship.
    """

    id: uuid.UUID
    email: Email
    name: str
    external_customer_ref: Optional[str]
    external_subscription_ref: Optional[str]
    plan: Optional[Plan]
    subscription_status: Optional[SubscriptionStatus]
    current_period_end: Optional[datetime]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    def __post_init__(self):
        """Validate owner entity."""
        if len(self.name or "") > 255:
            raise ValueError("Owner name too long")

    @classmethod
    def create(
        cls,
        email: str,
        name: str = "",
        external_customer_ref: Optional[str] = None,
        owner_id: Optional[uuid.UUID] = None,
    ) -> "Owner":
        """
        Create a new Owner entity.

        Args:
            email: Owner email address
            name: Display name
            external_customer_ref: Existing billing customer reference
            owner_id: Optional UUID (generated if not provided)

        Returns:
            Owner entity instance
        """
        now = utcnow()
        return cls(
            id=owner_id or uuid.uuid4(),
            email=Email(email),
            name=name or "",
            external_customer_ref=external_customer_ref,
            external_subscription_ref=None,
            plan=None,
            subscription_status=None,
            current_period_end=None,
            is_active=True,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_lifetime(self) -> bool:
        return self.plan == Plan.LIFETIME

    def has_unexpired_period(self, current_time: Optional[datetime] = None) -> bool:
        """Whether the mirrored period end is still in the future."""
        if self.current_period_end is None:
            return False
        return self.current_period_end > (current_time or utcnow())

    def apply(self, patch: Dict[str, Any]) -> "Owner":
        """Return a copy with a patch applied."""
        validate_owner_patch(patch)
        return dataclasses.replace(self, updated_at=utcnow(), **patch)
