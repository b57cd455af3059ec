"""
Billing snapshots.

Narrow, provider-independent views of the billing provider's objects.
They declare exactly the fields the entitlement core depends on; the
provider adapter is the only place that reads provider payloads.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from core.domain.value_objects import Plan, SubscriptionStatus

SERVICE_ENABLED_KEY = "serviceEnabled"


def service_enabled_from_metadata(metadata: Optional[Dict[str, str]]) -> bool:
    """The service flag is on unless metadata explicitly says "false"."""
    return str((metadata or {}).get(SERVICE_ENABLED_KEY, "true")).lower() != "false"


def plan_hint_from(value) -> Optional[Plan]:
    """Parse a plan hint, ignoring values that are not plan identifiers."""
    if not value:
        return None
    try:
        return Plan(str(value).strip().lower())
    except ValueError:
        return None


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """Authoritative state of a recurring subscription."""

    subscription_ref: str
    status: SubscriptionStatus
    customer_ref: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    plan_hint: Optional[Plan] = None
    created_at: Optional[datetime] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def service_enabled(self) -> bool:
        return service_enabled_from_metadata(self.metadata)

    @property
    def is_valid(self) -> bool:
        return self.status.is_valid


@dataclass(frozen=True)
class SessionSnapshot:
    """State of a checkout session."""

    session_ref: str
    paid: bool
    created_at: Optional[datetime] = None
    plan_hint: Optional[Plan] = None
    customer_email: Optional[str] = None
    customer_ref: Optional[str] = None
    subscription_ref: Optional[str] = None
    mode: str = "payment"
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CustomerSnapshot:
    """Billing customer."""

    customer_ref: str
    email: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def service_enabled(self) -> bool:
        return service_enabled_from_metadata(self.metadata)


@dataclass(frozen=True)
class PriceSnapshot:
    """Priced offering for a plan."""

    price_ref: str
    product_ref: Optional[str]
    unit_amount: int
    recurring: bool


@dataclass(frozen=True)
class CheckoutRequest:
    """Parameters of a checkout session to start."""

    mode: str
    success_url: str
    cancel_url: str
    customer_ref: Optional[str] = None
    customer_email: Optional[str] = None
    price_ref: Optional[str] = None
    amount: Optional[int] = None
    product_name: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    subscription_metadata: Dict[str, str] = field(default_factory=dict)
    trial_period_days: Optional[int] = None

    def __post_init__(self):
        """Validate checkout request."""
        if self.mode not in ("payment", "subscription"):
            raise ValueError(f"Invalid checkout mode: {self.mode}")
        if not self.price_ref and not self.amount:
            raise ValueError("Checkout needs a price reference or an amount")


@dataclass(frozen=True)
class CheckoutSnapshot:
    """A started checkout session."""

    session_ref: str
    url: Optional[str]


@dataclass(frozen=True)
class BillingEvent:
    """A verified billing provider webhook event."""

    event_id: str
    event_type: str
    object_id: Optional[str]
    subscription_ref: Optional[str] = None
