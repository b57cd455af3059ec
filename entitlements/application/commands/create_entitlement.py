"""
CreateEntitlementCommand.

Command to create the entitlement record for a payment event.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.domain.value_objects import EntitlementStatus
from entitlements.domain.entitlement import BillingRefs


@dataclass
class CreateEntitlementCommand:
    """Command to create an entitlement."""

    payment_event_ref: str
    email: str
    plan_id: str
    billing_refs: Optional[BillingRefs] = None
    status: EntitlementStatus = EntitlementStatus.ACTIVE
    # Authoritative expiry from the billing provider, overrides the plan default
    expires_at: Optional[datetime] = None
