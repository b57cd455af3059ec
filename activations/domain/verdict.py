"""
Verification verdicts.

"Not entitled" is an expected outcome, so verification never raises for
it: every attempt ends in a Verdict whose failure reason is a stable
string clients can branch on.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from core.domain.value_objects import Plan


class VerdictReason(Enum):
    """Failure reasons of a verification attempt."""

    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    SERVICE_DISABLED = "service_disabled"
    EXPIRED = "expired"
    DEVICE_MISMATCH = "device_mismatch"
    DEVICE_REQUIRED = "device_required"
    PAYMENT_INCOMPLETE = "payment_incomplete"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Verdict:
    """Outcome of verifying an activation code on a device."""

    ok: bool
    reason: Optional[VerdictReason] = None
    entitlement_id: Optional[uuid.UUID] = None
    plan: Optional[Plan] = None
    expires_at: Optional[datetime] = None
    device_id: Optional[str] = None
    redeemed_at: Optional[datetime] = None
    subscription_status: Optional[str] = None
    # Reconciliation source that decided; not part of the response
    source: Optional[str] = None

    @classmethod
    def failure(cls, reason: VerdictReason, entitlement_id: Optional[uuid.UUID] = None) -> "Verdict":
        return cls(ok=False, reason=reason, entitlement_id=entitlement_id)

    @classmethod
    def success(cls, entitlement) -> "Verdict":
        """Build a successful verdict from a bound, valid entitlement."""
        return cls(
            ok=True,
            entitlement_id=entitlement.id,
            plan=entitlement.plan,
            expires_at=None if entitlement.is_lifetime else entitlement.expires_at,
            device_id=entitlement.redeemed_device_id,
            redeemed_at=entitlement.redeemed_at,
            subscription_status=entitlement.subscription_status_view(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses."""
        if not self.ok:
            return {"ok": False, "reason": self.reason.value}
        return {
            "ok": True,
            "plan": self.plan.value,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "device_id": self.device_id,
            "redeemed_at": self.redeemed_at.isoformat() if self.redeemed_at else None,
            "subscription_status": self.subscription_status,
        }
