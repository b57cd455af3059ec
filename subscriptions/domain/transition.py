"""
Lifecycle transitions and their outcomes.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from core.domain.value_objects import Plan, SubscriptionStatus


class TransitionKind(Enum):
    """Lifecycle transitions an owner can request."""

    CHECKOUT = "checkout"
    CHANGE_PLAN = "change_plan"
    CANCEL = "cancel"
    REVOKE = "revoke"
    REACTIVATE = "reactivate"
    STOP_SERVICE = "stop_service"
    START_SERVICE = "start_service"
    DELETE = "delete"

    def __str__(self) -> str:
        return self.value


class OutcomeStatus(Enum):
    """How far a transition got."""

    COMPLETED = "completed"
    CHECKOUT_REQUIRED = "checkout_required"
    SCHEDULED = "scheduled"


@dataclass(frozen=True)
class LifecycleOutcome:
    """Result of a lifecycle transition."""

    kind: TransitionKind
    owner_id: uuid.UUID
    status: OutcomeStatus
    message: str = ""
    affected: int = 0
    plan: Optional[Plan] = None
    subscription_status: Optional[SubscriptionStatus] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None
    checkout_url: Optional[str] = None
    session_ref: Optional[str] = None
    price_difference: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses."""
        return {
            "kind": self.kind.value,
            "owner_id": str(self.owner_id),
            "status": self.status.value,
            "message": self.message,
            "affected": self.affected,
            "plan": self.plan.value if self.plan else None,
            "subscription_status": (
                self.subscription_status.value if self.subscription_status else None
            ),
            "current_period_end": (
                self.current_period_end.isoformat() if self.current_period_end else None
            ),
            "cancel_at_period_end": self.cancel_at_period_end,
            "checkout_url": self.checkout_url,
            "session_ref": self.session_ref,
            "price_difference": (
                str(self.price_difference) if self.price_difference is not None else None
            ),
        }


@dataclass(frozen=True)
class SubscriptionStatusView:
    """An owner's billing relationship as shown to the owner."""

    owner_id: uuid.UUID
    plan: Optional[Plan]
    status: Optional[SubscriptionStatus]
    current_period_end: Optional[datetime]
    subscription_ref: Optional[str]
    service_enabled: bool
    cancel_at_period_end: Optional[bool] = None
    current_period_start: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": str(self.owner_id),
            "plan": self.plan.value if self.plan else None,
            "status": self.status.value if self.status else None,
            "current_period_end": (
                self.current_period_end.isoformat() if self.current_period_end else None
            ),
            "current_period_start": (
                self.current_period_start.isoformat() if self.current_period_start else None
            ),
            "subscription_ref": self.subscription_ref,
            "service_enabled": self.service_enabled,
            "cancel_at_period_end": self.cancel_at_period_end,
        }
