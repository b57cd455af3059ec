"""
Subscription lifecycle domain events.
"""

import uuid
from datetime import datetime
from typing import Optional

from core.domain.events import DomainEvent
from core.domain.value_objects import utcnow


class LifecycleTransitionApplied(DomainEvent):
    """Event raised when an owner's lifecycle transition completes."""

    def __init__(
        self,
        owner_id: uuid.UUID,
        kind: str,
        status: str,
        affected: int = 0,
        occurred_at: Optional[datetime] = None,
    ):
        """
        Initialize LifecycleTransitionApplied event.

        Args:
            owner_id: Owner UUID
            kind: Transition kind
            status: Outcome status
            affected: Number of entitlement records changed
            occurred_at: When the event occurred
        """
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or utcnow(),
            aggregate_id=str(owner_id),
            event_type="LifecycleTransitionApplied",
        )
        self.owner_id = owner_id
        self.kind = kind
        self.status = status
        self.affected = affected


class SubscriptionSynced(DomainEvent):
    """Event raised when a billing webhook updated an owner's subscription mirror."""

    def __init__(
        self,
        subscription_ref: str,
        status: str,
        owner_id: Optional[uuid.UUID] = None,
        occurred_at: Optional[datetime] = None,
    ):
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or utcnow(),
            aggregate_id=subscription_ref,
            event_type="SubscriptionSynced",
        )
        self.subscription_ref = subscription_ref
        self.status = status
        self.owner_id = owner_id
