"""
Entitlement domain events.

Domain events represent something that happened to an entitlement record.
"""

import uuid
from datetime import datetime
from typing import Optional

from core.domain.events import DomainEvent
from core.domain.value_objects import utcnow


class EntitlementCreated(DomainEvent):
    """Event raised when an entitlement record is created."""

    def __init__(
        self,
        entitlement_id: uuid.UUID,
        email: str,
        plan: str,
        payment_event_ref: str,
        occurred_at: Optional[datetime] = None,
    ):
        """
        Initialize EntitlementCreated event.

        Args:
            entitlement_id: Entitlement UUID
            email: Owner email
            plan: Plan identifier
            payment_event_ref: Idempotency key of the payment event
            occurred_at: When the event occurred
        """
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or utcnow(),
            aggregate_id=str(entitlement_id),
            event_type="EntitlementCreated",
        )
        self.entitlement_id = entitlement_id
        self.email = email
        self.plan = plan
        self.payment_event_ref = payment_event_ref


class EntitlementRedeemed(DomainEvent):
    """Event raised when an entitlement is bound to its first device."""

    def __init__(
        self,
        entitlement_id: uuid.UUID,
        device_id: str,
        occurred_at: Optional[datetime] = None,
    ):
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or utcnow(),
            aggregate_id=str(entitlement_id),
            event_type="EntitlementRedeemed",
        )
        self.entitlement_id = entitlement_id
        self.device_id = device_id


class EntitlementResurrected(DomainEvent):
    """Event raised when a revoked entitlement becomes active again."""

    def __init__(
        self,
        entitlement_id: uuid.UUID,
        reason: str,
        occurred_at: Optional[datetime] = None,
    ):
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or utcnow(),
            aggregate_id=str(entitlement_id),
            event_type="EntitlementResurrected",
        )
        self.entitlement_id = entitlement_id
        self.reason = reason


class EntitlementRevoked(DomainEvent):
    """Event raised when an entitlement is revoked."""

    def __init__(
        self,
        entitlement_id: uuid.UUID,
        reason: str,
        occurred_at: Optional[datetime] = None,
    ):
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or utcnow(),
            aggregate_id=str(entitlement_id),
            event_type="EntitlementRevoked",
        )
        self.entitlement_id = entitlement_id
        self.reason = reason


class EntitlementDeleted(DomainEvent):
    """Event raised when an entitlement record is deleted."""

    def __init__(
        self,
        entitlement_id: uuid.UUID,
        occurred_at: Optional[datetime] = None,
    ):
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or utcnow(),
            aggregate_id=str(entitlement_id),
            event_type="EntitlementDeleted",
        )
        self.entitlement_id = entitlement_id
