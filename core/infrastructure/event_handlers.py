"""
Event handlers for domain events.

These handlers process domain events for side effects like audit
logging and metrics. They run inside the publishing request and a
failure never undoes the transition that published the event.
"""

import logging

from core.domain.events import DomainEvent, EventHandler
from core.metrics import device_bindings_total
from entitlements.domain.events import (
    EntitlementCreated,
    EntitlementDeleted,
    EntitlementRedeemed,
    EntitlementResurrected,
    EntitlementRevoked,
)
from subscriptions.domain.events import LifecycleTransitionApplied, SubscriptionSynced

logger = logging.getLogger(__name__)

AUDITED_EVENTS = (
    EntitlementCreated,
    EntitlementRedeemed,
    EntitlementResurrected,
    EntitlementRevoked,
    EntitlementDeleted,
    LifecycleTransitionApplied,
    SubscriptionSynced,
)

ENVELOPE_FIELDS = ("event_id", "event_type", "aggregate_id", "occurred_at")
AUDITED_PAYLOAD_FIELDS = frozenset({"plan", "reason", "kind", "status", "affected", "payment_event_ref"})


class AuditLogEventHandler(EventHandler):
    """
    Event handler for audit logging.

    Writes every entitlement and lifecycle event as a structured log line.
    """

    async def handle(self, event: DomainEvent) -> None:
        """
        Handle domain event for audit logging.

        Args:
            event: Domain event to log
        """
        data = event.to_dict()
        extra = {key: data.pop(key) for key in ENVELOPE_FIELDS}
        # Emails and device ids stay out of the audit stream
        extra.update(
            {
                f"event_{key}": str(value)
                for key, value in data.items()
                if key in AUDITED_PAYLOAD_FIELDS and value is not None
            }
        )

        logger.info("Audit log: %s - %s", event.event_type, event.aggregate_id, extra=extra)


class DeviceBindingMetricsHandler(EventHandler):
    """Counts first-use device bindings."""

    async def handle(self, event: DomainEvent) -> None:
        device_bindings_total.inc()


def register_event_handlers(bus=None):
    """Register all event handlers with the event bus."""
    if bus is None:
        from core.infrastructure.events import event_bus as bus

    audit_handler = AuditLogEventHandler()
    for event_type in AUDITED_EVENTS:
        bus.subscribe(event_type, audit_handler)

    bus.subscribe(EntitlementRedeemed, DeviceBindingMetricsHandler())

    logger.info("Event handlers registered")
