"""
Unit tests for the in-memory event bus and its handlers.
"""
import logging
import uuid

import pytest

from core.domain.events import EventHandler
from core.infrastructure.event_handlers import (
    AuditLogEventHandler,
    DeviceBindingMetricsHandler,
    register_event_handlers,
)
from core.infrastructure.events import InMemoryEventBus
from entitlements.domain.events import EntitlementCreated, EntitlementRedeemed


class CollectingHandler(EventHandler):
    def __init__(self):
        self.handled = []

    async def handle(self, event):
        self.handled.append(event)


class BrokenHandler(EventHandler):
    async def handle(self, event):
        raise RuntimeError("handler down")


def created_event():
    return EntitlementCreated(
        entitlement_id=uuid.uuid4(),
        email="buyer@example.com",
        plan="monthly",
        payment_event_ref="cs_1",
    )


def test_event_serialization():
    event = created_event()

    data = event.to_dict()

    assert data["event_type"] == "EntitlementCreated"
    assert data["aggregate_id"] == str(event.entitlement_id)
    assert data["entitlement_id"] == str(event.entitlement_id)
    assert data["payment_event_ref"] == "cs_1"
    assert set(event.payload()) == {"entitlement_id", "email", "plan", "payment_event_ref"}


@pytest.mark.asyncio
class TestInMemoryEventBus:
    """Tests for InMemoryEventBus."""

    async def test_dispatch_by_type(self):
        bus = InMemoryEventBus()
        handler = CollectingHandler()
        bus.subscribe(EntitlementCreated, handler)

        event = created_event()
        await bus.publish(event)
        await bus.publish(EntitlementRedeemed(entitlement_id=uuid.uuid4(), device_id="laptop"))

        assert handler.handled == [event]

    async def test_failing_handler_does_not_fail_publish(self):
        """Test one failing handler neither raises nor starves the others."""
        bus = InMemoryEventBus()
        handler = CollectingHandler()
        bus.subscribe(EntitlementCreated, BrokenHandler())
        bus.subscribe(EntitlementCreated, handler)

        await bus.publish(created_event())

        assert len(handler.handled) == 1

    async def test_resubscribing_same_handler_type_is_noop(self):
        bus = InMemoryEventBus()
        first, second = CollectingHandler(), CollectingHandler()
        bus.subscribe(EntitlementCreated, first)
        bus.subscribe(EntitlementCreated, second)

        await bus.publish(created_event())

        assert len(first.handled) == 1
        assert not second.handled


@pytest.mark.asyncio
class TestEventHandlers:
    async def test_audit_log_fields(self, caplog):
        event = created_event()

        with caplog.at_level(logging.INFO, logger="core.infrastructure.event_handlers"):
            await AuditLogEventHandler().handle(event)

        (record,) = caplog.records
        assert record.event_type == "EntitlementCreated"
        assert record.aggregate_id == event.aggregate_id
        assert record.event_plan == "monthly"

    async def test_register_is_idempotent(self):
        """Test registering twice subscribes each handler once."""
        bus = InMemoryEventBus()
        register_event_handlers(bus)
        register_event_handlers(bus)

        handlers = bus.handlers_for(EntitlementRedeemed)
        assert [type(h) for h in handlers] == [AuditLogEventHandler, DeviceBindingMetricsHandler]
