"""
In-memory event bus implementation.

Events are dispatched to their handlers inside the publishing request.
A failing handler is logged and counted and never fails the transition
that published the event.
"""

import asyncio
import logging
from typing import Dict, List, Type

from core.domain.events import DomainEvent, EventBus, EventHandler
from core.metrics import event_handler_failures_total

logger = logging.getLogger(__name__)


class InMemoryEventBus(EventBus):
    """
    In-memory event bus.

    Subscriptions are keyed by exact event class. A handler class is
    subscribed at most once per event type, so repeated registration
    (tests, autoreload) does not duplicate side effects.
    """

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = {}

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        handlers = self._handlers.setdefault(event_type, [])
        if any(type(existing) is type(handler) for existing in handlers):
            return
        handlers.append(handler)
        logger.debug("Subscribed %s to %s", type(handler).__name__, event_type.__name__)

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[EventHandler]:
        return list(self._handlers.get(event_type, []))

    def clear(self) -> None:
        """Remove every subscription."""
        self._handlers.clear()

    async def publish(self, event: DomainEvent) -> None:
        """
        Publish a domain event to every handler of its type concurrently.

        Args:
            event: The domain event to publish
        """
        handlers = self.handlers_for(type(event))
        if not handlers:
            logger.debug("No handlers registered for %s", event.event_type)
            return

        await asyncio.gather(*(self._deliver(handler, event) for handler in handlers))

    async def _deliver(self, handler: EventHandler, event: DomainEvent) -> None:
        try:
            await handler.handle(event)
        except Exception as e:  # pylint: disable=broad-exception-caught
            event_handler_failures_total.labels(
                event_type=event.event_type, handler=type(handler).__name__
            ).inc()
            logger.error(
                "Error handling %s with %s: %s",
                event.event_type,
                type(handler).__name__,
                e,
                exc_info=True,
            )


# Process-wide bus used by views, tasks and commands
event_bus = InMemoryEventBus()
