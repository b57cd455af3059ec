"""
Domain events base classes.

Domain events record what happened to an entitlement or an owner's
billing relationship. Handlers subscribe to them for audit logging and
other side effects that must not block the transition itself.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Dict
from uuid import UUID, uuid4

from core.domain.value_objects import utcnow


@dataclass(frozen=True)
class DomainEvent(ABC):
    """
    Base class for all domain events.

    The envelope (id, time, aggregate, type) is declared here; subclasses
    set their payload as plain attributes after calling the base
    initializer.
    """

    event_id: UUID
    occurred_at: datetime
    aggregate_id: str
    event_type: str

    def __init_subclass__(cls, **kwargs):
        """Default event_type to the subclass name."""
        super().__init_subclass__(**kwargs)
        cls.event_type = cls.__name__

    def __post_init__(self):
        object.__setattr__(self, "event_id", getattr(self, "event_id", None) or uuid4())
        object.__setattr__(self, "occurred_at", getattr(self, "occurred_at", None) or utcnow())

    def payload(self) -> Dict[str, Any]:
        """Attributes a subclass adds on top of the envelope."""
        envelope = {field.name for field in fields(DomainEvent)}
        return {
            name: value
            for name, value in vars(self).items()
            if name not in envelope and not name.startswith("_")
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to a JSON-friendly dictionary."""
        data = {
            "event_id": str(self.event_id),
            "occurred_at": self.occurred_at.isoformat(),
            "aggregate_id": self.aggregate_id,
            "event_type": self.event_type,
        }
        for name, value in self.payload().items():
            if isinstance(value, datetime):
                value = value.isoformat()
            elif value is not None and not isinstance(value, (bool, int, float)):
                value = str(value)
            data[name] = value
        return data


class EventHandler(ABC):
    """Base class for event handlers."""

    @abstractmethod
    async def handle(self, event: DomainEvent) -> None:
        """
        Handle a domain event.

        Args:
            event: The domain event to handle
        """


class EventBus(ABC):
    """Publishes domain events to the handlers subscribed to their type."""

    @abstractmethod
    async def publish(self, event: DomainEvent) -> None:
        """Deliver an event to its handlers."""

    @abstractmethod
    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        """
        Subscribe a handler to an event type.

        Args:
            event_type: DomainEvent subclass
            handler: Handler invoked for each published event of that type
        """
