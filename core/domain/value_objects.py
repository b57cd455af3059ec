"""
Value objects for the domain.

Value objects are immutable objects that are defined by their attributes
rather than their identity. They have no identity and are compared by value.
"""
import re
from abc import ABC
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from core.domain.exceptions import InvalidDeviceIdError, InvalidEmailError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ValueObject(ABC):
    """
    Base class for value objects.

    Value objects are immutable and compared by value.
    """

    def __eq__(self, other):
        """Compare value objects by their attributes."""
        if not isinstance(other, self.__class__):
            return False
        return self.__dict__ == other.__dict__

    def __hash__(self):
        """Make value objects hashable."""
        return hash(tuple(sorted(self.__dict__.items())))


@dataclass(frozen=True)
class Email(ValueObject):
    """Email value object, normalized to trimmed lowercase."""

    value: str

    def __post_init__(self):
        """Normalize and validate email format."""
        if not isinstance(self.value, str):
            raise InvalidEmailError(f"Invalid email address: {self.value}")
        normalized = self.value.strip().lower()
        if not EMAIL_PATTERN.match(normalized):
            raise InvalidEmailError(f"Invalid email address: {self.value}")
        object.__setattr__(self, "value", normalized)

    def __str__(self) -> str:
        """Return email as string."""
        return self.value


@dataclass(frozen=True)
class DeviceId(ValueObject):
    """Identifier of the device redeeming an activation code."""

    value: str

    def __post_init__(self):
        """Validate device identifier."""
        if not isinstance(self.value, str) or not self.value.strip():
            raise InvalidDeviceIdError("Device identifier cannot be empty")
        if len(self.value) > 255:
            raise InvalidDeviceIdError("Device identifier too long")
        object.__setattr__(self, "value", self.value.strip())

    def __str__(self) -> str:
        """Return identifier as string."""
        return self.value


class Plan(Enum):
    """Plan identifier value object."""

    MONTHLY = "monthly"
    LIFETIME = "lifetime"

    def __str__(self) -> str:
        """Return plan as string."""
        return self.value


class EntitlementStatus(Enum):
    """Entitlement record status value object."""

    PENDING = "pending"
    ACTIVE = "active"
    REVOKED = "revoked"

    def __str__(self) -> str:
        """Return status as string."""
        return self.value


class SubscriptionStatus(Enum):
    """Subscription status as reported by the billing provider."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"
    UNKNOWN = "unknown"

    @classmethod
    def from_provider(cls, raw) -> "SubscriptionStatus":
        """Map a provider status string, falling back to UNKNOWN."""
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_valid(self) -> bool:
        """Whether the status grants access."""
        return self in VALID_SUBSCRIPTION_STATUSES

    def __str__(self) -> str:
        """Return status as string."""
        return self.value


VALID_SUBSCRIPTION_STATUSES = frozenset(
    {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING, SubscriptionStatus.PAST_DUE}
)
