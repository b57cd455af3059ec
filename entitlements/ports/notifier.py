"""
Activation notifier port (interface).

Delivers an activation notice to the customer. Delivery is
fire-and-forget from the caller's side.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class ActivationNotice:
    """Message content for an activation notice."""

    recipient: str
    code_reference: str
    plan_label: str
    expires_at: Optional[datetime]


class ActivationNotifier(ABC):
    """Abstract outbound notifier."""

    @abstractmethod
    async def notify(self, notice: ActivationNotice) -> None:
        """
        Send an activation notice.

        Args:
            notice: Notice to deliver
        """
        pass
