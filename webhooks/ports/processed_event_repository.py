"""
Processed event ledger port (interface).
"""
from abc import ABC, abstractmethod


class ProcessedEventRepository(ABC):
    """Abstract ledger of handled billing events."""

    @abstractmethod
    async def has_processed(self, event_id: str) -> bool:
        """Whether the event was already handled."""
        pass

    @abstractmethod
    async def mark_processed(self, event_id: str, event_type: str) -> bool:
        """
        Record a handled event.

        Returns:
            True if this call recorded it, False if it was already recorded
        """
        pass
