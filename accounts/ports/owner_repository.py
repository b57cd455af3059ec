"""
Owner repository port (interface).
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import uuid

from accounts.domain.owner import Owner


class OwnerRepository(ABC):
    """
    Abstract repository for Owner entities.

    This is a port in hexagonal architecture - it defines
    what operations are available, not how they're implemented.
    """

    @abstractmethod
    async def save(self, owner: Owner) -> Owner:
        """
        Save a new owner entity.

        Args:
            owner: Owner entity to save

        Returns:
            Saved owner entity
        """
        pass

    @abstractmethod
    async def find_by_id(self, owner_id: uuid.UUID) -> Optional[Owner]:
        """Find an owner by ID."""
        pass

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[Owner]:
        """Find an owner by email address."""
        pass

    @abstractmethod
    async def find_by_customer_ref(self, customer_ref: str) -> Optional[Owner]:
        """Find an owner by billing customer reference."""
        pass

    @abstractmethod
    async def find_by_subscription_ref(self, subscription_ref: str) -> Optional[Owner]:
        """Find an owner by billing subscription reference."""
        pass

    @abstractmethod
    async def mutate(self, owner_id: uuid.UUID, patch: Dict[str, Any]) -> Owner:
        """
        Apply a targeted field update.

        Args:
            owner_id: Owner UUID
            patch: Mapping of mutable field names to new values

        Returns:
            Refreshed owner

        Raises:
            OwnerNotFoundError: If the owner no longer exists
        """
        pass
