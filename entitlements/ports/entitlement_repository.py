"""
Entitlement repository port (interface).

This defines the contract for entitlement record persistence.
Implementations are in the infrastructure layer and must provide
unique indexes on the code hash and payment event reference, and an
atomic conditional update for device binding.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import uuid

from entitlements.domain.entitlement import Entitlement
from entitlements.domain.group import EntitlementGroup


class EntitlementRepository(ABC):
    """
    Abstract repository for Entitlement entities.

    This is a port in hexagonal architecture - it defines
    what operations are available, not how they're implemented.
    """

    @abstractmethod
    async def create_if_absent(self, entitlement: Entitlement) -> Tuple[Entitlement, bool]:
        """
        Create an entitlement unless one exists for its payment event.

        Concurrent callers for the same payment event collapse to a
        single record: the first writer wins and the others receive the
        stored record unchanged.

        Args:
            entitlement: Entitlement to create

        Returns:
            Tuple of (stored entitlement, created flag)

        Raises:
            DuplicateActivationCodeError: If the code hash is already taken
        """
        pass

    @abstractmethod
    async def find_by_id(self, entitlement_id: uuid.UUID) -> Optional[Entitlement]:
        """Find an entitlement by ID."""
        pass

    @abstractmethod
    async def find_by_hash(self, code_hash: str) -> Optional[Entitlement]:
        """
        Find an entitlement by activation code hash.

        Args:
            code_hash: Hex digest of the activation code

        Returns:
            Entitlement entity or None if not found
        """
        pass

    @abstractmethod
    async def find_by_plain_code_fallback(self, code: str) -> Optional[Entitlement]:
        """
        Find a legacy record keyed by its plaintext code.

        On a hit the record is migrated in place: its hash is stored and
        the plaintext is cleared, so later lookups go through the hash.

        Args:
            code: Normalized plaintext activation code

        Returns:
            Migrated entitlement or None if not found
        """
        pass

    @abstractmethod
    async def find_by_payment_event_ref(self, payment_event_ref: str) -> Optional[Entitlement]:
        """Find the entitlement created for a payment event."""
        pass

    @abstractmethod
    async def find_all_for_customer_or_subscription(
        self,
        customer_ref: Optional[str],
        subscription_ref: Optional[str],
        email: Optional[str],
    ) -> List[Entitlement]:
        """
        Find entitlements by subscription, or by customer and email together.

        Args:
            customer_ref: Billing customer reference
            subscription_ref: Billing subscription reference
            email: Owner email

        Returns:
            List of Entitlement entities
        """
        pass

    async def find_all_for_group(self, group: EntitlementGroup) -> List[Entitlement]:
        """Find every entitlement in an owner's entitlement group."""
        if group.is_empty:
            return []
        return await self.find_all_for_customer_or_subscription(
            customer_ref=group.customer_ref,
            subscription_ref=group.subscription_ref,
            email=group.email,
        )

    @abstractmethod
    async def find_active_subscription_lapsed(self, current_time: datetime) -> List[Entitlement]:
        """Find active subscription-linked entitlements whose stored expiry elapsed."""
        pass

    @abstractmethod
    async def mutate(self, entitlement_id: uuid.UUID, patch: Dict[str, Any]) -> Entitlement:
        """
        Apply a targeted field update.

        Only the patched fields are written, so concurrent writers
        touching other fields do not overwrite each other.

        Args:
            entitlement_id: Entitlement UUID
            patch: Mapping of mutable field names to new values

        Returns:
            Refreshed entitlement

        Raises:
            EntitlementNotFoundError: If the record no longer exists
            ImmutableFieldError: If the patch touches an immutable field
        """
        pass

    @abstractmethod
    async def bind_device(
        self, entitlement_id: uuid.UUID, device_id: str, redeemed_at: datetime
    ) -> bool:
        """
        Bind a device iff no device is bound yet.

        Args:
            entitlement_id: Entitlement UUID
            device_id: Device identifier
            redeemed_at: Redemption timestamp

        Returns:
            True if this call bound the device, False if one was already bound
        """
        pass

    @abstractmethod
    async def delete(self, entitlement_id: uuid.UUID) -> bool:
        """Delete an entitlement. Returns True if a record was removed."""
        pass
