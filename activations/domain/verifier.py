"""
Activation verifier.

Decides whether an activation code may be used on a device:

1. Look the record up by hash, or by plaintext code (hashing it, then
   falling back to legacy plaintext storage).
2. Reconcile the record against its sources of truth in priority order.
   A record that is not active stays refused unless a subscription
   source shows the subscription valid again, which reactivates it.
3. Persist whatever the deciding source corrected, as one targeted update.
4. Bind the device on first use with a compare-and-set; any other
   device is refused for good.
"""

import dataclasses
import logging
from typing import Callable, List, Optional, Tuple

from accounts.ports.owner_repository import OwnerRepository
from activations.domain.reconciliation import (
    OwnerSubscriptionStrategy,
    ReconciliationStrategy,
    Rejected,
    Resolved,
    SessionStrategy,
    StoredExpiryStrategy,
    SubscriptionStrategy,
)
from activations.domain.verdict import Verdict, VerdictReason
from billing.application.services.billing_oracle import BillingOracle
from core.domain.events import EventBus
from core.domain.exceptions import EntitlementNotFoundError, InvalidDeviceIdError
from core.domain.value_objects import DeviceId, EntitlementStatus, utcnow
from entitlements.domain.activation_code import hash_activation_code, looks_like_code_hash
from entitlements.domain.entitlement import Entitlement
from entitlements.domain.events import EntitlementRedeemed, EntitlementResurrected
from entitlements.ports.entitlement_repository import EntitlementRepository

logger = logging.getLogger(__name__)

# Reasons a subscription source may report for a record that is not active
_SPECIFIC_INACTIVE_REASONS = frozenset({VerdictReason.EXPIRED, VerdictReason.SERVICE_DISABLED})


class ActivationVerifier:
    """Domain service verifying activation codes."""

    def __init__(
        self,
        entitlement_repository: EntitlementRepository,
        owner_repository: OwnerRepository,
        oracle: BillingOracle,
        event_bus: EventBus,
        clock: Callable = utcnow,
        strategies: Optional[List[ReconciliationStrategy]] = None,
    ):
        """Initialize verifier with its collaborators."""
        self.entitlement_repository = entitlement_repository
        self.event_bus = event_bus
        self.clock = clock
        self.strategies = strategies or [
            SubscriptionStrategy(oracle),
            OwnerSubscriptionStrategy(oracle, owner_repository),
            SessionStrategy(oracle),
            StoredExpiryStrategy(),
        ]

    async def lookup(self, code) -> Optional[Entitlement]:
        """
        Find the entitlement for a submitted code or code hash.

        Args:
            code: Plaintext activation code or its hex digest

        Returns:
            Entitlement or None
        """
        if not isinstance(code, str) or not code.strip():
            return None
        submitted = code.strip()

        if looks_like_code_hash(submitted):
            return await self.entitlement_repository.find_by_hash(submitted.lower())

        entitlement = await self.entitlement_repository.find_by_hash(hash_activation_code(submitted))
        if entitlement:
            return entitlement
        return await self.entitlement_repository.find_by_plain_code_fallback(submitted)

    async def reconcile(self, entitlement: Entitlement, now) -> Tuple[object, str]:
        """Run the strategy chain until one decides."""
        for strategy in self.strategies:
            outcome = await strategy.reconcile(entitlement, now)
            if outcome is not None:
                return outcome, strategy.source
        # The stored-expiry strategy always decides; this guards custom chains
        return Resolved("none"), "none"

    def _gate_status(self, entitlement: Entitlement, outcome):
        """
        Apply the status gate to a reconciliation outcome.

        Returns:
            Tuple of (outcome, status patch)
        """
        if entitlement.status == EntitlementStatus.ACTIVE:
            return outcome, {}

        if isinstance(outcome, Resolved):
            if outcome.restores_access:
                return outcome, {"status": EntitlementStatus.ACTIVE}
            if entitlement.status == EntitlementStatus.PENDING and outcome.source != "stored":
                return outcome, {"status": EntitlementStatus.ACTIVE}
            return Rejected(outcome.source, VerdictReason.REVOKED, outcome.patch), {}

        if outcome.source in (SubscriptionStrategy.source, OwnerSubscriptionStrategy.source) and (
            outcome.reason in _SPECIFIC_INACTIVE_REASONS
        ):
            return outcome, {}
        return Rejected(outcome.source, VerdictReason.REVOKED, outcome.patch), {}

    async def verify(self, code, device_id) -> Verdict:
        """
        Verify an activation code for a device.

        Args:
            code: Plaintext activation code or its hex digest
            device_id: Identifier of the redeeming device

        Returns:
            Verdict

        Raises:
            TransientProviderError: If the record store is unreachable
        """
        try:
            device = DeviceId(device_id)
        except InvalidDeviceIdError:
            return Verdict.failure(VerdictReason.DEVICE_REQUIRED)

        entitlement = await self.lookup(code)
        if entitlement is None:
            return Verdict.failure(VerdictReason.NOT_FOUND)

        now = self.clock()
        outcome, source = await self.reconcile(entitlement, now)
        outcome, status_patch = self._gate_status(entitlement, outcome)

        patch = {**outcome.patch, **status_patch}
        if patch:
            try:
                entitlement = await self.entitlement_repository.mutate(entitlement.id, patch)
            except EntitlementNotFoundError:
                return Verdict.failure(VerdictReason.NOT_FOUND)

        if status_patch:
            logger.info("Entitlement %s reactivated by %s", entitlement.id, source)
            await self.event_bus.publish(EntitlementResurrected(entitlement.id, reason=source))

        if isinstance(outcome, Rejected):
            verdict = Verdict.failure(outcome.reason, entitlement_id=entitlement.id)
        else:
            verdict = await self._bind(entitlement, device, now)
        return dataclasses.replace(verdict, source=source)

    async def _bind(self, entitlement: Entitlement, device: DeviceId, now) -> Verdict:
        """Bind the device on first use and enforce the binding afterwards."""
        if entitlement.redeemed_device_id is None:
            if await self.entitlement_repository.bind_device(entitlement.id, device.value, now):
                entitlement = dataclasses.replace(
                    entitlement, redeemed_device_id=device.value, redeemed_at=now
                )
                logger.info("Entitlement %s bound to device", entitlement.id)
                await self.event_bus.publish(EntitlementRedeemed(entitlement.id, device.value))
            else:
                # Another device won the race; judge against the stored binding
                entitlement = await self.entitlement_repository.find_by_id(entitlement.id)
                if entitlement is None:
                    return Verdict.failure(VerdictReason.NOT_FOUND)

        if entitlement.redeemed_device_id != device.value:
            return Verdict.failure(VerdictReason.DEVICE_MISMATCH, entitlement_id=entitlement.id)
        return Verdict.success(entitlement)
