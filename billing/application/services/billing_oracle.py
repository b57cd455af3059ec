"""
Billing state oracle.

Read-only view of the billing provider used while verifying activation
codes. Every call is bounded by a timeout; failures surface as billing
exceptions so that the verifier can fall back to the next source.
"""

import asyncio
import logging
import time
from typing import Awaitable, Optional, TypeVar

from billing.domain.snapshots import SessionSnapshot, SubscriptionSnapshot
from billing.ports.billing_provider import BillingProvider
from core.domain.exceptions import BillingProviderError, NoBillingConfigError, TransientProviderError
from core.metrics import billing_oracle_duration_seconds, billing_oracle_errors_total

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 10.0


class BillingOracle:
    """Bounded, read-only access to authoritative billing state."""

    def __init__(self, provider: Optional[BillingProvider], timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize oracle.

        Args:
            provider: Billing provider, or None when billing is not configured
            timeout: Upper bound in seconds for each call
        """
        self.provider = provider
        self.timeout = timeout

    @property
    def is_available(self) -> bool:
        return self.provider is not None

    async def _read(self, operation: str, call: Awaitable[T]) -> T:
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            billing_oracle_errors_total.labels(operation=operation, error_type="timeout").inc()
            logger.warning("Billing oracle %s timed out after %ss", operation, self.timeout)
            raise TransientProviderError(f"Billing provider timed out during {operation}") from e
        except BillingProviderError as e:
            billing_oracle_errors_total.labels(operation=operation, error_type=e.code).inc()
            raise
        finally:
            billing_oracle_duration_seconds.labels(operation=operation).observe(
                time.perf_counter() - start
            )

    def _require_provider(self) -> BillingProvider:
        if self.provider is None:
            raise NoBillingConfigError()
        return self.provider

    async def get_subscription_status(self, subscription_ref: str) -> SubscriptionSnapshot:
        """
        Fetch the authoritative state of a subscription.

        Raises:
            NoBillingConfigError: If billing is not configured
            TransientProviderError: If the provider is unreachable or slow
            ProviderResourceMissingError: If the subscription does not exist
        """
        provider = self._require_provider()
        return await self._read(
            "subscription_status", provider.retrieve_subscription(subscription_ref)
        )

    async def get_session_status(self, session_ref: str) -> SessionSnapshot:
        """Fetch payment completion and metadata of a checkout session."""
        provider = self._require_provider()
        return await self._read("session_status", provider.retrieve_session(session_ref))

    async def get_customer_service_flag(self, customer_ref: str) -> bool:
        """Fetch the service-enabled flag stored on a billing customer."""
        provider = self._require_provider()
        customer = await self._read("customer_service_flag", provider.retrieve_customer(customer_ref))
        return customer.service_enabled
