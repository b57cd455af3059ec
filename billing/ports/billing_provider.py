"""
Billing provider port (interface).

The capabilities the service consumes from the external payment
provider. Adapters return the narrow snapshots from
billing.domain.snapshots, never provider-native objects.

Every method may raise:
    TransientProviderError: provider unreachable or failing
    ProviderResourceMissingError: referenced object does not exist
    BillingProviderError: provider rejected the request
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional, Union

from billing.domain.snapshots import (
    CheckoutRequest,
    CheckoutSnapshot,
    CustomerSnapshot,
    PriceSnapshot,
    SessionSnapshot,
    SubscriptionSnapshot,
)
from plans.domain.plan import PlanDefinition


class BillingProvider(ABC):
    """Abstract billing provider."""

    @abstractmethod
    async def create_customer(
        self, email: str, name: str = "", metadata: Optional[Dict[str, str]] = None
    ) -> CustomerSnapshot:
        """Create a billing customer."""
        pass

    @abstractmethod
    async def retrieve_customer(self, customer_ref: str) -> CustomerSnapshot:
        """Retrieve a billing customer."""
        pass

    @abstractmethod
    async def update_customer_metadata(
        self, customer_ref: str, metadata: Dict[str, str]
    ) -> CustomerSnapshot:
        """Merge metadata into a billing customer."""
        pass

    @abstractmethod
    async def find_or_create_price(self, plan: PlanDefinition) -> PriceSnapshot:
        """
        Find or create the priced offering for a plan.

        Recurring plans get a monthly recurring price, the others a
        one-time price.
        """
        pass

    @abstractmethod
    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSnapshot:
        """Start a checkout session."""
        pass

    @abstractmethod
    async def retrieve_session(self, session_ref: str) -> SessionSnapshot:
        """Retrieve a checkout session."""
        pass

    @abstractmethod
    async def retrieve_subscription(self, subscription_ref: str) -> SubscriptionSnapshot:
        """Retrieve a subscription."""
        pass

    @abstractmethod
    async def update_subscription(
        self,
        subscription_ref: str,
        metadata: Optional[Dict[str, str]] = None,
        cancel_at_period_end: Optional[bool] = None,
        trial_end: Optional[Union[datetime, str]] = None,
    ) -> SubscriptionSnapshot:
        """
        Update a subscription.

        Only the arguments that are not None are sent. `trial_end` accepts
        "now" to end a trial immediately.
        """
        pass

    @abstractmethod
    async def cancel_subscription(self, subscription_ref: str) -> SubscriptionSnapshot:
        """Cancel a subscription immediately."""
        pass
