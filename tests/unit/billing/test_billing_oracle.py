"""
Unit tests for BillingOracle.
"""
import pytest

from billing.application.services.billing_oracle import BillingOracle
from core.domain.exceptions import (
    NoBillingConfigError,
    ProviderResourceMissingError,
    TransientProviderError,
)
from core.domain.value_objects import SubscriptionStatus


@pytest.mark.asyncio
class TestBillingOracle:
    """Tests for BillingOracle."""

    async def test_subscription_status(self, oracle, billing_provider):
        billing_provider.add_subscription("sub_1", status=SubscriptionStatus.PAST_DUE)

        snapshot = await oracle.get_subscription_status("sub_1")

        assert snapshot.status == SubscriptionStatus.PAST_DUE
        assert snapshot.is_valid

    async def test_timeout_is_transient(self, billing_provider):
        """Test a slow provider surfaces as a transient error."""
        billing_provider.add_session("cs_1")
        billing_provider.delay = 0.2
        oracle = BillingOracle(billing_provider, timeout=0.01)

        with pytest.raises(TransientProviderError):
            await oracle.get_session_status("cs_1")

    async def test_missing_resource_propagates(self, oracle):
        with pytest.raises(ProviderResourceMissingError):
            await oracle.get_subscription_status("sub_missing")

    async def test_not_configured(self):
        oracle = BillingOracle(None)
        assert not oracle.is_available
        with pytest.raises(NoBillingConfigError):
            await oracle.get_customer_service_flag("cus_1")

    async def test_customer_service_flag(self, oracle, billing_provider):
        billing_provider.add_customer("cus_on")
        billing_provider.add_customer("cus_off", metadata={"serviceEnabled": "false"})

        assert await oracle.get_customer_service_flag("cus_on") is True
        assert await oracle.get_customer_service_flag("cus_off") is False
