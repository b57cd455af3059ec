"""
Upgrade proration policies.

A monthly owner upgrading to lifetime pays the lifetime price minus the
value left in the current billing period. The formula is a policy so
deployments can swap it through the ENTITLEMENT_PRORATION_POLICY setting.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

CENT = Decimal("0.01")


@dataclass(frozen=True)
class UpgradeQuote:
    """Price of an upgrade."""

    remaining_value: Decimal
    price_difference: Decimal

    @property
    def amount_cents(self) -> int:
        """Amount to charge in cents, never negative."""
        cents = (self.price_difference * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return max(0, int(cents))

    @property
    def is_free(self) -> bool:
        """Whether the remaining value already covers the upgrade."""
        return self.amount_cents == 0


class ProrationPolicy(ABC):
    """Computes what an upgrade from monthly to lifetime costs."""

    @abstractmethod
    def quote(
        self,
        monthly_price: Decimal,
        lifetime_price: Decimal,
        period_start: Optional[datetime],
        period_end: Optional[datetime],
        now: datetime,
    ) -> UpgradeQuote:
        """
        Quote an upgrade.

        Args:
            monthly_price: Current monthly plan price
            lifetime_price: Current lifetime plan price
            period_start: Start of the subscription's current period
            period_end: End of the subscription's current period
            now: Time of the upgrade

        Returns:
            UpgradeQuote
        """
        pass


class LinearRemainingValuePolicy(ProrationPolicy):
    """Credit the unused share of the current period at the monthly price."""

    def quote(self, monthly_price, lifetime_price, period_start, period_end, now) -> UpgradeQuote:
        remaining = Decimal("0")
        if period_start and period_end and period_end > period_start:
            total = (period_end - period_start).total_seconds()
            left = (period_end - now).total_seconds()
            ratio = min(max(left / total, 0.0), 1.0)
            remaining = (Decimal(monthly_price) * Decimal(str(ratio))).quantize(CENT)

        return UpgradeQuote(
            remaining_value=remaining,
            price_difference=(Decimal(lifetime_price) - remaining).quantize(CENT),
        )


class FullDifferencePolicy(ProrationPolicy):
    """Charge the difference between the two plan prices, ignoring time used."""

    def quote(self, monthly_price, lifetime_price, period_start, period_end, now) -> UpgradeQuote:
        return UpgradeQuote(
            remaining_value=Decimal(monthly_price).quantize(CENT),
            price_difference=(Decimal(lifetime_price) - Decimal(monthly_price)).quantize(CENT),
        )
