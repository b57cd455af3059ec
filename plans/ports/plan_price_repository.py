"""
Plan price repository port (interface).
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, Optional

from core.domain.value_objects import Plan


class PlanPriceRepository(ABC):
    """Abstract repository for per-plan price overrides."""

    @abstractmethod
    async def get_prices(self) -> Dict[Plan, Decimal]:
        """Return every stored price override keyed by plan."""
        pass

    @abstractmethod
    async def set_price(self, plan: Plan, price: Decimal, updated_by: Optional[str] = None) -> None:
        """
        Store a price override.

        Args:
            plan: Plan identifier
            price: New price
            updated_by: Who changed the price
        """
        pass
