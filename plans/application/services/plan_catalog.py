"""
Plan catalog service.

Resolves plan identifiers to their current definition: the base catalog
with database price overrides applied. Overrides are cached.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from core.domain.value_objects import Plan
from core.infrastructure.cache import CachePort
from plans.domain.plan import BASE_PLANS, PlanDefinition, parse_plan_id
from plans.ports.plan_price_repository import PlanPriceRepository

logger = logging.getLogger(__name__)

CACHE_KEY_PLAN_PRICES = "plans:prices"
CACHE_TTL_PLAN_PRICES = 300  # 5 minutes


class PlanCatalog:
    """Service for resolving plans and their prices."""

    def __init__(self, price_repository: PlanPriceRepository, cache: CachePort):
        """Initialize catalog with price storage and cache."""
        self.price_repository = price_repository
        self.cache = cache

    async def _prices(self) -> Dict[Plan, Decimal]:
        cached = await self.cache.get(CACHE_KEY_PLAN_PRICES)
        if cached is not None:
            return {Plan(plan_id): Decimal(price) for plan_id, price in cached.items()}

        prices = await self.price_repository.get_prices()
        await self.cache.set(
            CACHE_KEY_PLAN_PRICES,
            {plan.value: str(price) for plan, price in prices.items()},
            timeout=CACHE_TTL_PLAN_PRICES,
        )
        return prices

    async def resolve_plan(self, plan_id) -> PlanDefinition:
        """
        Resolve a plan identifier.

        Args:
            plan_id: Plan identifier (string or Plan)

        Returns:
            PlanDefinition with the current price

        Raises:
            PlanNotFoundError: If the identifier is unknown
        """
        plan = parse_plan_id(plan_id)
        definition = BASE_PLANS[plan]
        override = (await self._prices()).get(plan)
        if override is not None:
            definition = definition.with_price(override)
        return definition

    async def list_plans(self) -> List[PlanDefinition]:
        """Return every plan with current prices."""
        return [await self.resolve_plan(plan) for plan in BASE_PLANS]

    async def update_price(self, plan_id, price, updated_by: Optional[str] = None) -> PlanDefinition:
        """
        Override a plan's price.

        Args:
            plan_id: Plan identifier
            price: New price (must be a non-negative number)
            updated_by: Who changed the price

        Returns:
            Updated PlanDefinition

        Raises:
            PlanNotFoundError: If the identifier is unknown
            ValueError: If the price is invalid
        """
        plan = parse_plan_id(plan_id)
        try:
            amount = Decimal(str(price)).quantize(Decimal("0.01"))
        except InvalidOperation:
            raise ValueError(f"Invalid price: {price}")
        if amount < 0:
            raise ValueError("Plan price cannot be negative")

        await self.price_repository.set_price(plan, amount, updated_by=updated_by)
        await self.cache.delete(CACHE_KEY_PLAN_PRICES)
        logger.info("Price for plan %s set to %s by %s", plan.value, amount, updated_by or "system")
        return await self.resolve_plan(plan)
