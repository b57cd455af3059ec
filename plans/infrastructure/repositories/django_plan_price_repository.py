"""
Django implementation of PlanPriceRepository port.
"""
from decimal import Decimal
from typing import Dict, Optional

from asgiref.sync import sync_to_async

from core.domain.value_objects import Plan
from core.infrastructure.database import store_call
from plans.infrastructure.models import PlanPrice
from plans.ports.plan_price_repository import PlanPriceRepository


class DjangoPlanPriceRepository(PlanPriceRepository):
    """Django ORM implementation of PlanPriceRepository."""

    @sync_to_async
    @store_call
    def get_prices(self) -> Dict[Plan, Decimal]:
        prices = {}
        for row in PlanPrice.objects.all():
            try:
                prices[Plan(row.plan_id)] = row.price
            except ValueError:
                continue
        return prices

    @sync_to_async
    @store_call
    def set_price(self, plan: Plan, price: Decimal, updated_by: Optional[str] = None) -> None:
        PlanPrice.objects.update_or_create(
            plan_id=plan.value,
            defaults={"price": price, "updated_by": updated_by or ""},
        )
