"""
Plan definitions.

The base catalog carries the label, duration rule and default price of
each plan. Duration is advisory: it gives a new entitlement its default
expiry until the billing provider supplies an authoritative period end.
"""
import calendar
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional

from core.domain.exceptions import PlanNotFoundError
from core.domain.value_objects import Plan


@dataclass(frozen=True)
class PlanDefinition:
    """Pricing and duration policy for one plan."""

    id: Plan
    label: str
    description: str
    duration_days: Optional[int]
    price: Decimal
    recurring: bool

    def __post_init__(self):
        """Validate plan definition."""
        if self.price < 0:
            raise ValueError("Plan price cannot be negative")
        if self.duration_days is not None and self.duration_days < 1:
            raise ValueError("Plan duration must be at least one day")

    @property
    def unit_amount(self) -> int:
        """Price in the smallest currency unit."""
        return int((self.price * 100).to_integral_value())

    def default_expiry(self, start: datetime) -> Optional[datetime]:
        """
        Compute the default expiry for an entitlement starting at `start`.

        Returns:
            Expiry datetime, or None for plans without a duration
        """
        if self.duration_days is None:
            return None
        return start + timedelta(days=self.duration_days)

    def with_price(self, price: Decimal) -> "PlanDefinition":
        """Return a copy with an overridden price."""
        return replace(self, price=Decimal(price))


BASE_PLANS: Dict[Plan, PlanDefinition] = {
    Plan.MONTHLY: PlanDefinition(
        id=Plan.MONTHLY,
        label="One-Month Access",
        description="Full feature access for 30 days",
        duration_days=30,
        price=Decimal("40.00"),
        recurring=True,
    ),
    Plan.LIFETIME: PlanDefinition(
        id=Plan.LIFETIME,
        label="Lifetime Access",
        description="One-time purchase, permanent access",
        duration_days=None,
        price=Decimal("120.00"),
        recurring=False,
    ),
}


def parse_plan_id(plan_id) -> Plan:
    """
    Parse a plan identifier.

    Raises:
        PlanNotFoundError: If the identifier is unknown
    """
    if isinstance(plan_id, Plan):
        return plan_id
    try:
        return Plan(str(plan_id).strip().lower())
    except ValueError:
        raise PlanNotFoundError(f"Plan {plan_id} not found")


def add_calendar_months(start: datetime, months: int = 1) -> datetime:
    """
    Add calendar months, clamping the day to the target month's length.

    Jan 31 + 1 month is Feb 28 (or 29), not Mar 3.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)
