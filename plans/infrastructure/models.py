"""
PlanPrice model.
"""
from django.db import models


class PlanPrice(models.Model):
    """
    Price override for a plan.

    Plans without a row use the base catalog price.
    """

    plan_id = models.CharField(max_length=20, primary_key=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    updated_by = models.CharField(max_length=255, blank=True, default="")
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "plans"
        db_table = "plan_prices"

    def __str__(self):
        return f"{self.plan_id}: {self.price}"
