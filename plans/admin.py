"""
Django admin configuration for plans app.
"""
from django.contrib import admin
from django.core.cache import cache

from plans.application.services.plan_catalog import CACHE_KEY_PLAN_PRICES
from plans.infrastructure.models import PlanPrice


@admin.register(PlanPrice)
class PlanPriceAdmin(admin.ModelAdmin):
    """Admin interface for PlanPrice model."""

    list_display = ["plan_id", "price", "updated_by", "updated_at"]
    readonly_fields = ["updated_at"]

    def save_model(self, request, obj, form, change):
        """Record the editor and drop cached prices."""
        obj.updated_by = getattr(request.user, "email", "") or request.user.get_username()
        super().save_model(request, obj, form, change)
        cache.delete(CACHE_KEY_PLAN_PRICES)
