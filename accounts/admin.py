"""
Django admin configuration for accounts app.
"""
from django.contrib import admin

from accounts.infrastructure.models import Owner


@admin.register(Owner)
class OwnerAdmin(admin.ModelAdmin):
    """Admin interface for Owner model."""

    list_display = [
        "email",
        "plan",
        "subscription_status",
        "current_period_end",
        "is_active",
    ]
    list_filter = ["plan", "subscription_status", "is_active"]
    search_fields = ["email", "external_customer_ref", "external_subscription_ref"]
    readonly_fields = ["id", "created_at", "updated_at"]
