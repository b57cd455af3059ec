"""
Django admin configuration for entitlements app.
"""

from django.contrib import admin
from django.utils.html import format_html

from entitlements.infrastructure.models import Entitlement

STATUS_COLORS = {"active": "green", "pending": "orange", "revoked": "red"}


@admin.register(Entitlement)
class EntitlementAdmin(admin.ModelAdmin):
    """Admin interface for Entitlement model."""

    list_display = [
        "email",
        "plan",
        "status_display",
        "expires_at",
        "device_display",
        "created_at",
    ]
    list_filter = ["plan", "status", "external_subscription_status", "created_at"]
    search_fields = [
        "email",
        "payment_event_ref",
        "external_session_ref",
        "external_customer_ref",
        "external_subscription_ref",
    ]
    # Codes and device bindings change only through verification
    readonly_fields = [
        "id",
        "code_hash",
        "legacy_code",
        "payment_event_ref",
        "redeemed_device_id",
        "redeemed_at",
        "created_at",
        "updated_at",
    ]
    fieldsets = (
        (
            "Basic Information",
            {
                "fields": ("id", "email", "plan", "status", "expires_at"),
            },
        ),
        (
            "Activation Code",
            {
                "fields": ("code_hash", "legacy_code", "redeemed_device_id", "redeemed_at"),
            },
        ),
        (
            "Billing References",
            {
                "fields": (
                    "payment_event_ref",
                    "external_session_ref",
                    "external_customer_ref",
                    "external_subscription_ref",
                    "external_subscription_status",
                    "external_period_end",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )

    def status_display(self, obj):
        return format_html(
            '<span style="color: {}; font-weight: bold;">{}</span>',
            STATUS_COLORS.get(obj.status, "black"),
            obj.status,
        )

    status_display.short_description = "Status"

    def device_display(self, obj):
        """Display the bound device, truncated."""
        if not obj.redeemed_device_id:
            return "-"
        if len(obj.redeemed_device_id) > 32:
            return format_html(
                '<span title="{}">{}</span>',
                obj.redeemed_device_id,
                obj.redeemed_device_id[:29] + "...",
            )
        return obj.redeemed_device_id

    device_display.short_description = "Device"
