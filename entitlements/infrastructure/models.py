"""
Entitlement record model.
"""
import uuid

from django.db import models


class Entitlement(models.Model):
    """
    A persisted entitlement record.

    Keyed by the SHA-256 hash of its activation code. The plaintext
    `legacy_code` column only exists for records created before codes
    were hashed and is cleared once the record is migrated.
    """

    PLAN_CHOICES = [
        ("monthly", "Monthly"),
        ("lifetime", "Lifetime"),
    ]

    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("active", "Active"),
        ("revoked", "Revoked"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(db_index=True)
    plan = models.CharField(max_length=20, choices=PLAN_CHOICES)
    code_hash = models.CharField(max_length=64, unique=True, null=True, blank=True)
    legacy_code = models.CharField(max_length=64, unique=True, null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending")
    expires_at = models.DateTimeField(null=True, blank=True)
    payment_event_ref = models.CharField(
        max_length=255, unique=True, help_text="Idempotency key of the originating payment event"
    )
    external_session_ref = models.CharField(max_length=255, unique=True, null=True, blank=True)
    external_customer_ref = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    external_subscription_ref = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    external_subscription_status = models.CharField(max_length=20, null=True, blank=True)
    external_period_end = models.DateTimeField(null=True, blank=True)
    redeemed_device_id = models.CharField(max_length=255, null=True, blank=True)
    redeemed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "entitlements"
        db_table = "entitlements"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["external_customer_ref", "email"]),
            models.Index(fields=["status", "expires_at"]),
        ]

    def __str__(self):
        return f"{self.email} - {self.plan} ({self.status})"

