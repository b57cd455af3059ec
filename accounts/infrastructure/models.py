"""
Owner model.
"""
import uuid

from django.db import models


class Owner(models.Model):
    """
    A customer account.

    Billing fields mirror the provider's customer and subscription.
    """

    PLAN_CHOICES = [
        ("monthly", "Monthly"),
        ("lifetime", "Lifetime"),
    ]

    SUBSCRIPTION_STATUS_CHOICES = [
        ("active", "Active"),
        ("trialing", "Trialing"),
        ("past_due", "Past due"),
        ("canceled", "Canceled"),
        ("unpaid", "Unpaid"),
        ("paused", "Paused"),
        ("unknown", "Unknown"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    name = models.CharField(max_length=255, blank=True, default="")
    external_customer_ref = models.CharField(max_length=255, unique=True, null=True, blank=True)
    external_subscription_ref = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    plan = models.CharField(max_length=20, choices=PLAN_CHOICES, null=True, blank=True)
    subscription_status = models.CharField(
        max_length=20, choices=SUBSCRIPTION_STATUS_CHOICES, null=True, blank=True
    )
    current_period_end = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "accounts"
        db_table = "owners"
        ordering = ["email"]

    def __str__(self):
        return self.email
