"""
Processed webhook event ledger model.
"""
from django.db import models


class ProcessedWebhookEvent(models.Model):
    """A billing provider event that was handled successfully."""

    event_id = models.CharField(max_length=255, primary_key=True)
    event_type = models.CharField(max_length=100)
    processed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        app_label = "webhooks"
        db_table = "processed_webhook_events"
        ordering = ["-processed_at"]

    def __str__(self):
        return f"{self.event_type} ({self.event_id})"
