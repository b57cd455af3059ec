"""
Django implementation of ProcessedEventRepository port.
"""
from asgiref.sync import sync_to_async

from core.infrastructure.database import store_call
from webhooks.infrastructure.models import ProcessedWebhookEvent
from webhooks.ports.processed_event_repository import ProcessedEventRepository


class DjangoProcessedEventRepository(ProcessedEventRepository):
    """Django ORM implementation of ProcessedEventRepository."""

    @sync_to_async
    @store_call
    def has_processed(self, event_id: str) -> bool:
        return ProcessedWebhookEvent.objects.filter(event_id=event_id).exists()

    @sync_to_async
    @store_call
    def mark_processed(self, event_id: str, event_type: str) -> bool:
        _, created = ProcessedWebhookEvent.objects.get_or_create(
            event_id=event_id, defaults={"event_type": event_type}
        )
        return created
