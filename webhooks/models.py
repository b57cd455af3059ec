from webhooks.infrastructure.models import ProcessedWebhookEvent  # noqa: F401
