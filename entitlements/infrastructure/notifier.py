"""
Celery-backed activation notifier.

Hands activation notices to the email task; delivery and its retries
happen outside the request.
"""
import logging

from entitlements.ports.notifier import ActivationNotice, ActivationNotifier

logger = logging.getLogger(__name__)


class CeleryEmailNotifier(ActivationNotifier):
    """Activation notifier that enqueues an email task."""

    async def notify(self, notice: ActivationNotice) -> None:
        from core.tasks import send_activation_email_task

        send_activation_email_task.delay(
            notice.recipient,
            notice.code_reference,
            notice.plan_label,
            notice.expires_at.isoformat() if notice.expires_at else None,
        )
        logger.debug("Activation notice queued for %s", notice.recipient)
