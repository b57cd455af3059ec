"""
Celery tasks for background processing.

Tasks for activation notice delivery and periodic entitlement sweeps.
"""
import logging

from asgiref.sync import async_to_sync
from django.conf import settings
from django.core.mail import send_mail

from EntitlementService.celery import app

logger = logging.getLogger(__name__)


def format_activation_message(code_reference: str, plan_label: str, expires_at: str = None) -> str:
    """Render the plain-text body of an activation notice."""
    return (
        f"Thank you for your purchase of {plan_label}.\n\n"
        f"Your activation code: {code_reference}\n"
        f"Expires: {expires_at or 'Never'}\n"
    )


@app.task(bind=True, max_retries=3)
def send_activation_email_task(
    self, recipient: str, code_reference: str, plan_label: str, expires_at: str = None
):
    """
    Celery task for activation notice delivery.

    Args:
        recipient: Customer email address
        code_reference: Activation code reference handed to the customer
        plan_label: Human-readable plan label
        expires_at: ISO expiry, or None for lifetime access
    """
    try:
        send_mail(
            subject=f"Your {plan_label} activation code",
            message=format_activation_message(code_reference, plan_label, expires_at),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
        )
        logger.info("Activation notice sent to %s", recipient)
    except Exception as exc:
        logger.error(f"Activation notice delivery failed: {exc}", exc_info=True)
        raise self.retry(exc=exc, countdown=2 ** self.request.retries)


@app.task(bind=True, max_retries=3)
def sweep_lapsed_entitlements_task(self):
    """
    Celery task reconciling subscription entitlements whose stored expiry elapsed.

    Returns:
        Summary dict with revoked and refreshed counts
    """
    from core.infrastructure.wiring import build_lifecycle_manager

    try:
        manager = build_lifecycle_manager()
        summary = async_to_sync(manager.sweep_lapsed_entitlements)()
    except Exception as exc:
        logger.error(f"Entitlement sweep failed: {exc}", exc_info=True)
        raise self.retry(exc=exc, countdown=2 ** self.request.retries)

    logger.info(
        "Entitlement sweep finished: %d revoked, %d refreshed",
        summary["revoked"],
        summary["refreshed"],
    )
    return summary
