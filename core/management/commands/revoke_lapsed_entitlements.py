"""
Django management command to reconcile lapsed subscription entitlements.

Runs the same sweep as the periodic Celery task. Useful from cron where
no beat scheduler runs.
"""

import logging

from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand
from django.utils import timezone

from core.infrastructure.wiring import build_lifecycle_manager
from entitlements.infrastructure.models import Entitlement as EntitlementModel

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Command to reconcile active entitlements whose stored expiry elapsed."""

    help = "Re-check subscription entitlements whose stored expiry has passed"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Dry run mode - list lapsed entitlements without contacting the billing provider",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            # pylint: disable=no-member
            lapsed = EntitlementModel.objects.filter(
                status="active",
                plan="monthly",
                external_subscription_ref__isnull=False,
                expires_at__lt=timezone.now(),
            )
            self.stdout.write(f"Found {lapsed.count()} lapsed entitlement(s)")
            self.stdout.write(self.style.WARNING("DRY RUN - No changes will be made"))
            for record in lapsed[:10]:
                self.stdout.write(f"  - Entitlement {record.id} expired at {record.expires_at}")
            return

        summary = async_to_sync(build_lifecycle_manager().sweep_lapsed_entitlements)()
        logger.info("Sweep finished from management command: %s", summary)
        self.stdout.write(
            self.style.SUCCESS(
                f"Revoked {summary['revoked']} and refreshed {summary['refreshed']} entitlement(s)"
            )
        )
