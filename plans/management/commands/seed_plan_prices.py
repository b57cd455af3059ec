"""
Django management command to seed plan prices.

Creates a PlanPrice row with the base catalog price for every plan that
has none, so prices can be edited from the admin afterwards.
"""

import logging

from django.core.management.base import BaseCommand

from plans.domain.plan import BASE_PLANS
from plans.infrastructure.models import PlanPrice

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Command to seed plan prices."""

    help = "Seed plan prices from the base catalog"

    def add_arguments(self, parser):
        """Add command arguments."""
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Dry run mode - don't actually create prices",
        )

    def handle(self, *args, **options):
        """Execute the command."""
        dry_run = options["dry_run"]
        # pylint: disable=no-member
        existing = set(PlanPrice.objects.values_list("plan_id", flat=True))
        missing = [plan for plan in BASE_PLANS.values() if plan.id.value not in existing]

        self.stdout.write(f"Found {len(missing)} plan(s) without a price")

        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN - No changes will be made"))
            for plan in missing:
                self.stdout.write(f"  - {plan.id.value}: {plan.price}")
            return

        for plan in missing:
            PlanPrice.objects.get_or_create(
                plan_id=plan.id.value,
                defaults={"price": plan.price, "updated_by": "seed"},
            )
            logger.info("Seeded price for plan %s: %s", plan.id.value, plan.price)

        self.stdout.write(self.style.SUCCESS(f"Seeded {len(missing)} plan price(s)"))
