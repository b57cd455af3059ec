"""
App configuration for the Entitlement Service.
"""

import logging
import os
import sys

from django.apps import AppConfig

logger = logging.getLogger(__name__)

SKIPPED_COMMANDS = (
    "migrate",
    "makemigrations",
    "collectstatic",
    "shell",
    "check",
    "createsuperuser",
)


class EntitlementServiceConfig(AppConfig):
    """App configuration for EntitlementService."""

    name = "EntitlementService"
    verbose_name = "Entitlement Service"

    def ready(self):
        """Register event handlers and start instrumentation once per process."""
        # Event handlers are in-process subscriptions and are needed by every entry point
        from core.infrastructure.event_handlers import register_event_handlers

        register_event_handlers()

        if len(sys.argv) > 1 and sys.argv[1] in SKIPPED_COMMANDS:
            return
        # Django's autoreloader imports the project twice
        if os.environ.get("RUN_MAIN") == "false":
            return
        if getattr(self, "_initialized", False):
            return

        try:
            from core.instrumentation import setup_opentelemetry

            setup_opentelemetry()
        except Exception as e:  # pylint: disable=broad-exception-caught
            # Tracing is optional at runtime; the service starts without an exporter
            logger.warning("Failed to setup OpenTelemetry: %s", e)
        self._initialized = True
