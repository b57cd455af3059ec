"""
VerifyActivationHandler.

Handler for verifying activation codes.
"""

import logging

from activations.application.commands.verify_activation import VerifyActivationCommand
from activations.domain.verdict import Verdict
from activations.domain.verifier import ActivationVerifier
from core.metrics import activation_reconciliation_source_total, activation_verifications_total

logger = logging.getLogger(__name__)


class VerifyActivationHandler:
    """Handler for VerifyActivationCommand."""

    def __init__(self, verifier: ActivationVerifier):
        """Initialize handler with the verifier."""
        self.verifier = verifier

    async def handle(self, command: VerifyActivationCommand) -> Verdict:
        """
        Handle verify activation command.

        Args:
            command: VerifyActivationCommand

        Returns:
            Verdict describing whether the code may be used on the device

        Raises:
            TransientProviderError: If the record store is unreachable
        """
        verdict = await self.verifier.verify(command.code, command.device_id)

        if verdict.source:
            activation_reconciliation_source_total.labels(source=verdict.source).inc()

        if verdict.ok:
            activation_verifications_total.labels(outcome="ok").inc()
        else:
            activation_verifications_total.labels(outcome=verdict.reason.value).inc()
            logger.info(
                "Activation refused: %s (entitlement=%s)",
                verdict.reason.value,
                verdict.entitlement_id,
            )
        return verdict
