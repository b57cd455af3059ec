"""
Lifecycle transition handlers.

Dispatch owner transitions and the subscription status query to the
lifecycle manager.
"""

import logging

from core.domain.events import EventBus
from core.domain.exceptions import DomainException, InvalidTransitionError
from core.metrics import lifecycle_transitions_total
from subscriptions.application.commands.apply_lifecycle_transition import (
    ApplyLifecycleTransitionCommand,
)
from subscriptions.application.queries.get_subscription_status import GetSubscriptionStatusQuery
from subscriptions.application.services.lifecycle_manager import SubscriptionLifecycleManager
from subscriptions.domain.events import LifecycleTransitionApplied
from subscriptions.domain.transition import (
    LifecycleOutcome,
    SubscriptionStatusView,
    TransitionKind,
)

logger = logging.getLogger(__name__)


def _require_plan_id(params) -> str:
    plan_id = params.get("plan_id")
    if not plan_id:
        raise InvalidTransitionError("plan_id is required")
    return plan_id


class LifecycleTransitionHandler:
    """Handler for ApplyLifecycleTransitionCommand."""

    def __init__(self, manager: SubscriptionLifecycleManager, event_bus: EventBus):
        """Initialize handler."""
        self.manager = manager
        self.event_bus = event_bus

    async def _dispatch(self, command: ApplyLifecycleTransitionCommand) -> LifecycleOutcome:
        kind = command.kind
        params = command.params or {}
        if kind == TransitionKind.CHECKOUT:
            return await self.manager.checkout(command.owner_id, _require_plan_id(params))
        if kind == TransitionKind.CHANGE_PLAN:
            return await self.manager.change_plan(command.owner_id, _require_plan_id(params))
        if kind == TransitionKind.CANCEL:
            return await self.manager.cancel(
                command.owner_id, immediate=bool(params.get("immediate", False))
            )
        if kind == TransitionKind.REVOKE:
            return await self.manager.revoke(command.owner_id)
        if kind == TransitionKind.REACTIVATE:
            return await self.manager.reactivate(command.owner_id)
        if kind == TransitionKind.STOP_SERVICE:
            return await self.manager.stop_service(command.owner_id)
        if kind == TransitionKind.START_SERVICE:
            return await self.manager.start_service(command.owner_id)
        if kind == TransitionKind.DELETE:
            return await self.manager.delete(command.owner_id)
        raise InvalidTransitionError(f"Unknown transition: {kind}")

    async def handle(self, command: ApplyLifecycleTransitionCommand) -> LifecycleOutcome:
        """
        Handle apply lifecycle transition command.

        Args:
            command: ApplyLifecycleTransitionCommand

        Returns:
            LifecycleOutcome

        Raises:
            OwnerNotFoundError: If the owner does not exist
            InvalidTransitionError: If the transition is not allowed
            SubscriptionExpiredError: If the transition needs a lapsed plan
            NoBillingConfigError: If billing is not configured
            BillingProviderError: If the transition's provider call failed
        """
        try:
            outcome = await self._dispatch(command)
        except DomainException as e:
            lifecycle_transitions_total.labels(kind=command.kind.value, result=e.code).inc()
            logger.warning(
                "Transition %s for owner %s failed: %s", command.kind, command.owner_id, e.message
            )
            raise

        lifecycle_transitions_total.labels(
            kind=command.kind.value, result=outcome.status.value
        ).inc()
        await self.event_bus.publish(
            LifecycleTransitionApplied(
                owner_id=outcome.owner_id,
                kind=outcome.kind.value,
                status=outcome.status.value,
                affected=outcome.affected,
            )
        )
        return outcome


class GetSubscriptionStatusHandler:
    """Handler for GetSubscriptionStatusQuery."""

    def __init__(self, manager: SubscriptionLifecycleManager):
        """Initialize handler."""
        self.manager = manager

    async def handle(self, query: GetSubscriptionStatusQuery) -> SubscriptionStatusView:
        """
        Handle get subscription status query.

        Raises:
            OwnerNotFoundError: If the owner does not exist
        """
        return await self.manager.subscription_status(query.owner_id)
