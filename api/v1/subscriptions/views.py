"""
Owner subscription API views.

Owners move between plans, cancel, reactivate and toggle service through
lifecycle transitions; paid transitions answer with a checkout URL.
"""

import uuid

from asgiref.sync import async_to_sync
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from api.v1.subscriptions.serializers import (
    LifecycleOutcomeSerializer,
    LifecycleTransitionRequestSerializer,
    SubscriptionStatusSerializer,
)
from core.domain.exceptions import DomainException
from core.infrastructure.events import event_bus
from core.infrastructure.wiring import build_lifecycle_manager
from core.instrumentation import Status, StatusCode, get_tracer
from subscriptions.application.commands.apply_lifecycle_transition import (
    ApplyLifecycleTransitionCommand,
)
from subscriptions.application.handlers.lifecycle_transition_handler import (
    GetSubscriptionStatusHandler,
    LifecycleTransitionHandler,
)
from subscriptions.application.queries.get_subscription_status import GetSubscriptionStatusQuery
from subscriptions.domain.transition import TransitionKind

tracer = get_tracer(__name__)


class LifecycleTransitionView(APIView):
    """View for applying lifecycle transitions to an owner."""

    @extend_schema(
        operation_id="apply_lifecycle_transition",
        summary="Apply Lifecycle Transition",
        description=(
            "Apply checkout, change_plan, cancel, revoke, reactivate, stop_service, "
            "start_service or delete to an owner. Transitions that need payment "
            "return status checkout_required with a checkout URL."
        ),
        tags=["Subscriptions"],
        request=LifecycleTransitionRequestSerializer,
        responses={
            200: LifecycleOutcomeSerializer,
            400: {"description": "Invalid transition or request"},
            404: {"description": "Owner not found"},
            500: {"description": "Billing not configured"},
            503: {"description": "Billing provider unavailable"},
        },
    )
    def post(self, request: Request, owner_id: uuid.UUID) -> Response:
        return async_to_sync(self._handle_transition)(request, owner_id)

    async def _handle_transition(self, request: Request, owner_id: uuid.UUID) -> Response:
        with tracer.start_as_current_span("lifecycle_transition") as span:
            span.set_attribute("owner_id", str(owner_id))

            serializer = LifecycleTransitionRequestSerializer(data=request.data)
            if not serializer.is_valid():
                span.set_status(Status(StatusCode.ERROR, "Validation failed"))
                return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

            data = serializer.validated_data
            kind = TransitionKind(data["kind"])
            span.set_attribute("transition.kind", kind.value)

            params = {"immediate": data["immediate"]}
            if data.get("plan_id"):
                params["plan_id"] = data["plan_id"]

            handler = LifecycleTransitionHandler(build_lifecycle_manager(), event_bus)
            try:
                outcome = await handler.handle(
                    ApplyLifecycleTransitionCommand(owner_id=owner_id, kind=kind, params=params)
                )
            except DomainException as e:
                span.set_status(Status(StatusCode.ERROR, e.code))
                raise

            span.set_attribute("transition.status", outcome.status.value)
            return Response(outcome.to_dict(), status=status.HTTP_200_OK)


class SubscriptionStatusView(APIView):
    """View for an owner's subscription status."""

    @extend_schema(
        operation_id="get_subscription_status",
        summary="Get Subscription Status",
        description="Return the owner's plan, subscription status and service flag.",
        tags=["Subscriptions"],
        responses={
            200: SubscriptionStatusSerializer,
            404: {"description": "Owner not found"},
        },
    )
    def get(self, request: Request, owner_id: uuid.UUID) -> Response:
        return async_to_sync(self._handle_status)(owner_id)

    async def _handle_status(self, owner_id: uuid.UUID) -> Response:
        handler = GetSubscriptionStatusHandler(build_lifecycle_manager())
        view = await handler.handle(GetSubscriptionStatusQuery(owner_id=owner_id))
        return Response(view.to_dict(), status=status.HTTP_200_OK)
