"""
Payment API views.

Session confirmation for the return leg of a one-time checkout, and the
signed billing webhook intake.
"""

from asgiref.sync import async_to_sync
from django.conf import settings
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.parsers import BaseParser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from api.v1.payments.serializers import EntitlementDTOSerializer, WebhookReceiptSerializer
from billing.infrastructure.stripe_webhooks import construct_billing_event
from core.infrastructure.wiring import build_confirm_handler, build_webhook_router
from core.instrumentation import get_tracer
from entitlements.application.commands.confirm_payment_session import ConfirmPaymentSessionCommand
from entitlements.application.dto.entitlement_dto import EntitlementDTO

tracer = get_tracer(__name__)


class RawBodyParser(BaseParser):
    """Leaves the body undecoded so its signature can be checked byte for byte."""

    media_type = "*/*"

    def parse(self, stream, media_type=None, parser_context=None):
        return stream.read() if stream else b""


class ConfirmPaymentSessionView(APIView):
    """View for confirming a paid checkout session."""

    @extend_schema(
        operation_id="confirm_payment_session",
        summary="Confirm Payment Session",
        description=(
            "Issue the entitlement for a paid one-time checkout session. Repeated "
            "confirmations of the same session return the same entitlement."
        ),
        tags=["Payments"],
        request=None,
        parameters=[
            OpenApiParameter(
                name="session_ref",
                type=str,
                location=OpenApiParameter.PATH,
                description="Checkout session reference (cs_...)",
            ),
        ],
        responses={
            200: EntitlementDTOSerializer,
            400: {"description": "Invalid payment session"},
            402: {"description": "Payment not completed"},
            503: {"description": "Billing provider unavailable"},
        },
    )
    def post(self, request: Request, session_ref: str) -> Response:
        return async_to_sync(self._handle_confirm)(session_ref)

    async def _handle_confirm(self, session_ref: str) -> Response:
        with tracer.start_as_current_span("confirm_payment_session"):
            entitlement = await build_confirm_handler().handle(
                ConfirmPaymentSessionCommand(session_ref=session_ref)
            )
            dto = EntitlementDTO.from_entity(entitlement)
            return Response(EntitlementDTOSerializer(dto).data, status=status.HTTP_200_OK)


class BillingWebhookView(APIView):
    """View receiving billing provider webhooks."""

    parser_classes = [RawBodyParser]

    @extend_schema(
        operation_id="billing_webhook",
        summary="Billing Webhook",
        description=(
            "Receive a signed billing provider event. Each event id is handled at "
            "most once; unknown event types are acknowledged and ignored."
        ),
        tags=["Payments"],
        request=None,
        parameters=[
            OpenApiParameter(
                name="Stripe-Signature",
                type=str,
                location=OpenApiParameter.HEADER,
                required=True,
                description="Webhook signature header",
            ),
        ],
        responses={
            200: WebhookReceiptSerializer,
            400: {"description": "Invalid payload or signature"},
            503: {"description": "Billing provider unavailable; the provider retries"},
        },
    )
    def post(self, request: Request) -> Response:
        return async_to_sync(self._handle_webhook)(request)

    async def _handle_webhook(self, request: Request) -> Response:
        event = construct_billing_event(
            request.data or b"",
            request.headers.get("Stripe-Signature", ""),
            settings.STRIPE_WEBHOOK_SECRET,
        )
        result = await build_webhook_router().route(event)
        return Response({"received": True, "result": result}, status=status.HTTP_200_OK)
