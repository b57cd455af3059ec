"""
Activation API views.

Client applications call these endpoints to redeem an activation code
on a device and to re-check it later.
"""

from asgiref.sync import async_to_sync
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from activations.application.commands.verify_activation import VerifyActivationCommand
from activations.application.handlers.verify_activation_handler import VerifyActivationHandler
from api.v1.activations.serializers import (
    VerdictResponseSerializer,
    VerifyActivationRequestSerializer,
)
from core.infrastructure.wiring import build_verifier
from core.instrumentation import Status, StatusCode, get_tracer

tracer = get_tracer(__name__)


class VerifyActivationView(APIView):
    """View for verifying activation codes."""

    @extend_schema(
        operation_id="verify_activation",
        summary="Verify Activation Code",
        description=(
            "Check an activation code for a device. The first successful call binds "
            "the code to the device; later calls from other devices are refused. "
            "Every well-formed request returns 200 with a verdict."
        ),
        tags=["Activations"],
        request=VerifyActivationRequestSerializer,
        responses={
            200: VerdictResponseSerializer,
            400: {"description": "Malformed request body"},
            429: {"description": "Rate limit exceeded"},
        },
    )
    def post(self, request: Request) -> Response:
        return async_to_sync(self._handle_verify)(request)

    async def _handle_verify(self, request: Request) -> Response:
        with tracer.start_as_current_span("verify_activation") as span:
            serializer = VerifyActivationRequestSerializer(data=request.data)
            if not serializer.is_valid():
                span.set_status(Status(StatusCode.ERROR, "Validation failed"))
                return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

            handler = VerifyActivationHandler(build_verifier())
            verdict = await handler.handle(
                VerifyActivationCommand(
                    code=serializer.validated_data["code"],
                    device_id=serializer.validated_data.get("device_id") or "",
                )
            )

            span.set_attribute("verdict.ok", verdict.ok)
            if not verdict.ok:
                span.set_attribute("verdict.reason", verdict.reason.value)
            if verdict.source:
                span.set_attribute("verdict.source", verdict.source)
            return Response(verdict.to_dict(), status=status.HTTP_200_OK)
