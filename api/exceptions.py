"""
API exception handlers.

Maps domain exceptions to `{"error": {"code", "message"}}` responses
with stable HTTP statuses.
"""

import logging
from typing import Any, Dict, Optional

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.domain.exceptions import (
    BillingProviderError,
    DomainException,
    EntitlementNotFoundError,
    NoBillingConfigError,
    OwnerNotFoundError,
    PaymentIncompleteError,
    PlanNotFoundError,
    ProviderResourceMissingError,
    TransientProviderError,
)
from core.metrics import errors_total

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins
DOMAIN_STATUS_CODES = (
    ((EntitlementNotFoundError, OwnerNotFoundError, PlanNotFoundError), status.HTTP_404_NOT_FOUND),
    (ProviderResourceMissingError, status.HTTP_404_NOT_FOUND),
    (PaymentIncompleteError, status.HTTP_402_PAYMENT_REQUIRED),
    (TransientProviderError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (BillingProviderError, status.HTTP_502_BAD_GATEWAY),
    (NoBillingConfigError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(exc: DomainException) -> int:
    """HTTP status for a domain exception; anything unlisted is invalid input."""
    for exc_types, status_code in DOMAIN_STATUS_CODES:
        if isinstance(exc, exc_types):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def custom_exception_handler(exc: Exception, context: Dict[str, Any]) -> Response:
    """Custom exception handler for REST API."""
    trace_id = _get_trace_id(context)

    if isinstance(exc, DomainException):
        response = _handle_domain_exception(exc, context, trace_id)
    elif isinstance(exc, APIException):
        response = exception_handler(exc, context)
        code = exc.default_code.upper().replace("-", "_")
        detail = response.data.get("detail", exc.default_detail) if isinstance(response.data, dict) else response.data
        response.data = {"error": {"code": code, "message": str(detail)}}
    elif isinstance(exc, Http404):
        response = Response(
            {"error": {"code": "NOT_FOUND", "message": "Resource not found"}},
            status=status.HTTP_404_NOT_FOUND,
        )
    else:
        response = _handle_unexpected_exception(exc, context, trace_id)

    if trace_id:
        response["X-Trace-ID"] = trace_id
    return response


def _get_trace_id(context: Dict[str, Any]) -> Optional[str]:
    request = context.get("request")
    if not request:
        return None
    return getattr(request, "trace_id", getattr(request, "correlation_id", None))


def _endpoint(context: Dict[str, Any]) -> str:
    view = context.get("view")
    return view.__class__.__name__ if view else "unknown"


def _handle_domain_exception(
    exc: DomainException, context: Dict[str, Any], trace_id: Optional[str]
) -> Response:
    status_code = status_for(exc)
    errors_total.labels(error_type=exc.code, endpoint=_endpoint(context)).inc()

    if status_code >= 500:
        logger.error("Domain exception: %s - %s", exc.code, exc.message, extra={"trace_id": trace_id})
    else:
        logger.warning("Domain exception: %s - %s", exc.code, exc.message, extra={"trace_id": trace_id})
    return Response({"error": {"code": exc.code, "message": exc.message}}, status=status_code)


def _handle_unexpected_exception(
    exc: Exception, context: Dict[str, Any], trace_id: Optional[str]
) -> Response:
    logger.error("Unexpected error: %s", exc, extra={"trace_id": trace_id}, exc_info=True)
    errors_total.labels(error_type=type(exc).__name__, endpoint=_endpoint(context)).inc()
    return Response(
        {"error": {"code": "INTERNAL_ERROR", "message": "An internal error occurred"}},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
