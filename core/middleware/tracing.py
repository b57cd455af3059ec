"""
Tracing middleware for OpenTelemetry.

Creates a span for each request. Request and response bodies are
attached with activation codes, device ids and secrets redacted.
"""

import json
import time
import traceback
from typing import Callable

from django.http import HttpRequest, HttpResponse

from core.instrumentation import Status, StatusCode, get_tracer

tracer = get_tracer(__name__)

SENSITIVE_FIELDS = ("code", "device", "secret", "token", "password", "signature", "key")
MAX_BODY_ATTRIBUTE = 2000


def sanitize(data, max_depth: int = 3):
    """Redact sensitive fields from decoded JSON."""
    if max_depth <= 0:
        return "..."
    if isinstance(data, dict):
        sanitized = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, (dict, list)):
                sanitized[key] = sanitize(value, max_depth - 1)
            else:
                sanitized[key] = str(value)[:200]
        return sanitized
    if isinstance(data, list):
        return [sanitize(item, max_depth - 1) for item in data[:10]]
    return str(data)[:200]


class TracingMiddleware:
    """Middleware to add distributed tracing to requests."""

    def __init__(self, get_response: Callable):
        """Initialize middleware."""
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        span_name = f"{request.method} {request.path}"
        with tracer.start_as_current_span(span_name) as span:
            self._set_request_attributes(span, request)

            trace_context = span.get_span_context()
            if trace_context.is_valid:
                request.trace_id = format(trace_context.trace_id, "032x")

            start_time = time.time()
            try:
                response = self.get_response(request)
            except Exception as e:
                self._handle_exception(span, e, time.time() - start_time)
                raise
            self._set_response_attributes(span, response, time.time() - start_time)
            return response

    def _set_request_attributes(self, span, request: HttpRequest):
        span.set_attribute("http.method", request.method)
        span.set_attribute("http.route", request.path)
        span.set_attribute("http.scheme", request.scheme)
        span.set_attribute("http.user_agent", request.META.get("HTTP_USER_AGENT", ""))
        if "Stripe-Signature" in request.headers:
            span.set_attribute("http.request.has_signature", True)

        # Webhook payloads are bound for signature verification, never decoded here
        if request.path.startswith("/api/v1/webhooks/"):
            return
        content_type = request.headers.get("Content-Type", "")
        if request.method in ("POST", "PUT", "PATCH") and content_type.startswith("application/json"):
            self._attach_body(span, "http.request.body", request.body)

    def _attach_body(self, span, attribute: str, raw: bytes):
        if not raw:
            return
        span.set_attribute(f"{attribute}_size", len(raw))
        try:
            decoded = json.loads(raw.decode("utf-8", errors="ignore"))
        except ValueError:
            return
        span.set_attribute(attribute, json.dumps(sanitize(decoded))[:MAX_BODY_ATTRIBUTE])

    def _set_response_attributes(self, span, response: HttpResponse, duration: float):
        span.set_attribute("http.status_code", response.status_code)
        span.set_attribute("http.duration_ms", round(duration * 1000, 2))

        if response.status_code >= 400 and not getattr(response, "streaming", False):
            try:
                body = json.loads(response.content)
            except ValueError:
                body = None
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                for key in ("code", "message"):
                    if key in body["error"]:
                        span.set_attribute(f"error.{key}", str(body["error"][key]))
            span.set_status(Status(StatusCode.ERROR, f"HTTP {response.status_code}"))
        else:
            span.set_status(Status(StatusCode.OK))

    def _handle_exception(self, span, e: Exception, duration: float):
        span.set_attribute("http.duration_ms", round(duration * 1000, 2))
        span.set_attribute("error", True)
        span.set_attribute("error.type", type(e).__name__)
        span.set_attribute("error.message", str(e))
        tb_str = "".join(traceback.format_exception(type(e), e, e.__traceback__))
        span.set_attribute("error.stack_trace", tb_str[:10000])
        span.set_status(Status(StatusCode.ERROR, f"{type(e).__name__}: {e}"))
