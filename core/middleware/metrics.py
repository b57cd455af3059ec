"""
Metrics middleware for Prometheus.

Records HTTP request count and duration per normalized endpoint.
"""

import re
import time
from typing import Callable

from django.http import HttpRequest, HttpResponse

from core.metrics import http_request_duration_seconds, http_requests_total

UUID_SEGMENT = re.compile(r"/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")
SESSION_SEGMENT = re.compile(r"/cs_[A-Za-z0-9_]+")
NUMERIC_SEGMENT = re.compile(r"/\d+")


def normalize_endpoint(path: str) -> str:
    """Collapse identifiers in a path so metric labels stay bounded."""
    endpoint = path.split("?")[0]
    endpoint = UUID_SEGMENT.sub("/{id}", endpoint)
    endpoint = SESSION_SEGMENT.sub("/{session_ref}", endpoint)
    return NUMERIC_SEGMENT.sub("/{id}", endpoint)


class MetricsMiddleware:
    """Middleware to record HTTP metrics for Prometheus."""

    def __init__(self, get_response: Callable):
        """Initialize middleware."""
        self.get_response = get_response

    def _record(self, request: HttpRequest, endpoint: str, status_code: int, started: float):
        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=status_code,
        ).inc()
        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(time.time() - started)

    def __call__(self, request: HttpRequest) -> HttpResponse:
        """Process request and record metrics."""
        started = time.time()
        endpoint = normalize_endpoint(request.path)

        try:
            response = self.get_response(request)
        except Exception:
            self._record(request, endpoint, 500, started)
            raise

        self._record(request, endpoint, response.status_code, started)
        return response
