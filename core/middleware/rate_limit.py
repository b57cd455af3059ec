"""
Rate limiting middleware.

Limits activation verification per client address with a fixed window.
Counters live in a CachePort store and are evicted by their TTL when
the window closes.
"""

import hashlib
import time
from typing import Callable, Optional, Tuple

from asgiref.sync import async_to_sync
from django.conf import settings
from django.http import HttpRequest, HttpResponse, JsonResponse

from core.infrastructure.cache import CachePort
from core.infrastructure.cache_adapters import DjangoCacheAdapter
from core.metrics import errors_total

RATE_LIMITED_PATHS = ("/api/v1/activations/verify/",)


class RateLimitMiddleware:
    """
    Rate limiting middleware per client address.

    The limit and window come from VERIFY_RATE_LIMIT and
    VERIFY_RATE_LIMIT_WINDOW. The counter store is the cache named by
    RATE_LIMIT_CACHE_ALIAS unless one is passed in.
    """

    DEFAULT_RATE_LIMIT = 30  # requests per window
    RATE_LIMIT_WINDOW = 60  # seconds

    def __init__(self, get_response: Callable, store: Optional[CachePort] = None):
        """Initialize middleware."""
        self.get_response = get_response
        self.store = store or DjangoCacheAdapter(getattr(settings, "RATE_LIMIT_CACHE_ALIAS", "default"))

    @property
    def limit(self) -> int:
        return int(getattr(settings, "VERIFY_RATE_LIMIT", self.DEFAULT_RATE_LIMIT))

    @property
    def window(self) -> int:
        return int(getattr(settings, "VERIFY_RATE_LIMIT_WINDOW", self.RATE_LIMIT_WINDOW))

    def _get_client_id(self, request: HttpRequest) -> str:
        """
        Identify the calling client.

        Uses the first X-Forwarded-For hop when present, else REMOTE_ADDR.
        """
        forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.META.get("REMOTE_ADDR", "") or "unknown"

    def _get_rate_limit_key(self, client_id: str, window_start: int) -> str:
        # Hash the address so raw client IPs are not used as cache keys
        client_hash = hashlib.sha256(client_id.encode()).hexdigest()[:16]
        return f"rate_limit:verify:{client_hash}:{window_start}"

    def _check_rate_limit(self, client_id: str) -> Tuple[bool, int, int]:
        """
        Count the request against the client's current window.

        Args:
            client_id: Client address

        Returns:
            Tuple of (is_allowed, remaining, reset_time)
        """
        limit, window = self.limit, self.window
        window_start = int(time.time() / window)
        reset_time = (window_start + 1) * window

        count = async_to_sync(self.store.incr)(
            self._get_rate_limit_key(client_id, window_start), window
        )
        if count > limit:
            return False, 0, reset_time
        return True, max(0, limit - count), reset_time

    def __call__(self, request: HttpRequest) -> HttpResponse:
        """
        Process request with rate limiting.

        Args:
            request: HTTP request

        Returns:
            HTTP response with rate limit headers
        """
        if not request.path.startswith(RATE_LIMITED_PATHS):
            return self.get_response(request)

        is_allowed, remaining, reset_time = self._check_rate_limit(self._get_client_id(request))

        if not is_allowed:
            errors_total.labels(error_type="rate_limit_exceeded", endpoint=request.path).inc()
            response = JsonResponse(
                {
                    "error": {
                        "code": "RATE_LIMIT_EXCEEDED",
                        "message": "Rate limit exceeded. Please try again later.",
                    }
                },
                status=429,
            )
        else:
            response = self.get_response(request)

        response["X-RateLimit-Limit"] = str(self.limit)
        response["X-RateLimit-Remaining"] = str(remaining)
        response["X-RateLimit-Reset"] = str(reset_time)
        if not is_allowed:
            response["Retry-After"] = str(max(0, reset_time - int(time.time())))

        return response
