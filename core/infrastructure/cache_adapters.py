"""
Cache adapter implementations.

Provides the Django cache implementation of CachePort. The backend is
chosen by the CACHES setting (Redis in production, LocMem in tests).
"""

import logging
from typing import Any, Optional

from asgiref.sync import sync_to_async
from django.core.cache import caches

from core.infrastructure.cache import CachePort

logger = logging.getLogger(__name__)


class DjangoCacheAdapter(CachePort):
    """
    Django cache adapter implementing CachePort.

    Read and write failures are logged and degrade to a cache miss.
    Counter failures also degrade: the counter reports zero so callers
    fail open.
    """

    def __init__(self, alias: str = "default"):
        """Bind the adapter to a configured cache alias."""
        self.alias = alias

    @property
    def _cache(self):
        return caches[self.alias]

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await sync_to_async(self._cache.get)(key)
            if value is not None:
                logger.debug("Cache hit: %s", key)
            else:
                logger.debug("Cache miss: %s", key)
            return value
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Error getting from cache: %s", e, exc_info=True)
            return None

    async def set(self, key: str, value: Any, timeout: Optional[int] = None) -> None:
        try:
            await sync_to_async(self._cache.set)(key, value, timeout=timeout)
            logger.debug("Cache set: %s (timeout=%s)", key, timeout)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Error setting cache: %s", e, exc_info=True)

    async def delete(self, key: str) -> None:
        try:
            await sync_to_async(self._cache.delete)(key)
            logger.debug("Cache delete: %s", key)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Error deleting from cache: %s", e, exc_info=True)

    async def incr(self, key: str, timeout: int) -> int:
        try:
            return await sync_to_async(self._incr)(key, timeout)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Error incrementing cache counter: %s", e, exc_info=True)
            return 0

    def _incr(self, key: str, timeout: int) -> int:
        # add() only writes when the key is absent, which pins the TTL to window start
        if self._cache.add(key, 1, timeout=timeout):
            return 1
        try:
            return self._cache.incr(key)
        except ValueError:
            # Expired between add() and incr()
            self._cache.set(key, 1, timeout=timeout)
            return 1


# Global cache instance
cache_adapter = DjangoCacheAdapter()
