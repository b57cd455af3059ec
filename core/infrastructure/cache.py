"""
Cache abstraction (port).

The plan catalog caches price overrides through this port and the
verify rate limiter keeps its fixed-window counters in it. Entries
expire by TTL; no other eviction is assumed.
"""
from abc import ABC, abstractmethod
from typing import Any, Optional


class CachePort(ABC):
    """Abstract cache port."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """
        Get a value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, timeout: Optional[int] = None) -> None:
        """
        Set a value in cache.

        Args:
            key: Cache key
            value: Value to cache
            timeout: Timeout in seconds (None for no expiration)
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a value from cache."""
        pass

    @abstractmethod
    async def incr(self, key: str, timeout: int) -> int:
        """
        Increment a counter, creating it with the given TTL when absent.

        The TTL is set only when the counter is created, so a counter
        describes one fixed window.

        Args:
            key: Counter key
            timeout: Lifetime of a newly created counter in seconds

        Returns:
            The counter value after incrementing
        """
        pass
