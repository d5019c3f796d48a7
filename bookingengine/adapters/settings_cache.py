"""
Time-based cache for the business rules snapshot.

The engine never caches; callers that want to avoid a store round trip
per request wrap their loader in this adapter.
"""

import logging
import threading
import time
from typing import Awaitable, Callable, Optional

from ..domain.models import BusinessRules

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class SettingsCache:
    """
    Holds the last BusinessRules loaded and reloads it after ``ttl_seconds``.

    Args:
        loader: Async callable returning the current rules (or None)
        ttl_seconds: How long a loaded snapshot stays fresh
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[Optional[BusinessRules]]],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._rules: Optional[BusinessRules] = None
        self._loaded_at: Optional[float] = None

    def is_fresh(self) -> bool:
        with self._lock:
            return (
                self._loaded_at is not None
                and self._clock() - self._loaded_at < self._ttl_seconds
            )

    async def get(self) -> Optional[BusinessRules]:
        if self.is_fresh():
            return self._rules

        rules = await self._loader()
        with self._lock:
            self._rules = rules
            self._loaded_at = self._clock()
        logger.debug("Business rules reloaded")
        return rules

    def invalidate(self) -> None:
        """Force the next get() to reload, e.g. after an admin edits settings."""
        with self._lock:
            self._rules = None
            self._loaded_at = None
