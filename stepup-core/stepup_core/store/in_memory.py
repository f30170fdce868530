"""
In-Memory Store
===============
Process-local ephemeral store for development and testing.
"""

import time
from typing import Callable, Dict, Optional, Tuple

from .base import EphemeralStore


class InMemoryStore(EphemeralStore):
    """
    Dictionary-backed store with lazy expiry.

    For development and testing only.
    Use RedisStore in production.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Args:
            clock: Returns the current time in seconds; injectable for tests
        """
        self.clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            self._data.pop(key, None)
            return
        expires_at = self.clock() + ttl_seconds if ttl_seconds is not None else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def raw_get(self, key: str) -> Optional[str]:
        """Read a value without applying expiry."""
        entry = self._data.get(key)
        return entry[0] if entry else None

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires, or None when absent or persistent."""
        entry = self._data.get(key)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - self.clock()

    def clear(self) -> None:
        self._data.clear()
