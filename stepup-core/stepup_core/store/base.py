"""
Ephemeral Store Interface
=========================
Async key/value store with per-key TTL used for every step-up record.
"""

import json
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class EphemeralStore(ABC):
    """
    Abstract base class for TTL-bound key/value stores.

    Implementations must raise StoreUnavailableError for any backend failure
    so the engine sees the store as either available or unavailable.
    """

    name: str = "base"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value for ``key`` or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        """Store ``value`` under ``key``, expiring after ``ttl_seconds``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    async def close(self) -> None:
        """Release backend resources."""

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Read a JSON document; unparseable values read as absent."""
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("store_value_unparseable", key=key)
            return None
        return value if isinstance(value, dict) else None

    async def set_json(
        self,
        key: str,
        payload: Dict[str, Any],
        ttl_seconds: Optional[float] = None,
    ) -> None:
        await self.set(key, json.dumps(payload, separators=(",", ":")), ttl_seconds)


def ttl_millis(ttl_seconds: float) -> int:
    """Convert a TTL to whole milliseconds, never less than 1."""
    return max(1, int(math.ceil(ttl_seconds * 1000)))
