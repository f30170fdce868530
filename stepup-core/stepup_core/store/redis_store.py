"""
Redis Store
===========
Redis-backed ephemeral store with bounded call latency.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from stepup_core.errors import StoreUnavailableError
from .base import EphemeralStore, ttl_millis

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RedisStore(EphemeralStore):
    """
    Ephemeral store on top of an async Redis client.

    The client is injected and owned by the caller unless created through
    ``from_url``. Every command is bounded by ``timeout`` seconds.
    """

    name = "redis"

    def __init__(self, redis: Redis, timeout: float = 2.0, owns_client: bool = False):
        """
        Args:
            redis: Async Redis client (decode_responses recommended)
            timeout: Per-command timeout in seconds
            owns_client: Close the client in ``close()``
        """
        self.redis = redis
        self.timeout = timeout
        self._owns_client = owns_client

    @classmethod
    def from_url(cls, url: str, timeout: float = 2.0) -> "RedisStore":
        """Create a store with its own connection pool."""
        client = Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        return cls(client, timeout=timeout, owns_client=True)

    async def _call(self, operation: str, key: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("store_timeout", operation=operation, key=key, timeout=self.timeout)
            raise StoreUnavailableError("OTP service is unavailable.") from e
        except (RedisError, OSError) as e:
            logger.error("store_error", operation=operation, key=key, error=str(e))
            raise StoreUnavailableError("OTP service is unavailable.") from e

    async def get(self, key: str) -> Optional[str]:
        value = await self._call("get", key, self.redis.get(key))
        if isinstance(value, bytes):
            return value.decode()
        return value

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is None:
            await self._call("set", key, self.redis.set(key, value))
            return
        if ttl_seconds <= 0:
            await self.delete(key)
            return
        await self._call("set", key, self.redis.set(key, value, px=ttl_millis(ttl_seconds)))

    async def delete(self, key: str) -> None:
        await self._call("delete", key, self.redis.delete(key))

    async def ping(self) -> bool:
        """Health probe; False instead of raising."""
        try:
            return bool(await self._call("ping", "-", self.redis.ping()))
        except StoreUnavailableError:
            return False

    async def close(self) -> None:
        if self._owns_client:
            await self.redis.aclose()
