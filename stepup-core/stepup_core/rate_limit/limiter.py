"""
Issuance Rate Limiter
=====================
Sliding-window cap plus minimum interval between OTP issuances.
"""

import math
import time
from typing import Callable

import structlog

from stepup_core.errors import RateLimitedError
from stepup_core.store import EphemeralStore
from .models import RateLimitRecord, RateLimitInfo

logger = structlog.get_logger(__name__)


class IssuanceRateLimiter:
    """
    Per-scope-key issuance throttle backed by the ephemeral store.

    Two independent controls run on every attempt: a minimum interval
    between issuances and a cap on issuances within a sliding window.
    A rejected attempt never consumes budget.
    """

    def __init__(
        self,
        store: EphemeralStore,
        window_seconds: int = 600,
        max_requests: int = 3,
        min_interval_seconds: int = 60,
        key_prefix: str = "stepup",
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.window = window_seconds
        self.max_requests = max_requests
        self.min_interval = min_interval_seconds
        self.key_prefix = key_prefix
        self.clock = clock

    def get_key(self, scope_key: str) -> str:
        return f"{self.key_prefix}:rate:{scope_key}"

    async def load(self, scope_key: str) -> RateLimitRecord:
        """Read the record with stale timestamps pruned."""
        data = await self.store.get_json(self.get_key(scope_key))
        record = RateLimitRecord.from_dict(data)
        record.prune(self.clock(), self.window)
        return record

    async def check_and_record(self, scope_key: str) -> RateLimitInfo:
        """
        Admit and record one issuance attempt.

        Args:
            scope_key: Throttling partition

        Returns:
            RateLimitInfo for the accepted attempt

        Raises:
            RateLimitedError: locked, too soon, or too many
            StoreUnavailableError: store unreachable
        """
        now = self.clock()
        record = await self.load(scope_key)

        if record.is_locked(now):
            retry_after = math.ceil(record.locked_until - now)
            logger.warning("rate_limited", scope_key=scope_key, reason="locked", retry_after=retry_after)
            raise RateLimitedError(
                "Too many OTP attempts. Try again later.",
                reason=RateLimitedError.LOCKED,
                retry_after=retry_after,
            )

        if record.history and now - record.history[-1] < self.min_interval:
            retry_after = math.ceil(record.history[-1] + self.min_interval - now)
            logger.info("rate_limited", scope_key=scope_key, reason="too_soon", retry_after=retry_after)
            raise RateLimitedError(
                "Please wait before requesting another OTP.",
                reason=RateLimitedError.TOO_SOON,
                retry_after=retry_after,
            )

        if len(record.history) >= self.max_requests:
            retry_after = math.ceil(record.history[0] + self.window - now)
            logger.warning("rate_limited", scope_key=scope_key, reason="too_many", retry_after=retry_after)
            raise RateLimitedError(
                "Too many OTP requests. Please try again later.",
                reason=RateLimitedError.TOO_MANY,
                retry_after=retry_after,
            )

        record.history.append(now)
        await self._save(scope_key, record, now)

        return RateLimitInfo(
            allowed=True,
            remaining=self.max_requests - len(record.history),
            limit=self.max_requests,
            reset_at=record.history[0] + self.window,
        )

    async def lock(self, scope_key: str, seconds: int) -> float:
        """Block issuance for ``seconds``; history is preserved."""
        now = self.clock()
        record = await self.load(scope_key)
        record.locked_until = now + seconds
        await self._save(scope_key, record, now)
        logger.warning("issuance_locked", scope_key=scope_key, seconds=seconds)
        return record.locked_until

    async def reset(self, scope_key: str) -> None:
        await self.store.delete(self.get_key(scope_key))

    async def _save(self, scope_key: str, record: RateLimitRecord, now: float) -> None:
        ttl = self.window
        if record.locked_until:
            ttl = max(ttl, record.locked_until - now)
        await self.store.set_json(self.get_key(scope_key), record.to_dict(), ttl)
