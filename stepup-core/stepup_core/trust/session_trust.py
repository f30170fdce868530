"""
Session Trust
=============
Time-boxed "recently verified" records per scope key.
"""

import time
from typing import Callable, Optional

import structlog

from stepup_core.store import EphemeralStore

logger = structlog.get_logger(__name__)


class SessionTrust:
    """
    Grants and checks step-up trust.

    Kept separate from verification so one successful check can authorize
    a window of later actions without re-prompting.
    """

    def __init__(
        self,
        store: EphemeralStore,
        key_prefix: str = "stepup",
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.key_prefix = key_prefix
        self.clock = clock

    def get_key(self, scope_key: str) -> str:
        return f"{self.key_prefix}:trust:{scope_key}"

    async def grant(self, scope_key: str, ttl_seconds: int) -> float:
        """Record trust for ``ttl_seconds``; returns the expiry timestamp."""
        verified_until = self.clock() + ttl_seconds
        await self.store.set_json(
            self.get_key(scope_key),
            {"verified_until": verified_until},
            ttl_seconds,
        )
        logger.info("trust_granted", scope_key=scope_key, ttl=ttl_seconds)
        return verified_until

    async def verified_until(self, scope_key: str) -> Optional[float]:
        """Expiry of the active trust record, deleting it if stale."""
        key = self.get_key(scope_key)
        data = await self.store.get_json(key)
        if data is None:
            return None

        try:
            verified_until = float(data.get("verified_until") or 0)
        except (TypeError, ValueError):
            verified_until = 0

        if verified_until <= self.clock():
            await self.store.delete(key)
            logger.info("trust_expired", scope_key=scope_key)
            return None
        return verified_until

    async def is_trusted(self, scope_key: str) -> bool:
        return await self.verified_until(scope_key) is not None

    async def revoke(self, scope_key: str) -> None:
        await self.store.delete(self.get_key(scope_key))
        logger.info("trust_revoked", scope_key=scope_key)
