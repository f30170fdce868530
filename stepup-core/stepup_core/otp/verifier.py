"""
OTP Verifier
============
Checks submitted codes against the stored challenge.

Per scope key a challenge moves NoChallenge -> Pending -> one of
Verified, Expired or LockedOut. Every terminal transition deletes the
challenge; a failed attempt keeps the challenge's original absolute expiry.
"""

import time
from typing import Callable, Optional

import structlog

from stepup_core.errors import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    CodeMismatchError,
    LockedOutError,
)
from stepup_core.rate_limit import IssuanceRateLimiter
from stepup_core.store import EphemeralStore
from .hashing import normalize_code, verify_otp_hash
from .issuer import challenge_key
from .models import OtpChallenge

logger = structlog.get_logger(__name__)


class OtpVerifier:
    """Attempt-limited verification of issued challenges."""

    def __init__(
        self,
        store: EphemeralStore,
        max_attempts: int = 5,
        rate_limiter: Optional[IssuanceRateLimiter] = None,
        lockout_seconds: Optional[int] = None,
        key_prefix: str = "stepup",
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            store: Ephemeral store holding challenges
            max_attempts: Failed attempts allowed before lockout
            rate_limiter: Limiter to lock when ``lockout_seconds`` is set
            lockout_seconds: Issuance cool-down applied on lockout
            key_prefix: Store key namespace
            clock: Returns the current time in seconds
        """
        self.store = store
        self.max_attempts = max_attempts
        self.rate_limiter = rate_limiter
        self.lockout_seconds = lockout_seconds
        self.key_prefix = key_prefix
        self.clock = clock

    async def verify(
        self,
        scope_key: str,
        code,
        *,
        binding: Optional[str] = None,
    ) -> OtpChallenge:
        """
        Consume the challenge if ``code`` (and ``binding``) match.

        Returns:
            The consumed challenge

        Raises:
            ChallengeNotFoundError: no active challenge
            ChallengeExpiredError: challenge expired
            LockedOutError: attempt ceiling reached
            CodeMismatchError: wrong code or binding
            StoreUnavailableError: store unreachable
        """
        key = challenge_key(self.key_prefix, scope_key)
        now = self.clock()

        data = await self.store.get_json(key)
        if data is None:
            logger.info("otp_verify_failed", scope_key=scope_key, reason="not_found")
            raise ChallengeNotFoundError("Invalid or expired OTP.")

        try:
            challenge = OtpChallenge.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.warning("otp_challenge_corrupt", scope_key=scope_key)
            await self.store.delete(key)
            raise ChallengeNotFoundError("Invalid or expired OTP.")

        if challenge.is_expired(now):
            await self.store.delete(key)
            logger.info("otp_verify_failed", scope_key=scope_key, reason="expired")
            raise ChallengeExpiredError("OTP expired.")

        if challenge.attempts >= self.max_attempts:
            await self._lock_out(key, scope_key)

        code_ok = verify_otp_hash(normalize_code(code), challenge.salt, challenge.code_hash)
        if code_ok and binding == challenge.binding:
            await self.store.delete(key)
            logger.info("otp_verified", scope_key=scope_key, attempts=challenge.attempts)
            return challenge

        challenge.attempts += 1
        if challenge.attempts >= self.max_attempts:
            await self._lock_out(key, scope_key)

        await self.store.set_json(key, challenge.to_dict(), challenge.remaining_seconds(now))
        remaining = self.max_attempts - challenge.attempts
        logger.warning(
            "otp_verify_failed",
            scope_key=scope_key,
            reason="binding_mismatch" if code_ok else "mismatch",
            attempts_remaining=remaining,
        )
        raise CodeMismatchError("Invalid OTP.", attempts_remaining=remaining)

    async def _lock_out(self, key: str, scope_key: str) -> None:
        await self.store.delete(key)
        if self.rate_limiter is not None and self.lockout_seconds:
            await self.rate_limiter.lock(scope_key, self.lockout_seconds)
        logger.warning("otp_locked_out", scope_key=scope_key, max_attempts=self.max_attempts)
        raise LockedOutError("Too many invalid OTP attempts.")
