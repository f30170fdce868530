"""
OTP Issuer
==========
Generates, delivers and stores one-time codes.
"""

import asyncio
import time
from typing import Callable, Optional

import structlog

from stepup_core.errors import DeliveryFailedError
from stepup_core.notifier.base import DEFAULT_SUBJECT, Notifier, mask_destination
from stepup_core.store import EphemeralStore
from .hashing import generate_otp, generate_salt, hash_otp
from .models import IssuedChallenge, OtpChallenge, OtpChannel

logger = structlog.get_logger(__name__)


def challenge_key(key_prefix: str, scope_key: str) -> str:
    """Store key holding the active challenge for a scope key."""
    return f"{key_prefix}:challenge:{scope_key}"


class OtpIssuer:
    """
    Issues one challenge per scope key.

    Delivery happens before the challenge is stored, so a failed send never
    leaves a code behind that the user could not have received. Re-issuing
    overwrites the previous challenge.
    """

    def __init__(
        self,
        store: EphemeralStore,
        notifier: Notifier,
        otp_length: int = 6,
        ttl_seconds: int = 300,
        subject: str = DEFAULT_SUBJECT,
        send_timeout: float = 10.0,
        key_prefix: str = "stepup",
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.notifier = notifier
        self.otp_length = otp_length
        self.ttl_seconds = ttl_seconds
        self.subject = subject
        self.send_timeout = send_timeout
        self.key_prefix = key_prefix
        self.clock = clock

    async def issue(
        self,
        scope_key: str,
        destination: str,
        channel: OtpChannel,
        *,
        binding: Optional[str] = None,
    ) -> IssuedChallenge:
        """
        Generate and deliver a code, then persist the challenge.

        Args:
            scope_key: Challenge partition
            destination: Email address or phone number
            channel: Delivery channel
            binding: Optional value the code is bound to (e.g. a language key)

        Returns:
            IssuedChallenge with the code lifetime

        Raises:
            DeliveryFailedError: code could not be sent; any earlier
                challenge is dropped and nothing new is stored
            StoreUnavailableError: store unreachable
        """
        code = generate_otp(self.otp_length)
        try:
            await self._deliver(destination, channel, code)
        except DeliveryFailedError:
            await self.invalidate(scope_key)
            raise

        now = self.clock()
        salt = generate_salt()
        challenge = OtpChallenge(
            code_hash=hash_otp(code, salt),
            salt=salt,
            channel=channel,
            expires_at=now + self.ttl_seconds,
            created_at=now,
            binding=binding,
        )
        await self.store.set_json(
            challenge_key(self.key_prefix, scope_key),
            challenge.to_dict(),
            self.ttl_seconds,
        )

        logger.info(
            "otp_issued",
            scope_key=scope_key,
            channel=channel.value,
            to=mask_destination(destination),
            expires_in=self.ttl_seconds,
        )

        return IssuedChallenge(
            expires_in_seconds=self.ttl_seconds,
            expires_at=challenge.expires_at,
            channel=channel,
        )

    async def invalidate(self, scope_key: str) -> None:
        """Drop any pending challenge."""
        await self.store.delete(challenge_key(self.key_prefix, scope_key))

    async def _deliver(self, destination: str, channel: OtpChannel, code: str) -> None:
        try:
            await asyncio.wait_for(
                self.notifier.send(
                    destination,
                    channel,
                    code,
                    subject=self.subject,
                    expires_in=self.ttl_seconds,
                ),
                timeout=self.send_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                "otp_delivery_timeout",
                channel=channel.value,
                to=mask_destination(destination),
                timeout=self.send_timeout,
            )
            raise DeliveryFailedError(
                "OTP delivery timed out.",
                channel=channel.value,
                provider=self.notifier.name,
            ) from e
        except DeliveryFailedError:
            logger.warning("otp_delivery_failed", channel=channel.value, to=mask_destination(destination))
            raise
