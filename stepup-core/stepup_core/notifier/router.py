"""
Channel Router
==============
Dispatches each send to the notifier registered for its channel.
"""

from typing import Dict

from stepup_core.errors import DeliveryFailedError
from stepup_core.otp.models import OtpChannel
from .base import DEFAULT_SUBJECT, DeliveryReceipt, Notifier


class ChannelRouter(Notifier):
    """Routes email and SMS sends to separate providers."""

    name = "router"

    def __init__(self, notifiers: Dict[OtpChannel, Notifier]):
        self.notifiers = dict(notifiers)

    async def initialize(self) -> None:
        for notifier in self.notifiers.values():
            await notifier.initialize()

    async def close(self) -> None:
        for notifier in self.notifiers.values():
            await notifier.close()

    async def send(
        self,
        destination: str,
        channel: OtpChannel,
        code: str,
        *,
        subject: str = DEFAULT_SUBJECT,
        expires_in: int = 300,
    ) -> DeliveryReceipt:
        notifier = self.notifiers.get(channel)
        if notifier is None:
            raise DeliveryFailedError(
                f"No notifier configured for channel '{channel.value}'",
                channel=channel.value,
                provider=self.name,
            )
        return await notifier.send(
            destination,
            channel,
            code,
            subject=subject,
            expires_in=expires_in,
        )

