"""
Notifier Interface
==================
Base class for delivering one-time codes over a channel.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from stepup_core.otp.models import OtpChannel

logger = structlog.get_logger(__name__)

DEFAULT_SUBJECT = "Your verification code"


@dataclass
class DeliveryReceipt:
    """Provider acknowledgement of a sent code."""
    provider: str
    channel: OtpChannel
    provider_message_id: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None


class Notifier(ABC):
    """
    Abstract base class for code delivery.

    ``send`` returns a receipt on success and raises DeliveryFailedError on
    any failure; it never reports failure through its return value.
    """

    name: str = "base"

    async def initialize(self) -> None:
        """Initialize the notifier (e.g., create HTTP clients)."""
        logger.info("notifier_initialized", provider=self.name)

    async def close(self) -> None:
        """Clean up resources (e.g., close HTTP clients)."""
        logger.info("notifier_closed", provider=self.name)

    @abstractmethod
    async def send(
        self,
        destination: str,
        channel: OtpChannel,
        code: str,
        *,
        subject: str = DEFAULT_SUBJECT,
        expires_in: int = 300,
    ) -> DeliveryReceipt:
        """
        Deliver ``code`` to ``destination``.

        Args:
            destination: Email address or E.164 phone number
            channel: Delivery channel
            code: The one-time code
            subject: Email subject line / message heading
            expires_in: Code lifetime in seconds, quoted in the message

        Returns:
            DeliveryReceipt from the provider

        Raises:
            DeliveryFailedError: provider unconfigured, unreachable or refused
        """


def render_message(code: str, expires_in: int) -> str:
    """Plain-text body shared by every channel."""
    if expires_in % 60 == 0:
        minutes = expires_in // 60
        lifetime = f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    else:
        lifetime = f"{expires_in} seconds"
    return f"Your OTP is {code}. It expires in {lifetime}."


def mask_destination(destination: Optional[str]) -> str:
    """Mask an email or phone number for logs."""
    if not destination:
        return ""
    if "@" in destination:
        local, _, domain = destination.partition("@")
        return f"{local[:2]}***@{domain}"
    return destination[:6] + "****"
