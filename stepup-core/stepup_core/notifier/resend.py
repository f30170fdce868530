"""
Resend Email Notifier
=====================
Delivers codes through the Resend transactional email API.
"""

from typing import Optional

import httpx
import structlog

from stepup_core.errors import DeliveryFailedError
from stepup_core.otp.models import OtpChannel
from .base import DEFAULT_SUBJECT, DeliveryReceipt, Notifier, mask_destination, render_message

logger = structlog.get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class ResendEmailNotifier(Notifier):
    """Email delivery over Resend's HTTP API."""

    name = "resend"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def initialize(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        await super().initialize()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        await super().close()

    async def send(
        self,
        destination: str,
        channel: OtpChannel,
        code: str,
        *,
        subject: str = DEFAULT_SUBJECT,
        expires_in: int = 300,
    ) -> DeliveryReceipt:
        if channel != OtpChannel.EMAIL:
            raise DeliveryFailedError(
                f"{self.name} cannot deliver over {channel.value}",
                channel=channel.value,
                provider=self.name,
            )
        if not self.api_key or not self.from_email:
            raise DeliveryFailedError(
                "OTP email service is not configured.",
                channel=channel.value,
                provider=self.name,
            )
        if self._client is None:
            await self.initialize()

        payload = {
            "from": self.from_email,
            "to": destination,
            "subject": subject,
            "text": render_message(code, expires_in),
        }

        try:
            response = await self._client.post(
                RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            logger.error("email_send_failed", provider=self.name, to=mask_destination(destination), error=str(e))
            raise DeliveryFailedError(
                "OTP email could not be sent.",
                channel=channel.value,
                provider=self.name,
            ) from e

        if not response.is_success:
            logger.error(
                "email_send_rejected",
                provider=self.name,
                to=mask_destination(destination),
                status_code=response.status_code,
            )
            raise DeliveryFailedError(
                f"OTP email rejected by provider (status {response.status_code}).",
                channel=channel.value,
                provider=self.name,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        logger.info("email_sent", provider=self.name, to=mask_destination(destination))
        return DeliveryReceipt(
            provider=self.name,
            channel=channel,
            provider_message_id=data.get("id"),
            raw_response=data,
        )
