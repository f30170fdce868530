"""
Twilio SMS Notifier
===================
Delivers codes through the Twilio Messages API.
"""

from typing import Optional

import httpx
import structlog

from stepup_core.errors import DeliveryFailedError
from stepup_core.otp.models import OtpChannel
from .base import DEFAULT_SUBJECT, DeliveryReceipt, Notifier, mask_destination, render_message

logger = structlog.get_logger(__name__)


class TwilioSmsNotifier(Notifier):
    """
    SMS delivery over Twilio.

    Features:
    - Basic auth with account SID and auth token
    - Sender number or messaging service SID
    """

    name = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        messaging_service_sid: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.messaging_service_sid = messaging_service_sid
        self.timeout = timeout
        self.base_url = f"https://api.twilio.com/2010-04-01/Accounts/{account_sid}"
        self._client = client
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(
            self.account_sid
            and self.auth_token
            and (self.from_number or self.messaging_service_sid)
        )

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
        if channel != OtpChannel.SMS:
            raise DeliveryFailedError(
                f"{self.name} cannot deliver over {channel.value}",
                channel=channel.value,
                provider=self.name,
            )
        if not self.configured:
            raise DeliveryFailedError(
                "OTP SMS service is not configured.",
                channel=channel.value,
                provider=self.name,
            )
        if self._client is None:
            await self.initialize()

        payload = {
            "To": destination,
            "Body": render_message(code, expires_in),
        }
        if self.messaging_service_sid:
            payload["MessagingServiceSid"] = self.messaging_service_sid
        else:
            payload["From"] = self.from_number

        try:
            response = await self._client.post(
                f"{self.base_url}/Messages.json",
                data=payload,
                auth=(self.account_sid, self.auth_token),
            )
        except httpx.HTTPError as e:
            logger.error("sms_send_failed", provider=self.name, to=mask_destination(destination), error=str(e))
            raise DeliveryFailedError(
                "OTP SMS could not be sent.",
                channel=channel.value,
                provider=self.name,
            ) from e

        if response.status_code != 201:
            logger.error(
                "sms_send_rejected",
                provider=self.name,
                to=mask_destination(destination),
                status_code=response.status_code,
            )
            raise DeliveryFailedError(
                f"OTP SMS rejected by provider (status {response.status_code}).",
                channel=channel.value,
                provider=self.name,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        logger.info("sms_sent", provider=self.name, to=mask_destination(destination))
        return DeliveryReceipt(
            provider=self.name,
            channel=channel,
            provider_message_id=data.get("sid"),
            raw_response=data,
        )
