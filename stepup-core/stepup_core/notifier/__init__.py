"""
Code Delivery
=============
Email and SMS notifiers for one-time codes.
"""

from .base import (
    DEFAULT_SUBJECT,
    DeliveryReceipt,
    Notifier,
    mask_destination,
    render_message,
)
from .resend import ResendEmailNotifier
from .twilio import TwilioSmsNotifier
from .router import ChannelRouter

__all__ = [
    "DEFAULT_SUBJECT",
    "DeliveryReceipt",
    "Notifier",
    "mask_destination",
    "render_message",
    "ResendEmailNotifier",
    "TwilioSmsNotifier",
    "ChannelRouter",
]
