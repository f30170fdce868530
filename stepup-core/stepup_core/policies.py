"""
Access Policies
===============
Predicates a caller can run in front of a step-up gate.

These are independent of the OTP engine; the gate only evaluates them.
"""

from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from stepup_core.device import DeviceInfo


class PolicyViolation(Exception):
    """Raised by a policy that refuses the request."""

    def __init__(self, message: str, status_code: int = 403):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


AccessPolicy = Callable[[DeviceInfo], None]


@dataclass
class TimeWindowPolicy:
    """
    Allow a device category only inside a daily time window.

    Example:
        # Mobile login only between 10:00 and 13:00 IST
        TimeWindowPolicy(start=time(10), end=time(13), tz="Asia/Kolkata")
    """
    start: time
    end: time
    tz: str = "UTC"
    device_category: Optional[str] = "mobile"
    message: Optional[str] = None
    now: Callable[[], datetime] = lambda: datetime.now(timezone.utc)

    def is_allowed(self, at: Optional[datetime] = None) -> bool:
        moment = (at or self.now()).astimezone(ZoneInfo(self.tz))
        current = moment.time().replace(tzinfo=None)
        if self.start <= self.end:
            return self.start <= current < self.end
        # Window wraps past midnight
        return current >= self.start or current < self.end

    def __call__(self, device: DeviceInfo) -> None:
        if self.device_category and device.device_category != self.device_category:
            return
        if not self.is_allowed():
            raise PolicyViolation(self.message or self._default_message())

    def _default_message(self) -> str:
        return (
            f"Access is allowed only between {self.start.strftime('%H:%M')} "
            f"and {self.end.strftime('%H:%M')} ({self.tz})."
        )
