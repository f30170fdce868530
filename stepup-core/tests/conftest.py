"""
Shared fixtures for stepup-core tests.
"""

from typing import List, Optional, Tuple

import pytest

from stepup_core.errors import DeliveryFailedError
from stepup_core.notifier import DEFAULT_SUBJECT, DeliveryReceipt, Notifier
from stepup_core.otp import OtpChannel
from stepup_core.store import InMemoryStore


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier(Notifier):
    """Captures every sent code instead of delivering it."""

    name = "recording"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Tuple[str, OtpChannel, str, str]] = []

    async def send(
        self,
        destination: str,
        channel: OtpChannel,
        code: str,
        *,
        subject: str = DEFAULT_SUBJECT,
        expires_in: int = 300,
    ) -> DeliveryReceipt:
        if self.fail:
            raise DeliveryFailedError("provider down", channel=channel.value, provider=self.name)
        self.sent.append((destination, channel, code, subject))
        return DeliveryReceipt(provider=self.name, channel=channel)

    @property
    def last_code(self) -> Optional[str]:
        return self.sent[-1][2] if self.sent else None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(store, notifier, clock):
    from stepup_core.engine import StepUpEngine

    return StepUpEngine(store, notifier, clock=clock)


def wrong_code(code: str) -> str:
    """A code of the same length that differs from ``code``."""
    return str((int(code) + 1) % (10 ** len(code))).zfill(len(code))
