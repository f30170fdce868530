"""
Step-up Errors
==============
Closed set of failure kinds raised by the OTP engine.

Policy failures (rate limited, not found, expired, locked out, mismatch) are
terminal for the current attempt. Infrastructure failures (delivery failed,
store unavailable) propagate to the caller unretried.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure kinds surfaced to callers."""
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    LOCKED_OUT = "locked_out"
    MISMATCH = "mismatch"
    DELIVERY_FAILED = "delivery_failed"
    STORE_UNAVAILABLE = "store_unavailable"

    @property
    def is_infrastructure(self) -> bool:
        return self in (ErrorKind.DELIVERY_FAILED, ErrorKind.STORE_UNAVAILABLE)


class StepUpError(Exception):
    """Base exception for all step-up engine failures."""

    kind: ErrorKind

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"[{self.kind.value}] {message}")


class RateLimitedError(StepUpError):
    """Issuance refused by the rate limiter."""

    kind = ErrorKind.RATE_LIMITED

    LOCKED = "locked"
    TOO_SOON = "too_soon"
    TOO_MANY = "too_many"

    def __init__(self, message: str, reason: str, retry_after: Optional[int] = None):
        self.reason = reason
        self.retry_after = retry_after
        super().__init__(message)


class ChallengeNotFoundError(StepUpError):
    """No active challenge for the scope key."""

    kind = ErrorKind.NOT_FOUND


class ChallengeExpiredError(StepUpError):
    """The challenge passed its absolute expiry."""

    kind = ErrorKind.EXPIRED


class LockedOutError(StepUpError):
    """Verification attempt ceiling reached."""

    kind = ErrorKind.LOCKED_OUT


class CodeMismatchError(StepUpError):
    """Submitted code (or binding) did not match."""

    kind = ErrorKind.MISMATCH

    def __init__(self, message: str, attempts_remaining: int):
        self.attempts_remaining = attempts_remaining
        super().__init__(message)


class DeliveryFailedError(StepUpError):
    """The notifier could not send the code."""

    kind = ErrorKind.DELIVERY_FAILED

    def __init__(self, message: str, channel: Optional[str] = None, provider: Optional[str] = None):
        self.channel = channel
        self.provider = provider
        super().__init__(message)


class StoreUnavailableError(StepUpError):
    """The ephemeral store is unreachable or timed out."""

    kind = ErrorKind.STORE_UNAVAILABLE


class UnknownPurposeError(ValueError):
    """Raised when a purpose has no registered policy."""

    def __init__(self, purpose: str):
        self.purpose = purpose
        super().__init__(f"No step-up policy registered for purpose '{purpose}'")


class UnknownChannelError(ValueError):
    """Raised when a requested delivery channel does not exist."""

    def __init__(self, channel):
        self.channel = channel
        super().__init__(f"Unknown OTP delivery channel '{channel}'")
