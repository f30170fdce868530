"""
Step-up Configuration
=====================
Per-purpose OTP policies and environment-backed engine settings.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional

from stepup_core.otp.models import OtpChannel


@dataclass(frozen=True)
class PurposePolicy:
    """Throttling, challenge and trust settings for one use-site."""
    otp_length: int = 6
    otp_ttl_seconds: int = 300               # 5 minutes
    rate_limit_window_seconds: int = 600     # Sliding window
    rate_limit_max_requests: int = 3         # Issuances per window
    min_request_interval_seconds: int = 60   # Min time between OTPs
    max_verify_attempts: int = 5
    session_trust_ttl_seconds: int = 43200   # 12 hours
    lockout_seconds: Optional[int] = None    # Issuance cool-down after lockout
    fingerprint: bool = False                # Hash actor + IP + user agent
    default_channel: OtpChannel = OtpChannel.EMAIL
    subject: str = "Your verification code"

    def __post_init__(self):
        if not 4 <= self.otp_length <= 10:
            raise ValueError("otp_length must be between 4 and 10")
        for name in (
            "otp_ttl_seconds",
            "rate_limit_window_seconds",
            "rate_limit_max_requests",
            "max_verify_attempts",
            "session_trust_ttl_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.min_request_interval_seconds < 0:
            raise ValueError("min_request_interval_seconds must not be negative")
        if self.lockout_seconds is not None and self.lockout_seconds <= 0:
            raise ValueError("lockout_seconds must be positive when set")

    def with_overrides(self, **changes) -> "PurposePolicy":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


LOGIN_POLICY = PurposePolicy(
    rate_limit_window_seconds=600,
    rate_limit_max_requests=3,
    lockout_seconds=600,
    session_trust_ttl_seconds=12 * 60 * 60,
    fingerprint=True,
    subject="Login Verification",
)

AUDIO_POLICY = PurposePolicy(
    rate_limit_window_seconds=900,
    rate_limit_max_requests=5,
    session_trust_ttl_seconds=600,
    subject="Audio Tweet OTP",
)

LANGUAGE_POLICY = PurposePolicy(
    rate_limit_window_seconds=900,
    rate_limit_max_requests=5,
    session_trust_ttl_seconds=300,
    subject="Language Change OTP",
)

DEFAULT_POLICIES = {
    "login": LOGIN_POLICY,
    "audio": AUDIO_POLICY,
    "language": LANGUAGE_POLICY,
}


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


@dataclass
class StepUpConfig:
    """Engine-wide settings, read from the environment by default."""
    redis_url: Optional[str] = field(default_factory=lambda: os.environ.get("REDIS_URL"))
    key_prefix: str = field(default_factory=lambda: os.environ.get("STEPUP_KEY_PREFIX", "stepup"))
    store_timeout_seconds: float = field(
        default_factory=lambda: _float_env("STEPUP_STORE_TIMEOUT", 2.0)
    )
    notifier_timeout_seconds: float = field(
        default_factory=lambda: _float_env("STEPUP_NOTIFIER_TIMEOUT", 10.0)
    )

    # Resend (email)
    resend_api_key: str = field(default_factory=lambda: os.environ.get("RESEND_API_KEY", ""))
    from_email: str = field(default_factory=lambda: os.environ.get("OTP_FROM_EMAIL", ""))

    # Twilio (SMS)
    twilio_account_sid: str = field(default_factory=lambda: os.environ.get("TWILIO_ACCOUNT_SID", ""))
    twilio_auth_token: str = field(default_factory=lambda: os.environ.get("TWILIO_AUTH_TOKEN", ""))
    twilio_from_number: str = field(default_factory=lambda: os.environ.get("TWILIO_FROM_NUMBER", ""))

    @classmethod
    def from_env(cls) -> "StepUpConfig":
        return cls()

    @property
    def email_configured(self) -> bool:
        return bool(self.resend_api_key and self.from_email)

    @property
    def sms_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number)
