"""
Step-up Core Library
====================
One-time-code step-up verification and session trust for the Twiller
backend: login step-up, audio-tweet gating and preferred-language change.
"""

__version__ = "0.3.0"

# Errors
from stepup_core.errors import (
    ErrorKind,
    StepUpError,
    RateLimitedError,
    ChallengeNotFoundError,
    ChallengeExpiredError,
    LockedOutError,
    CodeMismatchError,
    DeliveryFailedError,
    StoreUnavailableError,
    UnknownPurposeError,
    UnknownChannelError,
)

# Configuration
from stepup_core.config import (
    PurposePolicy,
    StepUpConfig,
    LOGIN_POLICY,
    AUDIO_POLICY,
    LANGUAGE_POLICY,
    DEFAULT_POLICIES,
)

# Store
from stepup_core.store import EphemeralStore, InMemoryStore, RedisStore

# Notifiers
from stepup_core.notifier import (
    Notifier,
    DeliveryReceipt,
    ResendEmailNotifier,
    TwilioSmsNotifier,
    ChannelRouter,
)

# OTP
from stepup_core.otp import (
    OtpChannel,
    OtpChallenge,
    OtpIssuer,
    OtpVerifier,
    generate_otp,
)

# Rate Limiting
from stepup_core.rate_limit import IssuanceRateLimiter, RateLimitInfo, RateLimitRecord

# Trust
from stepup_core.trust import SessionTrust

# Scope keys and device context
from stepup_core.scope import ScopeKey, ScopeKeyBuilder, FingerprintContext
from stepup_core.device import DeviceInfo, client_ip, parse_user_agent

# Engine
from stepup_core.engine import (
    StepUpEngine,
    ChallengeIssued,
    VerificationResult,
    build_notifier,
)

__all__ = [
    # Errors
    "ErrorKind",
    "StepUpError",
    "RateLimitedError",
    "ChallengeNotFoundError",
    "ChallengeExpiredError",
    "LockedOutError",
    "CodeMismatchError",
    "DeliveryFailedError",
    "StoreUnavailableError",
    "UnknownPurposeError",
    "UnknownChannelError",
    # Configuration
    "PurposePolicy",
    "StepUpConfig",
    "LOGIN_POLICY",
    "AUDIO_POLICY",
    "LANGUAGE_POLICY",
    "DEFAULT_POLICIES",
    # Store
    "EphemeralStore",
    "InMemoryStore",
    "RedisStore",
    # Notifiers
    "Notifier",
    "DeliveryReceipt",
    "ResendEmailNotifier",
    "TwilioSmsNotifier",
    "ChannelRouter",
    # OTP
    "OtpChannel",
    "OtpChallenge",
    "OtpIssuer",
    "OtpVerifier",
    "generate_otp",
    # Rate Limiting
    "IssuanceRateLimiter",
    "RateLimitInfo",
    "RateLimitRecord",
    # Trust
    "SessionTrust",
    # Scope keys and device context
    "ScopeKey",
    "ScopeKeyBuilder",
    "FingerprintContext",
    "DeviceInfo",
    "client_ip",
    "parse_user_agent",
    # Engine
    "StepUpEngine",
    "ChallengeIssued",
    "VerificationResult",
    "build_notifier",
]
