"""
OTP Issuance and Verification
=============================
Secure code generation with delivery-first issuance and attempt limits.
"""

from .models import OtpChannel, OtpChallenge, IssuedChallenge
from .hashing import generate_otp, generate_salt, hash_otp, verify_otp_hash, normalize_code
from .issuer import OtpIssuer, challenge_key
from .verifier import OtpVerifier

__all__ = [
    # Models
    "OtpChannel",
    "OtpChallenge",
    "IssuedChallenge",
    # Hashing
    "generate_otp",
    "generate_salt",
    "hash_otp",
    "verify_otp_hash",
    "normalize_code",
    # Issue / verify
    "OtpIssuer",
    "OtpVerifier",
    "challenge_key",
]
