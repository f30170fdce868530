"""
OTP Hashing Utilities
=====================
Code generation and salted hashing for stored challenges.
"""

import hashlib
import hmac
import secrets


def generate_otp(length: int = 6) -> str:
    """
    Generate a numeric OTP from the system CSPRNG.

    Args:
        length: Number of digits

    Returns:
        Zero-padded numeric string of exactly ``length`` digits
    """
    return str(secrets.randbelow(10 ** length)).zfill(length)


def generate_salt() -> str:
    """Generate a random salt for OTP hashing."""
    return secrets.token_hex(16)


def hash_otp(otp: str, salt: str) -> str:
    """Hash an OTP with salt using SHA-256."""
    return hashlib.sha256(f"{salt}:{otp}".encode()).hexdigest()


def verify_otp_hash(otp: str, salt: str, stored_hash: str) -> bool:
    """
    Verify an OTP against its hash.

    Uses constant-time comparison to prevent timing attacks.
    """
    computed_hash = hash_otp(otp, salt)
    return hmac.compare_digest(computed_hash, stored_hash)


def normalize_code(value) -> str:
    """Coerce a submitted code to a stripped string."""
    if value is None:
        return ""
    return str(value).strip()
