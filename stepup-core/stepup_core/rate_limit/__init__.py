"""
Rate Limiting
=============
Sliding-window issuance throttling per scope key.
"""

from .models import RateLimitRecord, RateLimitInfo
from .limiter import IssuanceRateLimiter

__all__ = [
    "RateLimitRecord",
    "RateLimitInfo",
    "IssuanceRateLimiter",
]
