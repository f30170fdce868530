"""
OTP Models
==========
Data models and enums for OTP issuance and verification.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional


class OtpChannel(str, Enum):
    """OTP delivery channels."""
    EMAIL = "email"
    SMS = "sms"


@dataclass
class OtpChallenge:
    """A single issued code awaiting verification."""
    code_hash: str
    salt: str
    channel: OtpChannel
    expires_at: float
    created_at: float
    attempts: int = 0
    binding: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def remaining_seconds(self, now: float) -> float:
        return self.expires_at - now

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["channel"] = self.channel.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OtpChallenge":
        return cls(
            code_hash=data["code_hash"],
            salt=data["salt"],
            channel=OtpChannel(data["channel"]),
            expires_at=float(data["expires_at"]),
            created_at=float(data.get("created_at", 0)),
            attempts=int(data.get("attempts", 0)),
            binding=data.get("binding"),
        )


@dataclass(frozen=True)
class IssuedChallenge:
    """Result of a successful issuance."""
    expires_in_seconds: int
    expires_at: float
    channel: OtpChannel
