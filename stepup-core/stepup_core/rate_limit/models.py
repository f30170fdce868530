"""
Rate Limit Models
=================
Issuance history record and limiter decisions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class RateLimitRecord:
    """Issuance timestamps within the window plus an optional cool-down."""
    history: List[float] = field(default_factory=list)
    locked_until: Optional[float] = None

    def is_locked(self, now: float) -> bool:
        return self.locked_until is not None and self.locked_until > now

    def prune(self, now: float, window: float) -> None:
        """Drop timestamps that fell out of the sliding window."""
        self.history = sorted(ts for ts in self.history if now - ts < window)

    def to_dict(self) -> Dict[str, Any]:
        return {"history": list(self.history), "locked_until": self.locked_until}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RateLimitRecord":
        if not data:
            return cls()
        history = [float(ts) for ts in data.get("history") or [] if isinstance(ts, (int, float))]
        locked_until = data.get("locked_until")
        return cls(
            history=history,
            locked_until=float(locked_until) if locked_until else None,
        )


@dataclass
class RateLimitInfo:
    """Outcome of an accepted issuance attempt."""
    allowed: bool
    remaining: int
    limit: int
    reset_at: float  # Unix timestamp when the oldest entry leaves the window
    retry_after: Optional[int] = None
