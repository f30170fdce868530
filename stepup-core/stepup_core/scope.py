"""
Scope Keys
==========
Derives the key that partitions throttling, challenge and trust state.

Fingerprinted purposes (login step-up) hash actor, client IP and user agent
so a new device or network gets its own challenge and trust window.
Single-purpose flows use the namespaced actor identifier directly.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Iterable, NewType, Optional

ScopeKey = NewType("ScopeKey", str)

MAX_ACTOR_LENGTH = 256
MAX_IP_LENGTH = 64
MAX_UA_LENGTH = 512


@dataclass(frozen=True)
class FingerprintContext:
    """Caller context for fingerprinted purposes."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def sanitize(value, fallback: str, max_length: int) -> str:
    """Strip and cap a field; empty or non-string input becomes ``fallback``."""
    if not isinstance(value, str):
        return fallback
    trimmed = value.strip()
    if not trimmed:
        return fallback
    return trimmed[:max_length]


def sanitize_actor(value) -> str:
    """Any non-empty id (int, UUID, ObjectId) is keyed by its string form."""
    if value is None or isinstance(value, bool):
        return "unknown"
    return sanitize(str(value), "unknown", MAX_ACTOR_LENGTH)


def sanitize_ip(value) -> str:
    cleaned = sanitize(value, "unknown", MAX_IP_LENGTH + 7)
    if cleaned.startswith("::ffff:"):
        cleaned = cleaned[len("::ffff:"):]
    return cleaned[:MAX_IP_LENGTH] or "unknown"


class ScopeKeyBuilder:
    """Builds scope keys; pure and never raises on malformed input."""

    def __init__(self, fingerprint_purposes: Iterable[str] = ("login",)):
        self.fingerprint_purposes = set(fingerprint_purposes)

    def is_fingerprinted(self, purpose: str) -> bool:
        return purpose in self.fingerprint_purposes

    def build(
        self,
        purpose: str,
        actor_id,
        context: Optional[FingerprintContext] = None,
    ) -> ScopeKey:
        actor = sanitize_actor(actor_id)

        if not self.is_fingerprinted(purpose):
            return ScopeKey(f"{purpose}:{actor}")

        context = context or FingerprintContext()
        fields = [
            actor,
            sanitize_ip(context.ip_address),
            sanitize(context.user_agent, "Unknown", MAX_UA_LENGTH),
        ]
        # JSON keeps field boundaries unambiguous whatever the values contain
        raw = json.dumps(fields, separators=(",", ":"), ensure_ascii=False)
        digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()
        return ScopeKey(f"{purpose}:{digest}")
