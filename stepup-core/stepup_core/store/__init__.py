"""
Ephemeral Store
===============
TTL-bound key/value backends for challenges, rate limits and trust records.
"""

from .base import EphemeralStore, ttl_millis
from .in_memory import InMemoryStore
from .redis_store import RedisStore

__all__ = [
    "EphemeralStore",
    "InMemoryStore",
    "RedisStore",
    "ttl_millis",
]
