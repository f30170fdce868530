"""
Session Trust
=============
Post-verification trust windows.
"""

from .session_trust import SessionTrust

__all__ = [
    "SessionTrust",
]
