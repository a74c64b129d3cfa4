"""
Resumable session persistence.
"""

from .store import SessionStore, now_millis

__all__ = ["SessionStore", "now_millis"]
