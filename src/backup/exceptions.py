"""
Error taxonomy for the backup upload workflow.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Category of an upload failure."""

    AUTH_FAILURE = "auth_failure"
    CONFIG_MISSING = "config_missing"
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"
    NETWORK_POLICY_VIOLATION = "network_policy_violation"
    STALLED = "stalled"
    INTEGRITY_MISMATCH = "integrity_mismatch"
    SESSION_EXPIRED = "session_expired"
    REMOTE_REJECTED = "remote_rejected"
    PROTOCOL_VIOLATION = "protocol_violation"
    UNREADABLE_FILE = "unreadable_file"
    NETWORK_FAILURE = "network_failure"


class UploadError(RuntimeError):
    """Raised by upload components; ``kind`` tells the orchestrator how to react."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status: Optional[int] = None,
        body: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status
        self.body = body
        self.details = details or {}

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.message} (HTTP {self.status})"
        return self.message
