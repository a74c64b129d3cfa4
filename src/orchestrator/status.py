"""
User-facing upload status derived from engine outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from backup.exceptions import ErrorKind
from backup.types import DEFAULT_RETRY_DELAY_MINUTES, UploadOutcome, UploadProgress

# Failures worth retrying later without user intervention.
RETRYABLE_KINDS = {
    None,
    ErrorKind.NETWORK_POLICY_VIOLATION,
    ErrorKind.NETWORK_FAILURE,
    ErrorKind.STALLED,
    ErrorKind.SESSION_EXPIRED,
    ErrorKind.REMOTE_REJECTED,
    ErrorKind.PROTOCOL_VIOLATION,
    ErrorKind.INTEGRITY_MISMATCH,
}


class StatusKind(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    SUCCESS = "success"
    FAILED = "failed"
    NEEDS_CONSENT = "needs-consent"
    RETRY_SCHEDULED = "retry-scheduled"


@dataclass(frozen=True)
class UploadStatus:
    """Tagged status; only the fields relevant to ``kind`` are populated."""

    kind: StatusKind
    progress: Optional[UploadProgress] = None
    file_name: Optional[str] = None
    file_size_bytes: Optional[int] = None
    error: Optional[str] = None
    retry_at_millis: Optional[int] = None

    @classmethod
    def idle(cls) -> "UploadStatus":
        return cls(StatusKind.IDLE)

    @classmethod
    def uploading(cls, progress: UploadProgress) -> "UploadStatus":
        return cls(StatusKind.UPLOADING, progress=progress)


def status_from_outcome(
    outcome: UploadOutcome,
    now_millis: int,
    retry_delay_minutes: int = DEFAULT_RETRY_DELAY_MINUTES,
) -> UploadStatus:
    """Map a finished run onto the status shown to the user.

    Cancelled runs fall back to idle. Authentication failures ask for consent.
    Transient failures schedule a retry ``retry_delay_minutes`` from now when
    the delay is positive; everything else is a plain failure.
    """
    if outcome.success:
        return UploadStatus(
            StatusKind.SUCCESS,
            file_name=outcome.file_name,
            file_size_bytes=outcome.file_size_bytes,
        )
    if outcome.error_kind == ErrorKind.CANCELLED:
        return UploadStatus.idle()
    if outcome.error_kind == ErrorKind.AUTH_FAILURE:
        return UploadStatus(StatusKind.NEEDS_CONSENT, error=outcome.error)
    if outcome.error_kind in RETRYABLE_KINDS and retry_delay_minutes > 0:
        return UploadStatus(
            StatusKind.RETRY_SCHEDULED,
            error=outcome.error,
            retry_at_millis=now_millis + retry_delay_minutes * 60_000,
        )
    return UploadStatus(StatusKind.FAILED, error=outcome.error)
