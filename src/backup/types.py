"""
Shared data types and constants for the backup upload workflow.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .exceptions import ErrorKind

KIB = 1024
MIB = 1024 * KIB

# Resumable uploads must send chunks in multiples of this size (except the last one).
CHUNK_GRANULARITY_BYTES = 256 * KIB
DEFAULT_CHUNK_SIZE_BYTES = 5 * MIB
DEFAULT_MAX_NO_PROGRESS_RETRIES = 3
DEFAULT_WIFI_CHECK_INTERVAL = 5
DEFAULT_SESSION_MAX_AGE_DAYS = 6
DEFAULT_RETRY_DELAY_MINUTES = 30
DEFAULT_BACKUP_FILE_EXTENSION = ".backup"
UPLOAD_MIME_TYPE = "application/octet-stream"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

MILLIS_PER_DAY = 24 * 60 * 60 * 1000


class UploadResultStatus(str, Enum):
    """Status stored in the upload history table."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ThemeMode(str, Enum):
    SYSTEM = "SYSTEM"
    LIGHT = "LIGHT"
    DARK = "DARK"


@dataclass(frozen=True)
class ResumableSession:
    """Durable state of the one in-flight resumable upload."""

    session_uri: str
    local_file_uri: str
    file_name: str
    total_bytes: int
    bytes_uploaded: int
    target_folder_id: str
    created_at_millis: int
    drive_file_id: Optional[str] = None


@dataclass(frozen=True)
class ChunkTransferResult:
    """Outcome of one exchange with a resumable upload endpoint.

    ``bytes_confirmed`` is the exclusive upper bound the server has durably
    received and is only meaningful while ``done`` is false.
    """

    done: bool
    bytes_confirmed: int = 0
    remote_object_id: Optional[str] = None
    checksum: Optional[str] = None


@dataclass(frozen=True)
class RemoteFile:
    """Minimal metadata of an existing Drive file."""

    id: str
    size: int


@dataclass(frozen=True)
class DriveFolder:
    id: str
    name: str


@dataclass(frozen=True)
class UploadProgress:
    """Progress snapshot delivered to the caller after every confirmed chunk."""

    bytes_uploaded: int
    total_bytes: int
    speed_bytes_per_sec: int
    estimated_seconds_remaining: int

    @property
    def percent(self) -> int:
        if self.total_bytes <= 0:
            return 100
        return int(self.bytes_uploaded * 100 / self.total_bytes)


@dataclass(frozen=True)
class UploadOutcome:
    """Terminal result of one orchestration run."""

    success: bool
    file_name: Optional[str] = None
    file_size_bytes: Optional[int] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    drive_folder_id: Optional[str] = None
    drive_file_id: Optional[str] = None
    deduplicated: bool = False
    resumed: bool = False


@dataclass(frozen=True)
class UploadRecord:
    """Row of the append-only upload history."""

    timestamp: int
    file_name: str
    file_size_bytes: int
    status: UploadResultStatus
    error_message: Optional[str]
    drive_folder_id: str
    drive_file_id: Optional[str]
    id: Optional[int] = None


@dataclass(frozen=True)
class Settings:
    """User settings kept in the key-value settings table."""

    local_folder: Optional[str] = None
    drive_folder_id: Optional[str] = None
    drive_folder_name: Optional[str] = None
    schedule_hour: int = 3
    schedule_minute: int = 0
    google_account_email: Optional[str] = None
    theme_mode: ThemeMode = ThemeMode.SYSTEM
    wifi_only: bool = False


@dataclass(frozen=True)
class RetryState:
    retry_at_millis: Optional[int] = None
    retry_error: Optional[str] = None

