"""
Core types and errors shared by the upload components.
"""

from .exceptions import ErrorKind, UploadError
from .types import (
    ChunkTransferResult,
    DriveFolder,
    RemoteFile,
    ResumableSession,
    RetryState,
    Settings,
    ThemeMode,
    UploadOutcome,
    UploadProgress,
    UploadRecord,
    UploadResultStatus,
)

__all__ = [
    "ChunkTransferResult",
    "DriveFolder",
    "ErrorKind",
    "RemoteFile",
    "ResumableSession",
    "RetryState",
    "Settings",
    "ThemeMode",
    "UploadError",
    "UploadOutcome",
    "UploadProgress",
    "UploadRecord",
    "UploadResultStatus",
]
