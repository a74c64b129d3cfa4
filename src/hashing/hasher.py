"""
Content checksums for post-upload integrity verification.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from backup.exceptions import ErrorKind, UploadError

DEFAULT_BUFFER_SIZE = 8 * 1024


class Hasher:
    """Compute streaming MD5 or SHA-256 digests of files."""

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        self.buffer_size = max(buffer_size, 1)

    def compute(self, path: Path, algorithm: str = "md5") -> str:
        """Compute the requested digest for a file as lowercase hex."""
        if algorithm not in {"md5", "sha256"}:
            raise ValueError(f"Unsupported hash type: {algorithm}")
        hasher = hashlib.new(algorithm)
        with path.open("rb") as handle:
            while True:
                data = handle.read(self.buffer_size)
                if not data:
                    break
                hasher.update(data)
        return hasher.hexdigest()


def compute_checksum(path: Path, hasher: Hasher | None = None) -> str:
    """Return the MD5 digest Drive reports as ``md5Checksum``.

    Raises UploadError(UNREADABLE_FILE) when the file cannot be read.
    """
    hasher = hasher or Hasher()
    try:
        return hasher.compute(Path(path), "md5")
    except OSError as exc:
        raise UploadError(
            ErrorKind.UNREADABLE_FILE,
            f"Failed to compute MD5 for: {path}",
            details={"reason": str(exc)},
        ) from exc
