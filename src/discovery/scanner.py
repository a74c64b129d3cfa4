"""
Discovery of the newest local backup file.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from backup.exceptions import ErrorKind, UploadError
from backup.types import DEFAULT_BACKUP_FILE_EXTENSION
from config import AppConfig


@dataclass(frozen=True)
class LocalBackupFile:
    """A backup file chosen for upload."""

    path: Path
    name: str
    size: int
    modified_at: datetime


class BackupFileLocator:
    """Find the most recently modified backup file in a folder."""

    def __init__(self, config: AppConfig, logger: Optional[logging.Logger] = None) -> None:
        self.config = config
        self.logger = logger or logging.getLogger("backup_uploader")
        self.extension = str(
            self.config.get("upload", "backup_file_extension", default=DEFAULT_BACKUP_FILE_EXTENSION)
        )
        self.skip_hidden = self.config.get_bool("scan", "skip_hidden", default=True)
        self.excluded_patterns = self.config.get("scan", "exclude_patterns", default=[]) or []

    def locate(self, folder: Path) -> LocalBackupFile:
        """Return the newest backup file in ``folder``.

        Raises UploadError(NOT_FOUND) when the folder holds no backup file or
        the chosen file cannot be read.
        """
        candidates = [self._build_candidate(path) for path in self._iter_backup_files(folder)]
        candidates = [candidate for candidate in candidates if candidate is not None]
        if not candidates:
            raise UploadError(
                ErrorKind.NOT_FOUND,
                "No backup files found",
                details={"folder": str(folder), "extension": self.extension},
            )
        candidates.sort(key=lambda item: item.modified_at, reverse=True)
        chosen = candidates[0]
        if not self._is_accessible(chosen.path):
            raise UploadError(
                ErrorKind.NOT_FOUND,
                "Backup file not accessible",
                details={"path": str(chosen.path)},
            )
        self.logger.info(
            "Selected backup %s (%s bytes, modified %s) from %s candidates",
            chosen.name,
            chosen.size,
            chosen.modified_at.isoformat(),
            len(candidates),
        )
        return chosen

    def _iter_backup_files(self, folder: Path) -> Iterator[Path]:
        try:
            entries = list(os.scandir(folder))
        except OSError as exc:
            raise UploadError(
                ErrorKind.NOT_FOUND,
                f"Backup folder not readable: {folder}",
                details={"reason": str(exc)},
            ) from exc
        for entry in entries:
            if not entry.name.endswith(self.extension):
                continue
            if self.skip_hidden and entry.name.startswith("."):
                continue
            if self._matches_patterns(entry.name):
                continue
            try:
                if not entry.is_file():
                    continue
            except OSError:
                continue
            yield Path(entry.path)

    def _matches_patterns(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, pattern) for pattern in self.excluded_patterns)

    def _build_candidate(self, path: Path) -> Optional[LocalBackupFile]:
        try:
            stat = path.stat()
        except OSError as exc:
            self.logger.warning("Skipping unreadable backup candidate %s: %s", path, exc)
            return None
        return LocalBackupFile(
            path=path,
            name=path.name,
            size=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime),
        )

    def _is_accessible(self, path: Path) -> bool:
        return path.is_file() and os.access(path, os.R_OK)
