"""
Progress reporting for uploads.
"""

from __future__ import annotations

import logging
from typing import Optional

from backup.types import UploadProgress

from .formatting import format_eta, format_file_size, format_speed


class TransferProgressLogger:
    """Progress callback that logs at fixed percentage steps."""

    def __init__(self, logger: Optional[logging.Logger] = None, step_percent: int = 10) -> None:
        self.logger = logger or logging.getLogger("backup_uploader.transfer")
        self.step_percent = max(step_percent, 1)
        self._last_bucket = -1

    def __call__(self, progress: UploadProgress) -> None:
        bucket = progress.percent // self.step_percent
        if bucket == self._last_bucket and progress.bytes_uploaded < progress.total_bytes:
            return
        self._last_bucket = bucket
        self.logger.info(
            "Upload progress %s%% | %s of %s | %s | %s",
            progress.percent,
            format_file_size(progress.bytes_uploaded),
            format_file_size(progress.total_bytes),
            format_speed(progress.speed_bytes_per_sec),
            format_eta(progress.estimated_seconds_remaining),
        )
