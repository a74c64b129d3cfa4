"""
Logging configuration for the backup uploader.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict


def setup_logging(log_dir: Path, verbose: bool = False) -> Dict[str, logging.Logger]:
    """Initialize loggers and return a mapping of named loggers."""
    log_dir.mkdir(parents=True, exist_ok=True)
    date_stamp = datetime.utcnow().strftime("%Y%m%d")
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    master_log = log_dir / f"uploader_log_{date_stamp}.log"
    error_log = log_dir / f"error_log_{date_stamp}.log"
    transfer_log = log_dir / f"transfer_log_{date_stamp}.log"

    base_logger = logging.getLogger("backup_uploader")
    if not base_logger.handlers:
        base_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        base_logger.addHandler(stream_handler)

        file_handler = logging.FileHandler(master_log, encoding="utf-8")
        file_handler.setFormatter(formatter)
        base_logger.addHandler(file_handler)

        error_handler = logging.FileHandler(error_log, encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        base_logger.addHandler(error_handler)

    transfer_logger = logging.getLogger("backup_uploader.transfer")
    if not transfer_logger.handlers:
        transfer_logger.setLevel(logging.INFO)
        transfer_handler = logging.FileHandler(transfer_log, encoding="utf-8")
        transfer_handler.setFormatter(formatter)
        transfer_logger.addHandler(transfer_handler)
        transfer_logger.propagate = False

    return {"main": base_logger, "transfer": transfer_logger}


def shutdown_logging() -> None:
    """Detach and close the handlers installed by setup_logging."""
    for name in ("backup_uploader.transfer", "backup_uploader"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
