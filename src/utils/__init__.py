"""
Utility helpers for the backup uploader.
"""

from .activity import TransferWatchdog
from .logging_setup import setup_logging, shutdown_logging
from .network import NetworkProbe
from .progress import TransferProgressLogger

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "NetworkProbe",
    "TransferProgressLogger",
    "TransferWatchdog",
]
