"""
Configuration package for the backup uploader.
"""

from .settings import AppConfig, ConfigError, ensure_directories

__all__ = ["AppConfig", "ConfigError", "ensure_directories"]
