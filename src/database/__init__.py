"""
Database package for schema creation and persistence helpers.
"""

from .manager import SETTING_KEYS, DatabaseManager
from .schema import create_state_db

__all__ = [
    "DatabaseManager",
    "SETTING_KEYS",
    "create_state_db",
]
