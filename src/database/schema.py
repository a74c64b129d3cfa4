"""
Database schema definitions for the backup uploader.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path


def create_state_db(db_path: Path) -> None:
    """Create the state database: settings, resume session slot and upload history."""
    conn = _connect(db_path)
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS resume_session (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            session_uri TEXT NOT NULL,
            local_file_uri TEXT NOT NULL,
            file_name TEXT NOT NULL,
            bytes_uploaded INTEGER NOT NULL,
            total_bytes INTEGER NOT NULL,
            drive_folder_id TEXT NOT NULL,
            created_at_millis INTEGER NOT NULL,
            drive_file_id TEXT
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS upload_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp INTEGER NOT NULL,
            file_name TEXT NOT NULL,
            file_size_bytes INTEGER NOT NULL,
            status TEXT NOT NULL,
            error_message TEXT,
            drive_folder_id TEXT NOT NULL,
            drive_file_id TEXT
        )
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_upload_history_timestamp ON upload_history(timestamp)")
    conn.commit()
    conn.close()


def _connect(db_path: Path) -> sqlite3.Connection:
    """Create a SQLite connection with WAL enabled."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode=WAL;")
    return conn

