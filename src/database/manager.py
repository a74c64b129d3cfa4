"""
SQLite access layer for settings, the resume session slot and upload history.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional, Union

from backup.types import (
    ResumableSession,
    RetryState,
    Settings,
    ThemeMode,
    UploadRecord,
    UploadResultStatus,
)

from .schema import create_state_db

SettingValue = Union[str, int, bool, None]

LOCAL_FOLDER = "local_folder"
DRIVE_FOLDER_ID = "drive_folder_id"
DRIVE_FOLDER_NAME = "drive_folder_name"
SCHEDULE_HOUR = "schedule_hour"
SCHEDULE_MINUTE = "schedule_minute"
GOOGLE_ACCOUNT_EMAIL = "google_account_email"
THEME_MODE = "theme_mode"
WIFI_ONLY = "wifi_only"
RETRY_AT_MILLIS = "retry_at_millis"
RETRY_ERROR = "retry_error"

SETTING_KEYS = (
    LOCAL_FOLDER,
    DRIVE_FOLDER_ID,
    DRIVE_FOLDER_NAME,
    SCHEDULE_HOUR,
    SCHEDULE_MINUTE,
    GOOGLE_ACCOUNT_EMAIL,
    THEME_MODE,
    WIFI_ONLY,
)


class DatabaseManager:
    """Manage the SQLite connection and common queries."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._state_conn: Optional[sqlite3.Connection] = None

    def initialize(self) -> None:
        """Create the database file and tables."""
        create_state_db(self.db_path)

    def connect(self) -> None:
        """Open the database connection if it is not already open."""
        if self._state_conn is None:
            self._state_conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._state_conn.execute("PRAGMA journal_mode=WAL;")

    def close(self) -> None:
        """Close the open database connection."""
        if self._state_conn is not None:
            self._state_conn.close()
            self._state_conn = None

    # Settings

    def get_setting(self, key: str) -> Optional[str]:
        self.connect()
        row = self._state_conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return str(row[0]) if row is not None else None

    def set_setting(self, key: str, value: SettingValue) -> None:
        """Store a scalar setting; ``None`` removes the key."""
        self.connect()
        if value is None:
            self._state_conn.execute("DELETE FROM settings WHERE key = ?", (key,))
        else:
            self._state_conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, _encode_setting(value)),
            )
        self._state_conn.commit()

    def get_settings(self) -> Settings:
        """Read all user settings, falling back to defaults for missing or malformed values."""
        self.connect()
        placeholders = ",".join("?" for _ in SETTING_KEYS)
        rows = self._state_conn.execute(
            f"SELECT key, value FROM settings WHERE key IN ({placeholders})",
            SETTING_KEYS,
        ).fetchall()
        values = {str(row[0]): str(row[1]) for row in rows}
        defaults = Settings()
        theme_raw = values.get(THEME_MODE)
        try:
            theme = ThemeMode(theme_raw) if theme_raw else defaults.theme_mode
        except ValueError:
            theme = defaults.theme_mode
        return Settings(
            local_folder=values.get(LOCAL_FOLDER) or defaults.local_folder,
            drive_folder_id=values.get(DRIVE_FOLDER_ID) or defaults.drive_folder_id,
            drive_folder_name=values.get(DRIVE_FOLDER_NAME) or defaults.drive_folder_name,
            schedule_hour=_parse_int(values.get(SCHEDULE_HOUR), defaults.schedule_hour),
            schedule_minute=_parse_int(values.get(SCHEDULE_MINUTE), defaults.schedule_minute),
            google_account_email=values.get(GOOGLE_ACCOUNT_EMAIL) or defaults.google_account_email,
            theme_mode=theme,
            wifi_only=_parse_bool(values.get(WIFI_ONLY), defaults.wifi_only),
        )

    def get_retry_state(self) -> RetryState:
        raw_millis = self.get_setting(RETRY_AT_MILLIS)
        return RetryState(
            retry_at_millis=_parse_int(raw_millis, None),
            retry_error=self.get_setting(RETRY_ERROR),
        )

    def set_retry_state(self, retry_at_millis: Optional[int], retry_error: Optional[str]) -> None:
        self.set_setting(RETRY_AT_MILLIS, retry_at_millis)
        self.set_setting(RETRY_ERROR, retry_error)

    def clear_retry_state(self) -> None:
        self.set_retry_state(None, None)

    # Resume session slot

    def load_resume_session(self) -> Optional[ResumableSession]:
        self.connect()
        row = self._state_conn.execute(
            """
            SELECT session_uri, local_file_uri, file_name, bytes_uploaded, total_bytes,
                   drive_folder_id, created_at_millis, drive_file_id
            FROM resume_session
            WHERE id = 1
            """
        ).fetchone()
        if row is None or not row[0]:
            return None
        return ResumableSession(
            session_uri=str(row[0]),
            local_file_uri=str(row[1]),
            file_name=str(row[2]),
            bytes_uploaded=int(row[3]),
            total_bytes=int(row[4]),
            target_folder_id=str(row[5]),
            created_at_millis=int(row[6]),
            drive_file_id=str(row[7]) if row[7] else None,
        )

    def save_resume_session(self, session: ResumableSession) -> None:
        """Overwrite the session slot with every field in one statement."""
        self.connect()
        self._state_conn.execute(
            """
            INSERT OR REPLACE INTO resume_session (
                id,
                session_uri,
                local_file_uri,
                file_name,
                bytes_uploaded,
                total_bytes,
                drive_folder_id,
                created_at_millis,
                drive_file_id
            )
            VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session.session_uri,
                session.local_file_uri,
                session.file_name,
                session.bytes_uploaded,
                session.total_bytes,
                session.target_folder_id,
                session.created_at_millis,
                session.drive_file_id,
            ),
        )
        self._state_conn.commit()

    def update_resume_bytes_uploaded(self, bytes_uploaded: int) -> bool:
        """Update only the confirmed offset. Returns False when no session exists."""
        self.connect()
        cursor = self._state_conn.execute(
            "UPDATE resume_session SET bytes_uploaded = ? WHERE id = 1",
            (bytes_uploaded,),
        )
        self._state_conn.commit()
        return cursor.rowcount > 0

    def clear_resume_session(self) -> None:
        self.connect()
        self._state_conn.execute("DELETE FROM resume_session")
        self._state_conn.commit()

    # Upload history

    def insert_upload_record(self, record: UploadRecord) -> int:
        """Append an upload outcome and return its row id."""
        self.connect()
        cursor = self._state_conn.execute(
            """
            INSERT INTO upload_history (
                timestamp,
                file_name,
                file_size_bytes,
                status,
                error_message,
                drive_folder_id,
                drive_file_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.timestamp,
                record.file_name,
                record.file_size_bytes,
                record.status.value,
                record.error_message,
                record.drive_folder_id,
                record.drive_file_id,
            ),
        )
        self._state_conn.commit()
        return int(cursor.lastrowid)

    def list_upload_records(self, limit: Optional[int] = None) -> list[UploadRecord]:
        """List upload history, newest first."""
        self.connect()
        query = """
            SELECT id, timestamp, file_name, file_size_bytes, status, error_message,
                   drive_folder_id, drive_file_id
            FROM upload_history
            ORDER BY timestamp DESC, id DESC
        """
        params: list = []
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        cursor = self._state_conn.execute(query, tuple(params))
        return [_row_to_record(row) for row in cursor.fetchall()]

    def latest_upload_record(self) -> Optional[UploadRecord]:
        records = self.list_upload_records(limit=1)
        return records[0] if records else None

    def count_upload_records(self) -> int:
        self.connect()
        row = self._state_conn.execute("SELECT COUNT(*) FROM upload_history").fetchone()
        return int(row[0]) if row else 0


def _row_to_record(row: tuple) -> UploadRecord:
    return UploadRecord(
        id=int(row[0]),
        timestamp=int(row[1]),
        file_name=str(row[2]),
        file_size_bytes=int(row[3]),
        status=UploadResultStatus(str(row[4])),
        error_message=str(row[5]) if row[5] is not None else None,
        drive_folder_id=str(row[6]),
        drive_file_id=str(row[7]) if row[7] else None,
    )


def _encode_setting(value: SettingValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, ThemeMode):
        return value.value
    return str(value)


def _parse_int(raw: Optional[str], fallback: Optional[int]) -> Optional[int]:
    if raw is None:
        return fallback
    try:
        return int(raw)
    except ValueError:
        return fallback


def _parse_bool(raw: Optional[str], fallback: bool) -> bool:
    if raw is None:
        return fallback
    return raw.strip().lower() == "true"
