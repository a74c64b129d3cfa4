import sqlite3
from pathlib import Path

from backup.types import (
    ResumableSession,
    ThemeMode,
    UploadRecord,
    UploadResultStatus,
)
from database import DatabaseManager
from database.schema import create_state_db


def build_manager(root: Path) -> DatabaseManager:
    manager = DatabaseManager(root / "state.sqlite")
    manager.initialize()
    return manager


def make_record(timestamp: int, name: str, status=UploadResultStatus.SUCCESS, error=None) -> UploadRecord:
    return UploadRecord(
        timestamp=timestamp,
        file_name=name,
        file_size_bytes=1024,
        status=status,
        error_message=error,
        drive_folder_id="folder-1",
        drive_file_id="file-1" if status == UploadResultStatus.SUCCESS else None,
    )


def test_settings_defaults_and_round_trip(tmp_path: Path) -> None:
    manager = build_manager(tmp_path)

    defaults = manager.get_settings()
    assert defaults.local_folder is None
    assert defaults.schedule_hour == 3
    assert defaults.schedule_minute == 0
    assert defaults.theme_mode == ThemeMode.SYSTEM
    assert defaults.wifi_only is False

    manager.set_setting("local_folder", "/backups")
    manager.set_setting("drive_folder_id", "folder-1")
    manager.set_setting("schedule_hour", 22)
    manager.set_setting("wifi_only", True)
    manager.set_setting("theme_mode", "DARK")

    settings = manager.get_settings()
    assert settings.local_folder == "/backups"
    assert settings.drive_folder_id == "folder-1"
    assert settings.schedule_hour == 22
    assert settings.wifi_only is True
    assert settings.theme_mode == ThemeMode.DARK

    manager.set_setting("local_folder", None)
    assert manager.get_settings().local_folder is None
    manager.close()


def test_malformed_settings_fall_back(tmp_path: Path) -> None:
    manager = build_manager(tmp_path)
    manager.set_setting("schedule_hour", "late")
    manager.set_setting("theme_mode", "NEON")

    settings = manager.get_settings()

    assert settings.schedule_hour == 3
    assert settings.theme_mode == ThemeMode.SYSTEM
    manager.close()


def test_retry_state(tmp_path: Path) -> None:
    manager = build_manager(tmp_path)

    manager.set_retry_state(1_700_000_000_000, "Wi-Fi connection lost")
    state = manager.get_retry_state()
    assert state.retry_at_millis == 1_700_000_000_000
    assert state.retry_error == "Wi-Fi connection lost"

    manager.clear_retry_state()
    state = manager.get_retry_state()
    assert state.retry_at_millis is None
    assert state.retry_error is None
    manager.close()


def test_history_is_newest_first(tmp_path: Path) -> None:
    manager = build_manager(tmp_path)
    manager.insert_upload_record(make_record(1000, "old.backup"))
    manager.insert_upload_record(make_record(3000, "newest.backup", UploadResultStatus.FAILED, "Stalled"))
    manager.insert_upload_record(make_record(2000, "middle.backup"))

    records = manager.list_upload_records()

    assert [record.file_name for record in records] == ["newest.backup", "middle.backup", "old.backup"]
    assert records[0].status == UploadResultStatus.FAILED
    assert records[0].error_message == "Stalled"
    assert records[0].drive_file_id is None
    assert all(record.id is not None for record in records)
    assert [record.file_name for record in manager.list_upload_records(limit=1)] == ["newest.backup"]
    assert manager.latest_upload_record().file_name == "newest.backup"
    assert manager.count_upload_records() == 3
    manager.close()


def test_resume_session_slot_holds_one_session(tmp_path: Path) -> None:
    manager = build_manager(tmp_path)
    assert manager.load_resume_session() is None
    assert manager.update_resume_bytes_uploaded(10) is False

    first = ResumableSession(
        session_uri="https://upload.example/1",
        local_file_uri=str(tmp_path / "a.backup"),
        file_name="a.backup",
        total_bytes=100,
        bytes_uploaded=0,
        target_folder_id="folder-1",
        created_at_millis=5,
    )
    second = ResumableSession(
        session_uri="https://upload.example/2",
        local_file_uri=str(tmp_path / "b.backup"),
        file_name="b.backup",
        total_bytes=200,
        bytes_uploaded=0,
        target_folder_id="folder-2",
        created_at_millis=6,
        drive_file_id="drive-b",
    )
    manager.save_resume_session(first)
    manager.save_resume_session(second)

    assert manager.load_resume_session() == second
    assert manager.update_resume_bytes_uploaded(150) is True
    assert manager.load_resume_session().bytes_uploaded == 150

    manager.clear_resume_session()
    assert manager.load_resume_session() is None
    manager.close()


def test_schema_creation_is_repeatable(tmp_path: Path) -> None:
    db_path = tmp_path / "state.sqlite"
    create_state_db(db_path)
    create_state_db(db_path)

    conn = sqlite3.connect(db_path)
    columns = [row[1] for row in conn.execute("PRAGMA table_info(upload_history)")]
    conn.close()
    assert columns.count("drive_file_id") == 1
