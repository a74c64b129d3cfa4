from pathlib import Path

import pytest

from backup.types import MILLIS_PER_DAY, ResumableSession
from database import DatabaseManager
from session import SessionStore


@pytest.fixture()
def store(tmp_path: Path):
    manager = DatabaseManager(tmp_path / "state.sqlite")
    manager.initialize()
    yield SessionStore(manager, max_age_days=6)
    manager.close()


def make_session(created_at: int = 1_000, drive_file_id=None) -> ResumableSession:
    return ResumableSession(
        session_uri="https://upload.example/session",
        local_file_uri="/cache/nightly.backup",
        file_name="nightly.backup",
        total_bytes=12_000_000,
        bytes_uploaded=0,
        target_folder_id="folder-1",
        created_at_millis=created_at,
        drive_file_id=drive_file_id,
    )


def test_round_trip_keeps_absent_drive_file_id(store: SessionStore) -> None:
    session = make_session()
    store.save(session)

    loaded = store.load()

    assert loaded == session
    assert loaded.drive_file_id is None


def test_clear_removes_session(store: SessionStore) -> None:
    store.save(make_session())
    store.clear()

    assert store.load() is None


def test_expiry_is_strictly_older_than_max_age(store: SessionStore) -> None:
    created = 10_000_000
    session = make_session(created_at=created)
    six_days = 6 * MILLIS_PER_DAY

    assert store.is_expired(session, now=created + six_days + 1) is True
    assert store.is_expired(session, now=created + six_days) is False
    assert store.is_expired(session, now=created + six_days - 1000) is False


def test_update_bytes_without_session_is_noop(store: SessionStore) -> None:
    store.update_bytes_uploaded(5_242_880)

    assert store.load() is None


def test_update_bytes_persists_offset(store: SessionStore) -> None:
    store.save(make_session())

    store.update_bytes_uploaded(5_242_880)

    assert store.load().bytes_uploaded == 5_242_880
