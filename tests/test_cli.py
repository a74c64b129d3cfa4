import logging
from pathlib import Path

import pytest

from backup.exceptions import ErrorKind
from backup.types import UploadOutcome, UploadProgress
from config import AppConfig
from orchestrator.main import UploaderApp, build_parser, parse_setting_value, run
from orchestrator.status import StatusKind
from session import now_millis
from utils.instance_guard import InstanceLock

CONFIG_LINES = [
    "paths:",
    "  logs: logs",
    "  cache: data/cache",
    "  lock: data/upload.lock",
    "databases:",
    "  state: data/state.sqlite",
    "upload:",
    "  retry_delay_minutes: 30",
]


class FakeOrchestrator:
    """Returns a canned outcome after reporting one progress snapshot."""

    def __init__(self, outcome: UploadOutcome) -> None:
        self.outcome = outcome
        self.calls = 0

    def perform_upload(self, on_progress=None, is_cancelled=None):
        self.calls += 1
        if on_progress is not None:
            on_progress(UploadProgress(50, 100, 1024, 1))
        return self.outcome


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text("\n".join(CONFIG_LINES), encoding="utf-8")
    return path


@pytest.fixture()
def app(config_path: Path):
    uploader = UploaderApp(AppConfig.load(config_path))
    yield uploader
    uploader.close()


def use_outcome(monkeypatch, outcome: UploadOutcome) -> FakeOrchestrator:
    fake = FakeOrchestrator(outcome)
    monkeypatch.setattr(UploaderApp, "build_orchestrator", lambda self: fake)
    return fake


def test_parse_setting_values() -> None:
    assert parse_setting_value("schedule_hour", "22") == 22
    assert parse_setting_value("wifi_only", "yes") is True
    assert parse_setting_value("wifi_only", "off") is False
    assert parse_setting_value("theme_mode", "dark") == "DARK"
    assert parse_setting_value("drive_folder_id", "abc") == "abc"


@pytest.mark.parametrize(
    "key, value",
    [("schedule_hour", "24"), ("schedule_minute", "-1"), ("wifi_only", "maybe"), ("theme_mode", "neon")],
)
def test_parse_setting_rejects_invalid(key: str, value: str) -> None:
    with pytest.raises(ValueError):
        parse_setting_value(key, value)


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_settings_and_history_commands(tmp_path: Path, config_path: Path, capsys) -> None:
    base = ["--config", str(config_path)]

    assert run(base + ["settings", "set", "drive_folder_id", "folder-9"]) == 0
    assert run(base + ["settings", "set", "schedule_hour", "99"]) == 2
    assert run(base + ["settings", "show"]) == 0
    assert run(base + ["history"]) == 0

    output = capsys.readouterr().out
    assert "drive_folder_id = folder-9" in output
    assert "No uploads yet." in output
    assert (tmp_path / "data" / "state.sqlite").exists()


def test_run_detaches_log_handlers(config_path: Path) -> None:
    assert run(["--config", str(config_path), "history"]) == 0

    assert logging.getLogger("backup_uploader").handlers == []
    assert logging.getLogger("backup_uploader.transfer").handlers == []


def test_successful_upload_clears_retry_state(app: UploaderApp, monkeypatch) -> None:
    app.db_manager.set_retry_state(123, "Earlier failure")
    seen = []
    fake = use_outcome(
        monkeypatch, UploadOutcome(success=True, file_name="nightly.backup", file_size_bytes=100)
    )
    original = fake.perform_upload

    def watching_upload(on_progress=None, is_cancelled=None):
        def record(progress):
            on_progress(progress)
            seen.append(app.status)

        return original(on_progress=record, is_cancelled=is_cancelled)

    fake.perform_upload = watching_upload

    status = app.run_upload()

    assert status.kind == StatusKind.SUCCESS
    assert app.status is status
    assert [item.kind for item in seen] == [StatusKind.UPLOADING]
    assert seen[0].progress.percent == 50
    retry = app.db_manager.get_retry_state()
    assert retry.retry_at_millis is None
    assert retry.retry_error is None


def test_retryable_failure_schedules_retry(app: UploaderApp, monkeypatch) -> None:
    use_outcome(
        monkeypatch,
        UploadOutcome(success=False, error="Connection reset", error_kind=ErrorKind.NETWORK_FAILURE),
    )
    before = now_millis()

    status = app.run_upload()

    after = now_millis()
    assert status.kind == StatusKind.RETRY_SCHEDULED
    retry = app.db_manager.get_retry_state()
    assert before + 30 * 60_000 <= retry.retry_at_millis <= after + 30 * 60_000
    assert retry.retry_error == "Connection reset"


def test_auth_failure_records_error_without_retry(app: UploaderApp, monkeypatch) -> None:
    app.db_manager.set_retry_state(123, "Earlier failure")
    use_outcome(
        monkeypatch,
        UploadOutcome(success=False, error="Not signed in", error_kind=ErrorKind.AUTH_FAILURE),
    )

    status = app.run_upload()

    assert status.kind == StatusKind.NEEDS_CONSENT
    retry = app.db_manager.get_retry_state()
    assert retry.retry_at_millis is None
    assert retry.retry_error == "Not signed in"


def test_upload_command_reports_cancel(config_path: Path, monkeypatch, capsys) -> None:
    use_outcome(
        monkeypatch, UploadOutcome(success=False, error="Cancelled", error_kind=ErrorKind.CANCELLED)
    )

    assert run(["--config", str(config_path), "upload"]) == 130
    assert "Upload cancelled." in capsys.readouterr().out


def test_upload_command_refuses_second_instance(
    tmp_path: Path, config_path: Path, monkeypatch, capsys
) -> None:
    fake = use_outcome(monkeypatch, UploadOutcome(success=True, file_name="x", file_size_bytes=1))

    with InstanceLock(tmp_path / "data" / "upload.lock"):
        code = run(["--config", str(config_path), "upload"])

    assert code == 2
    assert fake.calls == 0
    assert "Another upload is already running" in capsys.readouterr().err
