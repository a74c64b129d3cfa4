"""
Command-line entry point for the backup uploader.
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Optional, Sequence

from backup.exceptions import UploadError
from backup.types import (
    DEFAULT_RETRY_DELAY_MINUTES,
    DEFAULT_SESSION_MAX_AGE_DAYS,
    ThemeMode,
)
from cloud import DriveTransferClient, GoogleCredentialProvider
from config import AppConfig, ensure_directories
from database import SETTING_KEYS, DatabaseManager
from discovery.scanner import BackupFileLocator
from orchestrator.engine import UploadOrchestrator
from orchestrator.status import StatusKind, UploadStatus, status_from_outcome
from session import SessionStore, now_millis
from utils import (
    NetworkProbe,
    TransferProgressLogger,
    TransferWatchdog,
    setup_logging,
    shutdown_logging,
)
from utils.formatting import (
    format_countdown,
    format_file_size,
    format_schedule_time,
    format_timestamp,
)
from utils.instance_guard import InstanceLock, InstanceLockError


class UploaderApp:
    """Wire configuration, state and Drive access into runnable commands."""

    def __init__(self, config: AppConfig, verbose: bool = False) -> None:
        self.config = config
        self.loggers = setup_logging(
            self.config.resolve_path("paths", "logs", default="logs"), verbose=verbose
        )
        self.logger = self.loggers["main"]
        self.db_manager = DatabaseManager(
            self.config.resolve_path("databases", "state", default="data/state.sqlite")
        )
        self.db_manager.initialize()
        self.credentials = GoogleCredentialProvider(config, logger=self.logger)
        self.transfer_client = DriveTransferClient(
            timeout_seconds=self.config.get_float(
                "cloud", "google_drive", "http_timeout_seconds", default=60.0
            ),
            num_retries=self.config.get_int("cloud", "google_drive", "num_retries", default=3),
            logger=self.logger,
        )
        self.session_store = SessionStore(
            self.db_manager,
            max_age_days=self.config.get_float(
                "upload", "session_max_age_days", default=DEFAULT_SESSION_MAX_AGE_DAYS
            ),
            logger=self.logger,
        )
        self.network_probe = NetworkProbe(
            wifi_interfaces=tuple(self.config.get("network", "wifi_interfaces", default=[]) or []),
            logger=self.logger,
        )
        self.watchdog = TransferWatchdog(
            self.logger,
            warning_seconds=self.config.get_float("upload", "stall_warning_seconds", default=300.0),
        )
        self.retry_delay_minutes = self.config.get_int(
            "upload", "retry_delay_minutes", default=DEFAULT_RETRY_DELAY_MINUTES
        )
        self.cache_dir = self.config.resolve_path("paths", "cache", default="data/cache")
        self.lock_path = self.config.resolve_path("paths", "lock", default="data/upload.lock")
        self.cancel_event = threading.Event()
        self.status = UploadStatus.idle()

    def build_orchestrator(self) -> UploadOrchestrator:
        return UploadOrchestrator(
            self.config,
            credentials=self.credentials,
            settings_source=self.db_manager,
            history=self.db_manager,
            transfer_client=self.transfer_client,
            session_store=self.session_store,
            network_probe=self.network_probe,
            locator=BackupFileLocator(self.config, logger=self.logger),
            cache_dir=self.cache_dir,
            logger=self.logger,
            watchdog=self.watchdog,
        )

    def run_upload(self) -> UploadStatus:
        """Run one upload under the instance lock and persist the retry state."""
        ensure_directories([self.cache_dir, self.lock_path.parent])
        with InstanceLock(self.lock_path):
            self.cancel_event.clear()
            restore_signals = self._install_signal_handlers()
            try:
                orchestrator = self.build_orchestrator()
                progress_logger = TransferProgressLogger(self.loggers["transfer"])

                def _on_progress(progress) -> None:
                    self.status = UploadStatus.uploading(progress)
                    progress_logger(progress)

                with self.watchdog:
                    outcome = orchestrator.perform_upload(
                        on_progress=_on_progress, is_cancelled=self.cancel_event.is_set
                    )
            finally:
                restore_signals()

        status = status_from_outcome(outcome, now_millis(), self.retry_delay_minutes)
        if status.kind == StatusKind.SUCCESS:
            self.db_manager.clear_retry_state()
        elif status.kind == StatusKind.RETRY_SCHEDULED:
            self.db_manager.set_retry_state(status.retry_at_millis, status.error)
            self.logger.info("Retry scheduled at %s", format_timestamp(status.retry_at_millis))
        elif status.kind in (StatusKind.FAILED, StatusKind.NEEDS_CONSENT):
            self.db_manager.set_retry_state(None, status.error)
        self.status = status
        return status

    def close(self) -> None:
        self.db_manager.close()
        shutdown_logging()

    def _install_signal_handlers(self):
        """Route SIGINT/SIGTERM to the cancel flag; returns a callable restoring the old handlers."""
        if threading.current_thread() is not threading.main_thread():
            return lambda: None

        def _request_cancel(signum, frame):
            self.logger.warning("Cancellation requested (signal %s)", signum)
            self.cancel_event.set()

        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, _request_cancel)

        def _restore() -> None:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

        return _restore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="backup-uploader",
        description="Upload the newest local backup file to Google Drive.",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("upload", help="Upload the newest backup now")
    subparsers.add_parser("status", help="Show settings, pending session and last result")

    history = subparsers.add_parser("history", help="List past uploads, newest first")
    history.add_argument("--limit", type=int, default=20)

    settings = subparsers.add_parser("settings", help="Show or change persisted settings")
    settings_sub = settings.add_subparsers(dest="settings_command", required=True)
    settings_sub.add_parser("show")
    set_parser = settings_sub.add_parser("set")
    set_parser.add_argument("key", choices=SETTING_KEYS)
    set_parser.add_argument("value")
    unset_parser = settings_sub.add_parser("unset")
    unset_parser.add_argument("key", choices=SETTING_KEYS)

    folders = subparsers.add_parser("folders", help="List Drive folders")
    folders.add_argument("--parent", default="root")

    mkdir = subparsers.add_parser("mkdir", help="Create a Drive folder")
    mkdir.add_argument("name")
    mkdir.add_argument("--parent", default="root")

    authorize = subparsers.add_parser("authorize", help="Sign in to Google Drive")
    authorize.add_argument("--no-browser", action="store_true")
    return parser


def parse_setting_value(key: str, raw: str):
    """Validate and convert a CLI value for a persisted setting."""
    if key in ("schedule_hour", "schedule_minute"):
        value = int(raw)
        upper = 23 if key == "schedule_hour" else 59
        if not 0 <= value <= upper:
            raise ValueError(f"{key} must be between 0 and {upper}")
        return value
    if key == "wifi_only":
        lowered = raw.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ValueError("wifi_only must be true or false")
    if key == "theme_mode":
        return ThemeMode(raw.strip().upper()).value
    if key == "local_folder":
        return str(Path(raw).expanduser())
    return raw


def _print_status(app: UploaderApp) -> None:
    settings = app.db_manager.get_settings()
    print(f"Local folder:     {settings.local_folder or '(not set)'}")
    print(f"Drive folder:     {settings.drive_folder_name or settings.drive_folder_id or '(not set)'}")
    print(f"Schedule:         {format_schedule_time(settings.schedule_hour, settings.schedule_minute)}")
    print(f"Wi-Fi only:       {'yes' if settings.wifi_only else 'no'}")

    session = app.session_store.load()
    if session is not None:
        print(
            f"Pending upload:   {session.file_name} "
            f"({format_file_size(session.bytes_uploaded)} of {format_file_size(session.total_bytes)})"
        )

    retry = app.db_manager.get_retry_state()
    if retry.retry_at_millis is not None:
        print(f"Retry in:         {format_countdown(retry.retry_at_millis)}")
    if retry.retry_error:
        print(f"Last error:       {retry.retry_error}")

    latest = app.db_manager.latest_upload_record()
    if latest is not None:
        print(
            f"Last upload:      {latest.file_name} {latest.status.value} "
            f"at {format_timestamp(latest.timestamp)}"
        )


def _print_history(app: UploaderApp, limit: int) -> None:
    records = app.db_manager.list_upload_records(limit=limit)
    if not records:
        print("No uploads yet.")
        return
    for record in records:
        line = (
            f"{format_timestamp(record.timestamp):<24} {record.status.value:<8} "
            f"{format_file_size(record.file_size_bytes):>10}  {record.file_name}"
        )
        if record.error_message:
            line += f"  ({record.error_message})"
        print(line)


def _report_status(status: UploadStatus) -> int:
    if status.kind == StatusKind.SUCCESS:
        print(f"Uploaded {status.file_name} ({format_file_size(status.file_size_bytes or 0)})")
        return 0
    if status.kind == StatusKind.IDLE:
        print("Upload cancelled.")
        return 130
    if status.kind == StatusKind.NEEDS_CONSENT:
        print(f"Google sign-in required: {status.error}. Run 'backup-uploader authorize'.", file=sys.stderr)
        return 3
    if status.kind == StatusKind.RETRY_SCHEDULED:
        print(
            f"Upload failed: {status.error}. Retrying in {format_countdown(status.retry_at_millis)}.",
            file=sys.stderr,
        )
        return 1
    print(f"Upload failed: {status.error}", file=sys.stderr)
    return 1


def run(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = AppConfig.load(args.config)
    app = UploaderApp(config, verbose=args.verbose)
    try:
        if args.command == "upload":
            try:
                status = app.run_upload()
            except InstanceLockError as exc:
                print(f"ERROR: {exc}", file=sys.stderr)
                return 2
            return _report_status(status)

        if args.command == "status":
            _print_status(app)
            return 0

        if args.command == "history":
            _print_history(app, args.limit)
            return 0

        if args.command == "settings":
            if args.settings_command == "show":
                for key in SETTING_KEYS:
                    print(f"{key} = {app.db_manager.get_setting(key) or ''}")
                return 0
            if args.settings_command == "unset":
                app.db_manager.set_setting(args.key, None)
                return 0
            try:
                value = parse_setting_value(args.key, args.value)
            except ValueError as exc:
                print(f"ERROR: {exc}", file=sys.stderr)
                return 2
            app.db_manager.set_setting(args.key, value)
            return 0

        if args.command == "authorize":
            token_path = app.credentials.authorize(open_browser=not args.no_browser)
            email = app.credentials.account_email()
            if email:
                app.db_manager.set_setting("google_account_email", email)
            print(f"Signed in. Token stored at {token_path}")
            return 0

        token = app.credentials.get_access_token()
        if args.command == "folders":
            for folder in app.transfer_client.list_folders(args.parent, token):
                print(f"{folder.id}  {folder.name}")
            return 0
        if args.command == "mkdir":
            folder = app.transfer_client.create_folder(args.name, args.parent, token)
            print(f"{folder.id}  {folder.name}")
            return 0
    except UploadError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        app.close()
    return 2


def main() -> None:
    """CLI entry point."""
    raise SystemExit(run())


if __name__ == "__main__":
    main()
