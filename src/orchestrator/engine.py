"""
Resumable upload engine: turns the newest local backup into a verified Drive file.
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from backup.exceptions import ErrorKind, UploadError
from backup.types import (
    CHUNK_GRANULARITY_BYTES,
    DEFAULT_CHUNK_SIZE_BYTES,
    DEFAULT_MAX_NO_PROGRESS_RETRIES,
    DEFAULT_WIFI_CHECK_INTERVAL,
    ChunkTransferResult,
    ResumableSession,
    Settings,
    UploadOutcome,
    UploadProgress,
    UploadRecord,
    UploadResultStatus,
)
from cloud.drive_api import DriveTransferClient
from config import AppConfig, ConfigError
from discovery.scanner import BackupFileLocator, LocalBackupFile
from hashing.hasher import compute_checksum
from session.store import SessionStore, now_millis
from utils.activity import TransferWatchdog
from utils.network import NetworkProbe

ProgressCallback = Callable[[UploadProgress], None]
CancelPoll = Callable[[], bool]


class UploadState(str, Enum):
    """States of one orchestration run, in the order they are normally visited."""

    INIT = "init"
    RESUMING = "resuming"
    DISCOVERING = "discovering"
    DEDUPING = "deduping"
    INITIATING = "initiating"
    TRANSFERRING = "transferring"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = {UploadState.DONE, UploadState.FAILED}


@dataclass
class UploadRun:
    """Mutable context carried between states of a single run."""

    on_progress: ProgressCallback
    is_cancelled: CancelPoll
    started_at: float
    state: UploadState = UploadState.INIT
    token: Optional[str] = None
    settings: Optional[Settings] = None
    source: Optional[LocalBackupFile] = None
    file_name: Optional[str] = None
    total_bytes: int = 0
    session_uri: Optional[str] = None
    cached_path: Optional[Path] = None
    start_offset: int = 0
    resumed: bool = False
    final_result: Optional[ChunkTransferResult] = None
    outcome: Optional[UploadOutcome] = None

    @property
    def folder_id(self) -> str:
        return self.settings.drive_folder_id if self.settings else ""


class UploadOrchestrator:
    """Drive one backup upload from credentials to a verified remote file.

    Collaborators are injected: ``credentials`` supplies access tokens,
    ``settings_source`` the user settings, ``history`` records one terminal
    outcome per run, ``session_store`` holds the resumable session slot.
    The orchestrator is not reentrant; callers must serialize runs.
    """

    def __init__(
        self,
        config: AppConfig,
        credentials,
        settings_source,
        history,
        transfer_client: DriveTransferClient,
        session_store: SessionStore,
        network_probe: Optional[NetworkProbe] = None,
        locator: Optional[BackupFileLocator] = None,
        cache_dir: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
        watchdog: Optional[TransferWatchdog] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.credentials = credentials
        self.settings_source = settings_source
        self.history = history
        self.transfer_client = transfer_client
        self.session_store = session_store
        self.logger = logger or logging.getLogger("backup_uploader")
        self.network_probe = network_probe or NetworkProbe(logger=self.logger)
        self.locator = locator or BackupFileLocator(config, logger=self.logger)
        self.cache_dir = cache_dir or self.config.resolve_path("paths", "cache", default="data/cache")
        self.watchdog = watchdog
        self.clock = clock
        self.chunk_size = self.config.get_int(
            "upload", "chunk_size_bytes", default=DEFAULT_CHUNK_SIZE_BYTES
        )
        if self.chunk_size <= 0 or self.chunk_size % CHUNK_GRANULARITY_BYTES != 0:
            raise ConfigError(
                f"upload.chunk_size_bytes must be a positive multiple of {CHUNK_GRANULARITY_BYTES}"
            )
        self.wifi_check_interval = max(
            self.config.get_int("upload", "wifi_check_interval", default=DEFAULT_WIFI_CHECK_INTERVAL), 1
        )
        self.max_no_progress_retries = max(
            self.config.get_int(
                "upload", "max_no_progress_retries", default=DEFAULT_MAX_NO_PROGRESS_RETRIES
            ),
            1,
        )
        self.strict_verification = self.config.get_bool(
            "upload", "strict_verification", default=False
        )
        self._handlers = {
            UploadState.INIT: self._on_init,
            UploadState.RESUMING: self._on_resuming,
            UploadState.DISCOVERING: self._on_discovering,
            UploadState.DEDUPING: self._on_deduping,
            UploadState.INITIATING: self._on_initiating,
            UploadState.TRANSFERRING: self._on_transferring,
            UploadState.VERIFYING: self._on_verifying,
        }

    def perform_upload(
        self,
        on_progress: Optional[ProgressCallback] = None,
        is_cancelled: Optional[CancelPoll] = None,
    ) -> UploadOutcome:
        """Run the upload state machine to completion and return its outcome."""
        run = UploadRun(
            on_progress=on_progress or (lambda progress: None),
            is_cancelled=is_cancelled or (lambda: False),
            started_at=self.clock(),
        )
        state = UploadState.INIT
        while state not in TERMINAL_STATES:
            run.state = state
            try:
                state = self.step(run)
            except UploadError as exc:
                return self._fail(run, exc.kind, str(exc))
            except Exception as exc:
                self.logger.exception("Upload failed unexpectedly during %s", state.value)
                return self._fail(run, None, str(exc) or type(exc).__name__)
        run.state = state
        return run.outcome

    def step(self, run: UploadRun) -> UploadState:
        """Execute the handler for ``run.state`` and return the next state."""
        return self._handlers[run.state](run)

    # States

    def _on_init(self, run: UploadRun) -> UploadState:
        try:
            run.token = self.credentials.get_access_token()
        except UploadError:
            raise
        except Exception as exc:
            raise UploadError(ErrorKind.AUTH_FAILURE, f"Failed to get access token: {exc}") from exc
        if not run.token:
            raise UploadError(ErrorKind.AUTH_FAILURE, "No access token available")

        run.settings = self.settings_source.get_settings()
        if not run.settings.local_folder:
            raise UploadError(ErrorKind.CONFIG_MISSING, "Local backup folder not set")
        if not run.settings.drive_folder_id:
            raise UploadError(ErrorKind.CONFIG_MISSING, "Google Drive folder not set")
        return UploadState.RESUMING

    def _on_resuming(self, run: UploadRun) -> UploadState:
        session = self.session_store.load()
        if session is None:
            return UploadState.DISCOVERING
        if self.session_store.is_expired(session):
            self.logger.info("Discarding expired upload session for %s", session.file_name)
            self.session_store.clear()
            return UploadState.DISCOVERING
        if session.target_folder_id != run.folder_id:
            self.logger.info(
                "Discarding upload session for %s: target folder changed (%s -> %s)",
                session.file_name,
                session.target_folder_id,
                run.folder_id,
            )
            self.session_store.clear()
            return UploadState.DISCOVERING

        try:
            progress = self.transfer_client.query_progress(session.session_uri, session.total_bytes)
        except Exception as exc:
            self.logger.warning("Saved upload session is no longer usable, starting fresh: %s", exc)
            self.session_store.clear()
            return UploadState.DISCOVERING

        cached_path = Path(session.local_file_uri)
        if progress.done:
            self.logger.info("Upload of %s already completed remotely; recovering.", session.file_name)
            run.file_name = session.file_name
            run.total_bytes = session.total_bytes
            run.resumed = True
            run.final_result = progress
            self.session_store.clear()
            self._record_success(run, progress.remote_object_id)
            self._discard_cached_copy(cached_path)
            run.outcome = self._success_outcome(run, progress.remote_object_id)
            return UploadState.DONE

        if not self._cached_copy_matches(cached_path, session.total_bytes):
            self.logger.warning(
                "Cached copy %s missing or changed; discarding upload session.", cached_path
            )
            self.session_store.clear()
            return UploadState.DISCOVERING

        run.file_name = session.file_name
        run.total_bytes = session.total_bytes
        run.session_uri = session.session_uri
        run.cached_path = cached_path
        run.start_offset = progress.bytes_confirmed
        run.resumed = True
        if progress.bytes_confirmed != session.bytes_uploaded:
            self.session_store.update_bytes_uploaded(progress.bytes_confirmed)
        self.logger.info(
            "Resuming upload of %s at %s/%s bytes",
            session.file_name,
            progress.bytes_confirmed,
            session.total_bytes,
        )
        return UploadState.TRANSFERRING

    def _on_discovering(self, run: UploadRun) -> UploadState:
        source = self.locator.locate(Path(run.settings.local_folder))
        run.source = source
        run.file_name = source.name
        run.total_bytes = source.size
        return UploadState.DEDUPING

    def _on_deduping(self, run: UploadRun) -> UploadState:
        self._check_cancelled(run)
        existing = self.transfer_client.find_existing(run.file_name, run.folder_id, run.token)
        if existing is not None and existing.size == run.total_bytes:
            self.logger.info(
                "%s already on Drive with matching size (%s); skipping upload.",
                run.file_name,
                existing.id,
            )
            self._record_success(run, existing.id)
            run.outcome = self._success_outcome(run, existing.id, deduplicated=True)
            return UploadState.DONE
        if existing is not None:
            self.logger.info(
                "%s exists on Drive with a different size (%s != %s); uploading.",
                run.file_name,
                existing.size,
                run.total_bytes,
            )
        self._check_cancelled(run)
        return UploadState.INITIATING

    def _on_initiating(self, run: UploadRun) -> UploadState:
        session_uri = self.transfer_client.initiate(
            run.file_name, run.folder_id, run.total_bytes, run.token
        )
        cached_path = self._stage_cached_copy(run.source.path, run.file_name)
        if not self._cached_copy_matches(cached_path, run.total_bytes):
            self._discard_cached_copy(cached_path)
            raise UploadError(
                ErrorKind.UNREADABLE_FILE,
                "Backup file changed while staging",
                details={"source": str(run.source.path), "expected_bytes": run.total_bytes},
            )
        self.session_store.save(
            ResumableSession(
                session_uri=session_uri,
                local_file_uri=str(cached_path),
                file_name=run.file_name,
                total_bytes=run.total_bytes,
                bytes_uploaded=0,
                target_folder_id=run.folder_id,
                created_at_millis=now_millis(),
                drive_file_id=None,
            )
        )
        run.session_uri = session_uri
        run.cached_path = cached_path
        run.start_offset = 0
        return UploadState.TRANSFERRING

    def _on_transferring(self, run: UploadRun) -> UploadState:
        result = self._upload_chunks(run)
        if result is None:
            # Nothing left to send (e.g. an empty file); ask the server to finalize.
            result = self.transfer_client.query_progress(run.session_uri, run.total_bytes)
            if not result.done:
                raise UploadError(
                    ErrorKind.PROTOCOL_VIOLATION,
                    "Server did not finalize an upload that reached its declared size",
                    details={"bytes_confirmed": result.bytes_confirmed},
                )
        run.final_result = result
        return UploadState.VERIFYING

    def _on_verifying(self, run: UploadRun) -> UploadState:
        result = run.final_result
        try:
            local_checksum = compute_checksum(run.cached_path)
        except Exception as exc:
            if self.strict_verification:
                raise UploadError(
                    ErrorKind.INTEGRITY_MISMATCH,
                    f"Could not verify upload checksum: {exc}",
                ) from exc
            self.logger.warning("Skipping checksum verification for %s: %s", run.file_name, exc)
            local_checksum = None
        if result.checksum and local_checksum is not None and local_checksum != result.checksum:
            raise UploadError(
                ErrorKind.INTEGRITY_MISMATCH,
                "MD5 checksum mismatch",
                details={"local": local_checksum, "remote": result.checksum},
            )
        if not result.checksum:
            self.logger.info("Drive returned no checksum for %s; treating as verified.", run.file_name)

        self.session_store.clear()
        self._record_success(run, result.remote_object_id)
        self._discard_cached_copy(run.cached_path)
        run.outcome = self._success_outcome(run, result.remote_object_id)
        return UploadState.DONE

    # Chunk loop

    def _upload_chunks(self, run: UploadRun) -> Optional[ChunkTransferResult]:
        """Send the cached file from ``run.start_offset``; returns the final result or None."""
        bytes_uploaded = run.start_offset
        total_bytes = run.total_bytes
        no_progress_count = 0
        chunk_count = 0
        wifi_only = bool(run.settings.wifi_only)

        if run.cached_path is None or not run.cached_path.is_file():
            raise UploadError(ErrorKind.NOT_FOUND, "Cached backup file not found -- cannot resume")

        with run.cached_path.open("rb") as handle:
            while bytes_uploaded < total_bytes:
                self._check_cancelled(run)

                if wifi_only and chunk_count % self.wifi_check_interval == 0:
                    if not self.network_probe.is_wifi_connected():
                        raise UploadError(ErrorKind.NETWORK_POLICY_VIOLATION, "Wi-Fi connection lost")

                chunk_size = min(self.chunk_size, total_bytes - bytes_uploaded)
                chunk_end = bytes_uploaded + chunk_size - 1
                handle.seek(bytes_uploaded)
                data = handle.read(chunk_size)
                if len(data) != chunk_size:
                    raise UploadError(
                        ErrorKind.UNREADABLE_FILE,
                        "Cached backup file is shorter than expected",
                        details={"offset": bytes_uploaded, "expected": chunk_size, "read": len(data)},
                    )

                result = self.transfer_client.upload_chunk(
                    run.session_uri, data, bytes_uploaded, chunk_end, total_bytes
                )
                self._touch(f"chunk {bytes_uploaded}-{chunk_end}")

                if not result.done and result.bytes_confirmed <= bytes_uploaded:
                    no_progress_count += 1
                    self.logger.warning(
                        "No progress confirmed at offset %s (%s/%s)",
                        bytes_uploaded,
                        no_progress_count,
                        self.max_no_progress_retries,
                    )
                    if no_progress_count >= self.max_no_progress_retries:
                        raise UploadError(
                            ErrorKind.STALLED,
                            "Upload stalled: no progress after retries",
                            details={"offset": bytes_uploaded, "attempts": no_progress_count},
                        )
                    continue

                no_progress_count = 0
                bytes_uploaded = total_bytes if result.done else result.bytes_confirmed
                chunk_count += 1
                self.session_store.update_bytes_uploaded(bytes_uploaded)
                self._emit_progress(run, bytes_uploaded)

                if result.done:
                    return result
        return None

    # Helpers

    def _check_cancelled(self, run: UploadRun) -> None:
        if run.is_cancelled():
            raise UploadError(ErrorKind.CANCELLED, "Cancelled")

    def _emit_progress(self, run: UploadRun, bytes_uploaded: int) -> None:
        elapsed = self.clock() - run.started_at
        speed = bytes_uploaded / elapsed if elapsed > 0 else 0.0
        remaining = (run.total_bytes - bytes_uploaded) / speed if speed > 0 else -1
        progress = UploadProgress(
            bytes_uploaded=bytes_uploaded,
            total_bytes=run.total_bytes,
            speed_bytes_per_sec=round(speed),
            estimated_seconds_remaining=round(remaining),
        )
        try:
            run.on_progress(progress)
        except Exception as exc:
            self.logger.warning("Progress callback failed: %s", exc)

    def _stage_cached_copy(self, source: Path, file_name: str) -> Path:
        """Copy the source into the cache so chunks can be re-read at any offset."""
        destination = self.cache_dir / file_name
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, destination)
        except OSError as exc:
            raise UploadError(
                ErrorKind.UNREADABLE_FILE,
                "Failed to copy backup file to cache",
                details={"source": str(source), "reason": str(exc)},
            ) from exc
        return destination

    def _cached_copy_matches(self, path: Path, total_bytes: int) -> bool:
        try:
            return path.is_file() and path.stat().st_size == total_bytes
        except OSError:
            return False

    def _discard_cached_copy(self, path: Optional[Path]) -> None:
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            self.logger.warning("Could not delete cached copy %s: %s", path, exc)

    def _touch(self, note: str) -> None:
        if self.watchdog is not None:
            self.watchdog.touch(note)

    def _record_success(self, run: UploadRun, drive_file_id: Optional[str]) -> None:
        self.history.insert_upload_record(
            UploadRecord(
                timestamp=now_millis(),
                file_name=run.file_name,
                file_size_bytes=run.total_bytes,
                status=UploadResultStatus.SUCCESS,
                error_message=None,
                drive_folder_id=run.folder_id,
                drive_file_id=drive_file_id,
            )
        )
        self.logger.info("Uploaded %s (%s bytes) as %s", run.file_name, run.total_bytes, drive_file_id)

    def _success_outcome(
        self, run: UploadRun, drive_file_id: Optional[str], deduplicated: bool = False
    ) -> UploadOutcome:
        return UploadOutcome(
            success=True,
            file_name=run.file_name,
            file_size_bytes=run.total_bytes,
            drive_folder_id=run.folder_id,
            drive_file_id=drive_file_id,
            deduplicated=deduplicated,
            resumed=run.resumed,
        )

    def _fail(self, run: UploadRun, kind: Optional[ErrorKind], message: str) -> UploadOutcome:
        failed_in = run.state
        run.state = UploadState.FAILED
        if kind == ErrorKind.CANCELLED:
            self.logger.info("Upload cancelled during %s", failed_in.value)
        else:
            self.logger.error("Upload failed during %s: %s", failed_in.value, message)

        if kind == ErrorKind.INTEGRITY_MISMATCH:
            # Must clear: resuming a finished session would record a false success.
            self.session_store.clear()
            self._discard_cached_copy(run.cached_path)

        if run.file_name is not None and kind != ErrorKind.CANCELLED:
            try:
                self.history.insert_upload_record(
                    UploadRecord(
                        timestamp=now_millis(),
                        file_name=run.file_name,
                        file_size_bytes=run.total_bytes,
                        status=UploadResultStatus.FAILED,
                        error_message=message,
                        drive_folder_id=run.folder_id,
                        drive_file_id=None,
                    )
                )
            except Exception as exc:
                self.logger.error("Could not record failed upload in history: %s", exc)

        run.outcome = UploadOutcome(
            success=False,
            file_name=run.file_name,
            file_size_bytes=run.total_bytes if run.file_name is not None else None,
            error=message,
            error_kind=kind,
            drive_folder_id=run.folder_id or None,
            resumed=run.resumed,
        )
        return run.outcome
