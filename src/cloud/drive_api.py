"""
Google Drive v3 client: resumable upload wire protocol and metadata queries.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Callable, Optional

import requests
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from backup.exceptions import ErrorKind, UploadError
from backup.types import (
    FOLDER_MIME_TYPE,
    UPLOAD_MIME_TYPE,
    ChunkTransferResult,
    DriveFolder,
    RemoteFile,
)

DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
RESUME_INCOMPLETE = 308
DEFAULT_TIMEOUT_SECONDS = 60.0

_RANGE_PATTERN = re.compile(r"bytes=(\d+)-(\d+)")

ServiceFactory = Callable[[str], object]


def escape_query_value(value: str) -> str:
    """Escape a value for embedding inside a single-quoted Drive query literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def parse_range_header(value: Optional[str]) -> int:
    """Return the confirmed byte count from a ``Range: bytes=0-N`` header (N + 1), or 0."""
    if not value:
        return 0
    match = _RANGE_PATTERN.search(value)
    if match is None:
        return 0
    return int(match.group(2)) + 1


def build_drive_service(token: str):
    """Build a Drive v3 service authorized with a bare access token."""
    return build("drive", "v3", credentials=Credentials(token=token), cache_discovery=False)


class DriveTransferClient:
    """Stateless client for the Drive resumable upload protocol.

    Wire calls go through a ``requests`` session; metadata queries use the
    discovery-based Drive service. Every failure is raised as UploadError.
    """

    def __init__(
        self,
        http: Optional[requests.Session] = None,
        service_factory: Optional[ServiceFactory] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        num_retries: int = 3,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.http = http or requests.Session()
        self.service_factory = service_factory or build_drive_service
        self.timeout_seconds = timeout_seconds
        self.num_retries = max(num_retries, 0)
        self.logger = logger or logging.getLogger("backup_uploader")

    # Resumable upload protocol

    def initiate(self, file_name: str, folder_id: str, total_bytes: int, token: str) -> str:
        """Open a resumable session and return its upload URI."""
        url = f"{DRIVE_UPLOAD_URL}?uploadType=resumable&fields=id,md5Checksum"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json; charset=UTF-8",
            "X-Upload-Content-Type": UPLOAD_MIME_TYPE,
            "X-Upload-Content-Length": str(total_bytes),
        }
        body = json.dumps({"name": file_name, "parents": [folder_id]})
        response = self._send("post", url, headers=headers, data=body)
        if not _is_success(response.status_code):
            raise UploadError(
                ErrorKind.REMOTE_REJECTED,
                "Failed to initiate resumable upload",
                status=response.status_code,
                body=_safe_text(response),
            )
        session_uri = response.headers.get("Location")
        if not session_uri:
            raise UploadError(
                ErrorKind.PROTOCOL_VIOLATION,
                "No Location header in resumable upload response",
                status=response.status_code,
            )
        self.logger.info("Opened resumable session for %s (%s bytes)", file_name, total_bytes)
        return session_uri

    def upload_chunk(
        self,
        session_uri: str,
        data: bytes,
        start_offset: int,
        end_offset_inclusive: int,
        total_bytes: int,
    ) -> ChunkTransferResult:
        """Send one byte range of the upload."""
        headers = {
            "Content-Length": str(len(data)),
            "Content-Range": f"bytes {start_offset}-{end_offset_inclusive}/{total_bytes}",
        }
        response = self._send("put", session_uri, headers=headers, data=data)
        return self._parse_upload_response(response)

    def query_progress(self, session_uri: str, total_bytes: int) -> ChunkTransferResult:
        """Ask the server how many bytes of the session it has durably received."""
        headers = {
            "Content-Length": "0",
            "Content-Range": f"bytes */{total_bytes}",
        }
        response = self._send("put", session_uri, headers=headers, data=b"")
        if response.status_code == 404:
            raise UploadError(ErrorKind.SESSION_EXPIRED, "Upload session expired", status=404)
        return self._parse_upload_response(response)

    # Metadata queries

    def find_existing(self, file_name: str, folder_id: str, token: str) -> Optional[RemoteFile]:
        """Return the first non-trashed file named ``file_name`` in the folder, if any."""
        service = self.service_factory(token)
        query = (
            f"name='{escape_query_value(file_name)}' "
            f"and '{escape_query_value(folder_id)}' in parents and trashed=false"
        )
        response = self._execute(
            service.files().list(q=query, fields="files(id,size)"),
            context="find_existing",
        )
        files = response.get("files", [])
        if not files:
            return None
        first = files[0]
        return RemoteFile(id=str(first["id"]), size=int(first.get("size") or 0))

    def list_folders(self, parent_id: str, token: str) -> list[DriveFolder]:
        """List non-trashed folders directly under ``parent_id``, ordered by name."""
        service = self.service_factory(token)
        query = (
            f"mimeType='{FOLDER_MIME_TYPE}' and trashed=false "
            f"and '{escape_query_value(parent_id)}' in parents"
        )
        folders: list[DriveFolder] = []
        page_token = None
        while True:
            response = self._execute(
                service.files().list(
                    q=query,
                    fields="nextPageToken, files(id,name)",
                    orderBy="name",
                    pageToken=page_token,
                ),
                context="list_folders",
            )
            folders.extend(
                DriveFolder(id=str(item["id"]), name=str(item.get("name", "")))
                for item in response.get("files", [])
            )
            page_token = response.get("nextPageToken")
            if not page_token:
                break
        return folders

    def create_folder(self, name: str, parent_id: str, token: str) -> DriveFolder:
        service = self.service_factory(token)
        folder = self._execute(
            service.files().create(
                body={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
                fields="id, name",
            ),
            context="create_folder",
        )
        return DriveFolder(id=str(folder["id"]), name=str(folder.get("name", name)))

    # Helpers

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return getattr(self.http, method)(url, timeout=self.timeout_seconds, **kwargs)
        except requests.RequestException as exc:
            raise UploadError(
                ErrorKind.NETWORK_FAILURE,
                f"Network error talking to Drive: {exc}",
            ) from exc

    def _parse_upload_response(self, response: requests.Response) -> ChunkTransferResult:
        status = response.status_code
        if status in (200, 201):
            try:
                payload = response.json()
            except ValueError as exc:
                raise UploadError(
                    ErrorKind.PROTOCOL_VIOLATION,
                    "Completed upload returned a malformed body",
                    status=status,
                    body=_safe_text(response),
                ) from exc
            file_id = payload.get("id") if isinstance(payload, dict) else None
            if not file_id:
                raise UploadError(
                    ErrorKind.PROTOCOL_VIOLATION,
                    "Completed upload response has no file id",
                    status=status,
                    body=_safe_text(response),
                )
            return ChunkTransferResult(
                done=True,
                remote_object_id=str(file_id),
                checksum=payload.get("md5Checksum") or None,
            )
        if status == RESUME_INCOMPLETE:
            return ChunkTransferResult(
                done=False,
                bytes_confirmed=parse_range_header(response.headers.get("Range")),
            )
        raise UploadError(
            ErrorKind.REMOTE_REJECTED,
            "Unexpected upload response",
            status=status,
            body=_safe_text(response),
        )

    def _execute(self, request, context: str) -> dict:
        try:
            return request.execute(num_retries=self.num_retries)
        except HttpError as exc:
            status = getattr(getattr(exc, "resp", None), "status", None)
            content = getattr(exc, "content", b"") or b""
            self.logger.warning("Drive %s failed: %s", context, exc)
            raise UploadError(
                ErrorKind.REMOTE_REJECTED,
                f"Drive {context} failed",
                status=int(status) if status is not None else None,
                body=content.decode("utf-8", errors="replace") if isinstance(content, bytes) else str(content),
            ) from exc
        except OSError as exc:
            self.logger.warning("Drive %s failed: %s", context, exc)
            raise UploadError(ErrorKind.NETWORK_FAILURE, f"Drive {context} failed: {exc}") from exc


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def _safe_text(response: requests.Response) -> str:
    try:
        return response.text
    except Exception:  # body may be unreadable after a broken stream
        return ""
