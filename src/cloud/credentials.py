"""
Google OAuth credentials for Drive access.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from backup.exceptions import ErrorKind, UploadError
from config import AppConfig

DEFAULT_SCOPES = ["https://www.googleapis.com/auth/drive"]


class GoogleCredentialProvider:
    """Supply bearer access tokens from a service account or a stored user token."""

    def __init__(self, config: AppConfig, logger: Optional[logging.Logger] = None) -> None:
        self.config = config
        self.logger = logger or logging.getLogger("backup_uploader")
        self.scopes = list(
            self.config.get("cloud", "google_drive", "scopes", default=DEFAULT_SCOPES)
        )
        self.credentials_path = self._resolve_path("credentials_path")
        self.token_path = self._resolve_path("token_path") or self.config.resolve_path(
            "paths", "token", default="data/token.json"
        )
        self.service_account_path = self._resolve_path("service_account_path")
        self._creds = None

    def get_access_token(self) -> str:
        """Return a valid access token, refreshing it when expired."""
        creds = self._creds or self._load_credentials()
        if not creds.valid:
            try:
                creds.refresh(Request())
            except (GoogleAuthError, OSError) as exc:
                raise UploadError(ErrorKind.AUTH_FAILURE, f"Token refresh failed: {exc}") from exc
            self._persist(creds)
        if not creds.token:
            raise UploadError(ErrorKind.AUTH_FAILURE, "No access token available")
        self._creds = creds
        return creds.token

    def account_email(self) -> Optional[str]:
        """Best-effort account identity of the loaded credentials."""
        creds = self._creds or self._load_credentials()
        return getattr(creds, "service_account_email", None) or getattr(creds, "account", None) or None

    def authorize(self, open_browser: bool = True) -> Path:
        """Run the installed-app consent flow and store the resulting token."""
        if self.credentials_path is None or not self.credentials_path.exists():
            raise UploadError(
                ErrorKind.CONFIG_MISSING,
                "OAuth client secrets not configured (cloud.google_drive.credentials_path)",
            )
        flow = InstalledAppFlow.from_client_secrets_file(str(self.credentials_path), self.scopes)
        creds = flow.run_local_server(port=0, open_browser=open_browser)
        self._persist(creds)
        self._creds = creds
        self.logger.info("Stored Drive token at %s", self.token_path)
        return self.token_path

    def _load_credentials(self):
        if self.service_account_path is not None:
            try:
                return service_account.Credentials.from_service_account_file(
                    str(self.service_account_path), scopes=self.scopes
                )
            except (ValueError, OSError) as exc:
                raise UploadError(ErrorKind.AUTH_FAILURE, f"Service account auth failed: {exc}") from exc
        if not self.token_path.exists():
            raise UploadError(
                ErrorKind.AUTH_FAILURE,
                "Not signed in to Google Drive",
                details={"consent_required": True, "token_path": str(self.token_path)},
            )
        try:
            creds = Credentials.from_authorized_user_file(str(self.token_path), self.scopes)
        except (ValueError, OSError) as exc:
            raise UploadError(
                ErrorKind.AUTH_FAILURE,
                f"Stored Drive token is unreadable: {exc}",
                details={"consent_required": True, "token_path": str(self.token_path)},
            ) from exc
        if not creds.valid and not creds.refresh_token:
            raise UploadError(
                ErrorKind.AUTH_FAILURE,
                "Stored Drive token expired and cannot be refreshed",
                details={"consent_required": True, "token_path": str(self.token_path)},
            )
        return creds

    def _persist(self, creds) -> None:
        if not isinstance(creds, Credentials):
            return
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        self.token_path.write_text(creds.to_json(), encoding="utf-8")

    def _resolve_path(self, key: str) -> Optional[Path]:
        value = self.config.get("cloud", "google_drive", key, default=None)
        if not value:
            return None
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = (self.config.root_dir / path).resolve()
        return path
