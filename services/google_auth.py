# todolist/services/google_auth.py
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from core.errors import AccountUnavailable, AuthError, classify_remote_error
from core.settings import CLIENT_SECRET_PATH, REMOTE_SYNC, TOKEN_PATH


logger = logging.getLogger("todolist.auth")


class GoogleAuth:
    """OAuth credentials for the Drive ``appDataFolder`` record store.

    ``authenticate()`` returns the signed-in account's stable identity (the
    Drive ``permissionId``) and raises :class:`AuthError` otherwise.
    """

    def __init__(
        self,
        secrets_path: str | Path = CLIENT_SECRET_PATH,
        token_path: str | Path = TOKEN_PATH,
        *,
        scopes: Iterable[str] = REMOTE_SYNC.scopes,
        allow_interactive: bool = REMOTE_SYNC.allow_interactive_consent,
    ):
        self.secrets_path = Path(secrets_path)
        self.token_path = Path(token_path)
        self.scopes = list(scopes)
        self.allow_interactive = allow_interactive
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        self.creds: Optional[Credentials] = None
        self._log(f"Token path: {self.token_path}")

    def authenticate(self) -> str:
        creds = self.ensure_credentials()
        return self._fetch_identity(creds)

    def ensure_credentials(self) -> Credentials:
        if self.creds and self.creds.valid and self._has_required_scopes(self.creds):
            return self.creds

        if self.creds is None and self.token_path.exists():
            try:
                self.creds = Credentials.from_authorized_user_file(
                    str(self.token_path), self.scopes
                )
            except (ValueError, json.JSONDecodeError) as exc:
                self._log(f"Failed to load token: {exc}; triggering reauth")
                self.reset_credentials()

        if self.creds and not self._has_required_scopes(self.creds):
            self._log("Token is missing required scopes; requesting consent again")
            self.reset_credentials()

        if self.creds and not self.creds.valid:
            if self.creds.expired and self.creds.refresh_token:
                try:
                    self.creds.refresh(Request())
                except RefreshError as exc:
                    self._log(f"Token refresh failed: {exc}; forcing reauth")
                    self.reset_credentials()
                except TransportError as exc:
                    raise AuthError(f"Token refresh unreachable: {exc}") from exc
            else:
                self.reset_credentials()

        if not self.creds:
            self.creds = self._run_consent_flow()

        self._persist_credentials(self.creds)
        return self.creds

    def get_credentials(self) -> Optional[Credentials]:
        return self.creds

    def reset_credentials(self) -> None:
        self.creds = None
        try:
            if self.token_path.exists():
                self.token_path.unlink()
                self._log("Removed cached Google token")
        except OSError as exc:
            self._log(f"Failed to remove cached token: {exc}")

    def revoke(self) -> None:
        self.reset_credentials()

    # ----- helpers -----
    def _log(self, message: str) -> None:
        logger.info("[GoogleAuth] %s", message)

    def _run_consent_flow(self) -> Credentials:
        if not self.allow_interactive:
            raise AccountUnavailable("No Google account is signed in")
        if not self.secrets_path.exists():
            raise AccountUnavailable(
                f"OAuth client file {self.secrets_path} is missing; "
                "create a Desktop OAuth client in Google Cloud and download its JSON."
            )
        flow = InstalledAppFlow.from_client_secrets_file(str(self.secrets_path), self.scopes)
        self._log("Running OAuth consent flow (local server)")
        creds = flow.run_local_server(
            port=0,
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
        )
        if not creds or not self._has_required_scopes(creds):
            raise AuthError("Consent finished without the required Drive scope")
        return creds

    def _fetch_identity(self, creds: Credentials) -> str:
        service = build("drive", "v3", credentials=creds, cache_discovery=False)
        try:
            about = service.about().get(fields="user(permissionId,emailAddress)").execute()
        except (HttpError, TransportError, OSError) as exc:
            raise AuthError(str(classify_remote_error(exc))) from exc
        user = about.get("user") or {}
        identity = user.get("permissionId") or user.get("emailAddress")
        if not identity:
            raise AuthError("Drive did not report the signed-in user")
        return str(identity)

    def _persist_credentials(self, creds: Credentials) -> None:
        data = creds.to_json()
        tmp_path = self.token_path.with_suffix(".tmp")
        try:
            tmp_path.write_text(data, encoding="utf-8")
            os.replace(tmp_path, self.token_path)
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    pass

    def _has_required_scopes(self, creds: Credentials) -> bool:
        current = set(creds.scopes or [])
        return all(scope in current for scope in self.scopes)


__all__ = ["GoogleAuth"]
