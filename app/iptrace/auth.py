"""Google credential loading for the Sheets and Drive adapters.

A service-account key is used when configured. Otherwise an OAuth client
secret file drives the installed-app flow, and the resulting user token is
cached in the token file for later runs.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import gspread
from google.auth.transport.requests import AuthorizedSession, Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials as UserCredentials
from google_auth_oauthlib.flow import InstalledAppFlow

from .config import Settings
from .drive_client import DriveBlobStore
from .sheets_client import GoogleSheetsStore
from .utils import log_line


class CredentialsError(RuntimeError):
    pass


def _load_user_credentials(
    credentials_file: Path, token_file: Path, scopes: Sequence[str]
) -> UserCredentials:
    creds = None
    if token_file.exists():
        creds = UserCredentials.from_authorized_user_file(str(token_file), list(scopes))

    if creds is not None and creds.valid:
        return creds

    if creds is not None and creds.expired and creds.refresh_token:
        log_line(f"[AUTH] Refreshing cached token {token_file}")
        creds.refresh(Request())
    else:
        if not credentials_file.exists():
            raise CredentialsError(f"OAuth client file not found: {credentials_file}")
        log_line("[AUTH] No usable token; starting browser consent flow.")
        flow = InstalledAppFlow.from_client_secrets_file(str(credentials_file), list(scopes))
        creds = flow.run_local_server(port=0)

    token_file.parent.mkdir(parents=True, exist_ok=True)
    token_file.write_text(creds.to_json(), encoding="utf-8")
    log_line(f"[AUTH] Token stored to {token_file}")
    return creds


def load_credentials(settings: Settings) -> Any:
    """Return Google credentials for the configured account."""

    if settings.service_account_file is not None:
        if not settings.service_account_file.exists():
            raise CredentialsError(
                f"Service account file not found: {settings.service_account_file}"
            )
        return service_account.Credentials.from_service_account_file(
            str(settings.service_account_file), scopes=list(settings.scopes)
        )
    return _load_user_credentials(settings.credentials_file, settings.token_file, settings.scopes)


def build_stores(settings: Settings) -> tuple[GoogleSheetsStore, DriveBlobStore]:
    """Authorise once and return the Sheets and Drive adapters."""

    creds = load_credentials(settings)
    sheets = GoogleSheetsStore(gspread.authorize(creds))
    drive = DriveBlobStore(AuthorizedSession(creds), max_retries=settings.upload_retries)
    return sheets, drive


__all__ = ["CredentialsError", "load_credentials", "build_stores"]
