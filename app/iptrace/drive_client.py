from __future__ import annotations

import json
import time
import uuid
from typing import Any, Optional, Protocol

import requests

from .error_codes import ErrorCode
from .logging_utils import _trace_event
from .retry_policy import compute_backoff_seconds, decide_retry
from .utils import log_line

DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"


class BlobStore(Protocol):
    def upload(self, data: bytes, display_name: str, parent_id: str, mime_type: str) -> str:
        ...


class UploadError(Exception):
    def __init__(self, error_code: str, message: str, *, http_status: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.http_status = http_status

    def __str__(self) -> str:  # pragma: no cover - inherited behaviour
        return str(self.args[0]) if self.args else ""


def _classify_http_status(status: Optional[int]) -> str:
    if status is None:
        return ErrorCode.INTERNAL
    if status == 401:
        return ErrorCode.HTTP_401
    if status == 403:
        return ErrorCode.HTTP_403
    if status == 404:
        return ErrorCode.HTTP_404
    if status == 429:
        return ErrorCode.RATE_LIMIT
    if 400 <= status < 500:
        return ErrorCode.HTTP_4XX
    if status >= 500:
        return ErrorCode.HTTP_5XX
    return ErrorCode.INTERNAL


def build_multipart_body(
    data: bytes, metadata: dict[str, Any], mime_type: str, *, boundary: str
) -> bytes:
    """Return a ``multipart/related`` body holding *metadata* and *data*."""

    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata, ensure_ascii=False)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + data + tail


class DriveBlobStore:
    """Upload files to a Google Drive folder through an authorised requests session."""

    def __init__(
        self,
        session: requests.Session,
        *,
        max_retries: int = 3,
        timeout: int = 120,
        upload_url: str = DRIVE_UPLOAD_URL,
    ) -> None:
        self._session = session
        self._max_retries = max(1, max_retries)
        self._timeout = timeout
        self._upload_url = upload_url

    def upload(self, data: bytes, display_name: str, parent_id: str, mime_type: str) -> str:
        """Upload *data* and return the new Drive file id."""

        metadata: dict[str, Any] = {"name": display_name, "mimeType": mime_type}
        if parent_id:
            metadata["parents"] = [parent_id]

        last_status: Optional[int] = None
        error_code: Optional[str] = None
        error_message: Optional[str] = None

        for attempt in range(1, self._max_retries + 1):
            status: Optional[int] = None
            boundary = f"iptrace-{uuid.uuid4().hex}"
            body = build_multipart_body(data, metadata, mime_type, boundary=boundary)
            try:
                resp = self._session.post(
                    self._upload_url,
                    params={"uploadType": "multipart", "fields": "id", "supportsAllDrives": "true"},
                    data=body,
                    headers={"Content-Type": f"multipart/related; boundary={boundary}"},
                    timeout=self._timeout,
                )
                status = resp.status_code
                if status >= 400:
                    raise UploadError(
                        _classify_http_status(status), f"HTTP {status}", http_status=status
                    )
                try:
                    file_id = resp.json().get("id")
                except ValueError as exc:
                    raise UploadError(
                        ErrorCode.MALFORMED_RESPONSE, f"Upload response is not JSON: {exc}"
                    ) from exc
                if not file_id:
                    raise UploadError(ErrorCode.MALFORMED_RESPONSE, "Upload response has no file id")

                _trace_event(
                    "drive",
                    phase="upload",
                    name=display_name,
                    status="ok",
                    http_status=status,
                    bytes=len(data),
                )
                log_line(f"[IPTRACE][DRIVE] uploaded name={display_name} id={file_id} bytes={len(data)}")
                return str(file_id)

            except UploadError as exc:
                error_code = exc.error_code
                error_message = str(exc)
                last_status = status or exc.http_status
            except (requests.Timeout, requests.ConnectionError) as exc:
                error_code = ErrorCode.NETWORK
                error_message = str(exc)
                last_status = None
            except requests.RequestException as exc:
                error_code = ErrorCode.INTERNAL
                error_message = str(exc)
                last_status = None

            should_retry = decide_retry(
                attempt_index=attempt,
                max_attempts=self._max_retries,
                error_code=error_code,
                http_status=last_status,
            )
            backoff = compute_backoff_seconds(attempt)
            _trace_event(
                "state",
                phase="upload_retry",
                name=display_name,
                attempt=attempt,
                max_attempts=self._max_retries,
                error_code=error_code,
                http_status=last_status,
                will_retry=should_retry,
                backoff_seconds=backoff if should_retry else None,
                error_message=error_message,
            )
            log_line(f"[IPTRACE][DRIVE] upload attempt {attempt} for {display_name} failed: {error_message}")

            if not should_retry:
                break
            time.sleep(backoff)

        raise UploadError(
            error_code or ErrorCode.INTERNAL,
            error_message or "upload failed",
            http_status=last_status,
        )


__all__ = ["BlobStore", "DriveBlobStore", "UploadError", "build_multipart_body"]
