from __future__ import annotations

import pytest
import requests

from app.iptrace import drive_client
from app.iptrace.drive_client import DriveBlobStore, UploadError, build_multipart_body
from app.iptrace.error_codes import ErrorCode


class _Resp:
    def __init__(self, status_code: int, payload=None) -> None:  # noqa: ANN001
        self.status_code = status_code
        self._payload = payload

    def json(self):  # noqa: ANN201
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _Session:
    def __init__(self, responses) -> None:  # noqa: ANN001
        self._responses = list(responses)
        self.calls: list[dict] = []

    def post(self, url, **kwargs):  # noqa: ANN001, ANN201
        self.calls.append({"url": url, **kwargs})
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    sleeps: list[float] = []
    monkeypatch.setattr(drive_client.time, "sleep", sleeps.append)
    return sleeps


def test_multipart_body_layout() -> None:
    body = build_multipart_body(b"PNGDATA", {"name": "a.png"}, "image/png", boundary="XYZ")
    assert body.startswith(b"--XYZ\r\nContent-Type: application/json")
    assert b'{"name": "a.png"}' in body
    assert b"Content-Type: image/png\r\n\r\nPNGDATA\r\n--XYZ--\r\n" in body


def test_upload_returns_file_id(monkeypatch: pytest.MonkeyPatch) -> None:
    messages: list[str] = []
    monkeypatch.setattr(drive_client, "log_line", lambda msg: messages.append(msg))
    session = _Session([_Resp(200, {"id": "file-123"})])

    file_id = DriveBlobStore(session).upload(b"data", "shot.png", "folder-1", "image/png")

    assert file_id == "file-123"
    call = session.calls[0]
    assert call["params"]["uploadType"] == "multipart"
    assert call["headers"]["Content-Type"].startswith("multipart/related; boundary=")
    assert b'"parents": ["folder-1"]' in call["data"]
    assert any("[IPTRACE][DRIVE]" in msg for msg in messages)


def test_upload_retries_server_errors(_no_sleep: list[float]) -> None:
    session = _Session([_Resp(503), requests.ConnectionError("reset"), _Resp(200, {"id": "ok"})])

    assert DriveBlobStore(session, max_retries=3).upload(b"d", "n.png", "f", "image/png") == "ok"
    assert len(session.calls) == 3
    assert _no_sleep == [1.0, 2.0]


def test_upload_does_not_retry_forbidden() -> None:
    session = _Session([_Resp(403), _Resp(200, {"id": "never"})])

    with pytest.raises(UploadError) as excinfo:
        DriveBlobStore(session, max_retries=3).upload(b"d", "n.png", "f", "image/png")

    assert excinfo.value.error_code == ErrorCode.HTTP_403
    assert excinfo.value.http_status == 403
    assert len(session.calls) == 1


def test_upload_gives_up_after_max_attempts() -> None:
    session = _Session([_Resp(500), _Resp(502)])

    with pytest.raises(UploadError) as excinfo:
        DriveBlobStore(session, max_retries=2).upload(b"d", "n.png", "f", "image/png")

    assert excinfo.value.error_code == ErrorCode.HTTP_5XX
    assert len(session.calls) == 2


def test_upload_malformed_response() -> None:
    session = _Session([_Resp(200, ValueError("no json"))])

    with pytest.raises(UploadError) as excinfo:
        DriveBlobStore(session, max_retries=3).upload(b"d", "n.png", "f", "image/png")

    assert excinfo.value.error_code == ErrorCode.MALFORMED_RESPONSE
    assert len(session.calls) == 1
