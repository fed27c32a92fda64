from __future__ import annotations

from datetime import datetime
from pathlib import Path

from playwright.sync_api import Error as PWError

from app.iptrace.artifacts import PNG_MIME_TYPE, ArtifactCapture, build_artifact_name
from app.iptrace.drive_client import UploadError
from app.iptrace.error_codes import ErrorCode
from tests.fakes import FakeBlobStore, FakePage

FIXED_NOW = datetime(2024, 5, 1, 9, 30, 15)


def test_artifact_name_is_sanitised() -> None:
    assert build_artifact_name("1.2.3.4", "primary", FIXED_NOW) == "1_2_3_4_primary_20240501_093015.png"
    assert build_artifact_name("", "", FIXED_NOW) == "unknown_capture_20240501_093015.png"


def test_capture_uploads_and_removes_staged_file(tmp_path: Path) -> None:
    blob_store = FakeBlobStore()
    staging = tmp_path / "staging"
    capture = ArtifactCapture(blob_store, "folder-1", staging, clock=lambda: FIXED_NOW)
    page = FakePage()

    remote_id = capture.capture(page, "1.2.3.4", "primary")

    assert remote_id == "blob-1"
    upload = blob_store.uploads[0]
    assert upload["parent"] == "folder-1"
    assert upload["mime_type"] == PNG_MIME_TYPE
    assert upload["data"].startswith(b"\x89PNG")
    assert ("screenshot", str(staging / upload["name"]), True) in page.calls
    assert list(staging.iterdir()) == []


def test_capture_upload_failure_still_removes_file(tmp_path: Path) -> None:
    blob_store = FakeBlobStore(fail=UploadError(ErrorCode.HTTP_5XX, "HTTP 503", http_status=503))
    staging = tmp_path / "staging"
    capture = ArtifactCapture(blob_store, "folder-1", staging)

    assert capture.capture(FakePage(), "1.2.3.4", "primary") is None
    assert list(staging.iterdir()) == []


def test_capture_screenshot_failure_returns_none(tmp_path: Path) -> None:
    blob_store = FakeBlobStore()
    capture = ArtifactCapture(blob_store, "folder-1", tmp_path / "staging")
    page = FakePage(fail={"screenshot": PWError("Target closed")})

    assert capture.capture(page, "1.2.3.4", "primary") is None
    assert blob_store.uploads == []
