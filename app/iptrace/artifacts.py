from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from playwright.sync_api import Page

from .drive_client import BlobStore
from .logging_utils import _trace_event
from .utils import log_line, sanitize_filename_component

PNG_MIME_TYPE = "image/png"


def build_artifact_name(ip_address: str, outcome_tag: str, when: datetime) -> str:
    safe_ip = sanitize_filename_component(ip_address) or "unknown"
    safe_tag = sanitize_filename_component(outcome_tag) or "capture"
    return f"{safe_ip}_{safe_tag}_{when.strftime('%Y%m%d_%H%M%S')}.png"


class ArtifactCapture:
    """Screenshot a page, upload it, and remove the local copy.

    Capture is best-effort: every failure is logged and reported as ``None``.
    The staged file is removed whether or not the upload succeeded.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        folder_id: str,
        staging_dir: Path,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._blob_store = blob_store
        self._folder_id = folder_id
        self._staging_dir = Path(staging_dir)
        self._clock = clock

    def capture(self, page: Page, ip_address: str, outcome_tag: str) -> Optional[str]:
        filename = build_artifact_name(ip_address, outcome_tag, self._clock())
        path = self._staging_dir / filename
        try:
            self._staging_dir.mkdir(parents=True, exist_ok=True)
            page.screenshot(path=str(path), full_page=True)
            log_line(f"[CAPTURE] Saved screenshot -> {path}")
            remote_id = self._blob_store.upload(
                path.read_bytes(), filename, self._folder_id, PNG_MIME_TYPE
            )
        except Exception as exc:  # noqa: BLE001
            log_line(f"[CAPTURE][ERROR] Screenshot or upload failed for {ip_address} ({outcome_tag}): {exc}")
            _trace_event(
                "error",
                phase="capture",
                ip=ip_address,
                tag=outcome_tag,
                error=str(exc),
            )
            return None
        finally:
            self._discard(path)

        _trace_event("capture", ip=ip_address, tag=outcome_tag, remote_id=remote_id)
        return remote_id

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            log_line(f"[CAPTURE][WARN] Unable to remove staged screenshot {path}: {exc}")


__all__ = ["ArtifactCapture", "build_artifact_name", "PNG_MIME_TYPE"]
