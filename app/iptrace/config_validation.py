from __future__ import annotations

from dataclasses import asdict
from typing import Literal

from .config import RESUME_MARKERS, Settings
from .logging_utils import _trace_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "tests"]


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _trace_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def _warn(message: str, *, entrypoint: Entrypoint, field: str) -> None:
    _trace_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_warning",
        field=field,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message}")


def validate_settings(settings: Settings, entrypoint: Entrypoint = "cli") -> None:
    """Validate run settings before any row is touched.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Non-fatal oddities (no Drive folder, a secondary lookup without markers)
    are logged but do not raise.
    """

    if not settings.spreadsheet_id:
        _raise_config_error(
            "IPTRACE_SPREADSHEET_ID must be set.",
            entrypoint=entrypoint,
            error="spreadsheet_id_missing",
        )

    if settings.service_account_file is not None:
        if not settings.service_account_file.exists():
            _raise_config_error(
                f"Service account file {settings.service_account_file} does not exist.",
                entrypoint=entrypoint,
                error="service_account_missing",
            )
    elif not settings.credentials_file.exists() and not settings.token_file.exists():
        _raise_config_error(
            f"Neither {settings.credentials_file} nor {settings.token_file} exists; "
            "cannot authorise against Google.",
            entrypoint=entrypoint,
            error="credentials_missing",
        )

    if settings.resume_marker not in RESUME_MARKERS:
        _raise_config_error(
            f"IPTRACE_RESUME_MARKER must be one of {', '.join(RESUME_MARKERS)}.",
            entrypoint=entrypoint,
            error="resume_marker_invalid",
        )

    for field_name, value in asdict(settings.timeouts).items():
        if value <= 0:
            _raise_config_error(
                f"Timeout {field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )

    column_indices = list(asdict(settings.columns).values())
    if len(set(column_indices)) != len(column_indices):
        _raise_config_error(
            "Job sheet column indices must be distinct.",
            entrypoint=entrypoint,
            error="duplicate_columns",
        )

    if not settings.sentinel:
        _raise_config_error(
            "Sentinel text must not be empty.",
            entrypoint=entrypoint,
            error="sentinel_empty",
        )

    if not settings.screenshot_folder_id:
        _warn(
            "IPTRACE_SCREENSHOT_FOLDER_ID is not set; screenshots will not be uploaded.",
            entrypoint=entrypoint,
            field="screenshot_folder_id",
        )

    if settings.secondary_enabled and not (settings.overseas_markers or settings.mobile_markers):
        _warn(
            "Secondary lookup enabled without overseas or mobile markers; it can only pass rows through.",
            entrypoint=entrypoint,
            field="secondary_markers",
        )


__all__ = ["validate_settings", "Entrypoint"]
