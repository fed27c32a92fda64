"""Run driver for the IP geolocation job sheet.

Workflow:

- Load settings from ``IPTRACE_*`` environment variables and validate them.
- Authorise against Google and read the reference table and the job rows.
- Find the resume point; stop early when every row already has a result.
- Launch one Chromium session and hand the rows to the processing engine.
- Tear the session down exactly once, whatever happens, and persist the run
  summary and telemetry.

Exit codes: 0 normal completion, 1 fatal abort, 2 startup failure,
130 operator interrupt.
"""

from __future__ import annotations

import argparse
import dataclasses
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from dotenv import load_dotenv
from google.auth.exceptions import GoogleAuthError

from . import config
from .artifacts import ArtifactCapture
from .auth import CredentialsError, build_stores
from .config import Settings, load_settings
from .config_validation import Entrypoint, validate_settings
from .drive_client import BlobStore
from .engine import RowProcessingEngine
from .jurisdiction import JurisdictionRecord, load_records
from .logging_utils import _trace_event
from .rows import JobRow, find_resume_index, parse_job_rows
from .session import BackgroundThreadFailure, BrowserSession, shutdown_on_signals
from .sheets_client import TabularStore, sheet_range
from .steps import FatalSessionError
from .telemetry import RunTelemetry
from .utils import ensure_dirs, log_line, save_json_file, setup_run_logger

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_STARTUP = 2
EXIT_INTERRUPTED = 130

SessionFactory = Callable[[Settings], BrowserSession]


class StartupError(RuntimeError):
    pass


def _short_error_message(exc: BaseException, max_length: int = 200) -> str:
    message = str(exc) or exc.__class__.__name__
    if len(message) > max_length:
        return message[: max_length - 3] + "..."
    return message


def load_reference_records(store: TabularStore, settings: Settings) -> Tuple[JurisdictionRecord, ...]:
    range_spec = sheet_range(settings.reference_sheet, settings.reference_range)
    try:
        values = store.read_range(settings.spreadsheet_id, range_spec)
    except Exception as exc:  # noqa: BLE001
        raise StartupError(f"Unable to read reference table {range_spec}: {exc}") from exc
    records = load_records(
        values,
        station_col=settings.reference_station_col,
        jurisdiction_col=settings.reference_jurisdiction_col,
        admin_unit_col=settings.reference_admin_unit_col,
    )
    log_line(f"[RUN] Loaded {len(records)} reference records from {range_spec}")
    return records


def load_job_rows(store: TabularStore, settings: Settings) -> List[JobRow]:
    range_spec = sheet_range(settings.job_sheet, settings.job_range)
    try:
        values = store.read_range(settings.spreadsheet_id, range_spec)
    except Exception as exc:  # noqa: BLE001
        raise StartupError(f"Unable to read job rows {range_spec}: {exc}") from exc
    rows = parse_job_rows(values, settings.columns, first_row_number=settings.first_data_row)
    log_line(f"[RUN] Loaded {len(rows)} job rows from {range_spec}")
    return rows


def _finish(
    summary: Dict[str, Any],
    telemetry: RunTelemetry,
    *,
    status: str,
    exit_code: int,
    started: float,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    summary["status"] = status
    summary["exit_code"] = exit_code
    summary["duration_seconds"] = round(time.time() - started, 2)
    if error:
        summary["error"] = error

    _trace_event(
        "error" if exit_code else "state",
        phase="run_finished",
        run_id=telemetry.run_id,
        status=status,
        exit_code=exit_code,
        processed=summary.get("processed"),
        written=summary.get("written"),
        errors=summary.get("errors"),
    )
    try:
        summary["telemetry_file"] = str(telemetry.finalize({"result": dict(summary)}))
    except Exception as exc:  # noqa: BLE001
        log_line(f"[RUN][WARN] Unable to write run telemetry: {exc}")
    try:
        save_json_file(config.SUMMARY_FILE, summary)
    except Exception as exc:  # noqa: BLE001
        log_line(f"[RUN][WARN] Unable to write summary: {exc}")
    log_line(f"[RUN] Finished with status={status} exit_code={exit_code}")
    return summary


def run_lookup(
    settings: Optional[Settings] = None,
    *,
    stores: Optional[Tuple[TabularStore, BlobStore]] = None,
    session_factory: Optional[SessionFactory] = None,
    limit: Optional[int] = None,
    dry_run: bool = False,
    trigger: str = "cli",
    entrypoint: Entrypoint = "cli",
) -> Dict[str, Any]:
    """Process the job sheet once and return the run summary.

    The summary always carries ``status`` and ``exit_code``; callers map the
    latter to the process exit status.
    """

    ensure_dirs()
    log_path = setup_run_logger()
    started = time.time()
    settings = settings or load_settings()
    telemetry = RunTelemetry(trigger=trigger)
    summary: Dict[str, Any] = {
        "run_id": telemetry.run_id,
        "trigger": trigger,
        "log_file": str(log_path),
        "dry_run": dry_run,
        "limit": limit,
    }
    _trace_event(
        "state",
        phase="run_started",
        run_id=telemetry.run_id,
        trigger=trigger,
        dry_run=dry_run,
        secondary=settings.secondary_enabled,
        resume_marker=settings.resume_marker,
    )

    try:
        validate_settings(settings, entrypoint)
        store, blob_store = stores if stores is not None else build_stores(settings)
        records = load_reference_records(store, settings)
        rows = load_job_rows(store, settings)
    except (ValueError, CredentialsError, GoogleAuthError, StartupError) as exc:
        log_line(f"[RUN][ERROR] Startup failed: {exc}")
        return _finish(
            summary,
            telemetry,
            status="startup_failed",
            exit_code=EXIT_STARTUP,
            started=started,
            error=_short_error_message(exc),
        )

    summary["rows"] = len(rows)
    summary["reference_records"] = len(records)
    if find_resume_index(rows, settings.resume_marker) is None:
        log_line(f"[RUN] Every row already has a {settings.resume_marker} value; nothing to do.")
        summary["processed"] = 0
        return _finish(summary, telemetry, status="nothing_to_do", exit_code=EXIT_OK, started=started)

    capture: Optional[ArtifactCapture] = None
    if settings.screenshot_folder_id and not dry_run:
        capture = ArtifactCapture(blob_store, settings.screenshot_folder_id, settings.staging_dir)

    factory = session_factory or BrowserSession.launch
    try:
        session = factory(settings)
    except Exception as exc:  # noqa: BLE001
        log_line(f"[RUN][ERROR] Unable to launch browser: {exc}")
        return _finish(
            summary,
            telemetry,
            status="failed",
            exit_code=EXIT_FATAL,
            started=started,
            error=_short_error_message(exc),
        )

    engine = RowProcessingEngine(
        settings,
        store,
        records,
        session=session,
        capture=capture,
        telemetry=telemetry,
        dry_run=dry_run,
    )
    status, exit_code, error = "completed", EXIT_OK, None
    try:
        with session, shutdown_on_signals(session):
            engine.process(rows, limit=limit)
    except FatalSessionError as exc:
        status, exit_code, error = "aborted", EXIT_FATAL, _short_error_message(exc)
        log_line(f"[RUN][ERROR] Run aborted after fatal browser error: {exc}")
    except BackgroundThreadFailure as exc:
        status, exit_code, error = "aborted", EXIT_FATAL, _short_error_message(exc)
        log_line(f"[RUN][ERROR] Run aborted after background thread failure: {exc}")
    except KeyboardInterrupt:
        status, exit_code = "interrupted", EXIT_INTERRUPTED
        log_line("[RUN] Interrupted by operator.")

    summary.update(engine.summary)
    if status == "aborted":
        summary["aborted"] = True
    summary["session_shutdowns"] = session.shutdown_calls
    return _finish(
        summary, telemetry, status=status, exit_code=exit_code, started=started, error=error
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Look up IP locations for the job sheet")
    parser.add_argument("--limit", type=int, default=None, help="Process at most N eligible rows")
    parser.add_argument("--headful", action="store_true", help="Show the browser window")
    parser.add_argument(
        "--no-secondary",
        action="store_true",
        help="Skip the whois pre-check even when IPTRACE_SECONDARY_ENABLED is set",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Resolve and log results without writing rows or uploading screenshots",
    )
    return parser


def _cli_entrypoint(argv: Optional[Sequence[str]] = None) -> int:  # pragma: no cover
    load_dotenv()
    args = _build_parser().parse_args(argv)

    settings = load_settings()
    overrides: Dict[str, Any] = {}
    if args.headful:
        overrides["headless"] = False
    if args.no_secondary:
        overrides["secondary_enabled"] = False
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    result = run_lookup(settings, limit=args.limit, dry_run=args.dry_run, trigger="cli")
    return int(result["exit_code"])


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(_cli_entrypoint())

__all__ = ["run_lookup", "load_reference_records", "load_job_rows", "_cli_entrypoint"]
