"""Per-row processing: resume point, lookups, jurisdiction, write-back.

Each run scans the job rows once. Everything before the first row with an
empty marker column is skipped without inspection; from there on every row is
checked on its own, since rows can be filled out of order by earlier runs.

A row ends in exactly one of three ways:

- written: jurisdiction, location and evidence columns are set and the error
  column is cleared in one range write;
- error: only the error cell is written and the run moves on;
- aborted: the error cell is written, then :class:`FatalSessionError`
  propagates so the driver can tear the browser session down.
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from .artifacts import ArtifactCapture
from .config import Settings
from .jurisdiction import JurisdictionRecord, resolve
from .logging_utils import _trace_event
from .outcome import (
    Failed,
    Located,
    Mobile,
    Overseas,
    Outcome,
    ProcedureResult,
    classify_location_text,
    is_status_text,
    outcome_label,
)
from .procedures import primary_lookup, secondary_lookup
from .rows import (
    JobRow,
    build_result_values,
    find_resume_index,
    format_error_message,
    is_row_eligible,
    row_range,
)
from .sheets_client import TabularStore
from .steps import FatalSessionError, is_fatal_session_error
from .telemetry import RunTelemetry
from .utils import log_line

Procedure = Callable[..., ProcedureResult]


@dataclass(frozen=True)
class RowResult:
    row_number: int
    ip_address: str
    status: str
    outcome: str = ""
    jurisdiction: str = ""
    location_text: str = ""
    evidence_id: str = ""
    error: str = ""


@dataclass(frozen=True)
class _Resolution:
    outcome: str
    jurisdiction: str
    location_text: str
    evidence_id: str


class RowProcessingEngine:
    def __init__(
        self,
        settings: Settings,
        store: TabularStore,
        records: Sequence[JurisdictionRecord],
        *,
        session: Any,
        capture: Optional[ArtifactCapture] = None,
        telemetry: Optional[RunTelemetry] = None,
        dry_run: bool = False,
        primary: Procedure = primary_lookup,
        secondary: Procedure = secondary_lookup,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.store = store
        self.records = tuple(records)
        self.session = session
        self.capture = capture
        self.telemetry = telemetry or RunTelemetry()
        self.dry_run = dry_run
        self._primary = primary
        self._secondary = secondary
        self._sleep = sleep
        self.results: List[RowResult] = []
        self.summary: Dict[str, Any] = {}

    # -- run loop ---------------------------------------------------------

    def process(self, rows: Sequence[JobRow], *, limit: Optional[int] = None) -> Dict[str, Any]:
        marker = self.settings.resume_marker
        summary: Dict[str, Any] = {
            "rows": len(rows),
            "resume_index": None,
            "processed": 0,
            "written": 0,
            "errors": 0,
            "skipped": 0,
            "status_rows": 0,
            "unmatched": 0,
            "aborted": False,
        }
        self.summary = summary

        resume_index = find_resume_index(rows, marker)
        if resume_index is None:
            log_line(f"[ENGINE] No row has an empty {marker} column; nothing to do.")
            return summary

        summary["resume_index"] = resume_index
        log_line(
            f"[ENGINE] Resuming at sheet row {rows[resume_index].row_number} "
            f"(index {resume_index}, marker={marker})."
        )

        for row in rows[resume_index:]:
            if limit is not None and summary["processed"] >= limit:
                log_line(f"[ENGINE] Row limit {limit} reached; stopping.")
                break

            if not is_row_eligible(row, marker):
                reason = "no_ip" if not row.ip_address else "already_processed"
                log_line(f"[ENGINE] Row {row.row_number}: skipped ({reason}).")
                summary["skipped"] += 1
                self.telemetry.add("skipped", reason, {"row": row.row_number, "ip": row.ip_address})
                continue

            summary["processed"] += 1
            try:
                result = self.process_row(row)
            except FatalSessionError:
                summary["errors"] += 1
                summary["aborted"] = True
                raise

            if result.status == "written":
                summary["written"] += 1
                if result.outcome in {"overseas", "mobile", "status"}:
                    summary["status_rows"] += 1
                elif not result.jurisdiction:
                    summary["unmatched"] += 1
            else:
                summary["errors"] += 1

        return summary

    # -- per row ----------------------------------------------------------

    def process_row(self, row: JobRow) -> RowResult:
        log_line(f"--- Row {row.row_number}: processing {row.ip_address} ---")
        try:
            resolution = self._evaluate(row)
            self._write_result(row, resolution)
        except Exception as exc:  # noqa: BLE001
            return self._handle_failure(row, exc)

        result = RowResult(
            row_number=row.row_number,
            ip_address=row.ip_address,
            status="written",
            outcome=resolution.outcome,
            jurisdiction=resolution.jurisdiction,
            location_text=resolution.location_text,
            evidence_id=resolution.evidence_id,
        )
        self._record(result, reason=resolution.outcome)
        return result

    def _evaluate(self, row: JobRow) -> _Resolution:
        settings = self.settings

        if settings.secondary_enabled:
            with self.session.page("secondary") as page:
                checked = self._secondary(page, row.ip_address, settings, self.capture)
            outcome = checked.outcome
            if isinstance(outcome, (Overseas, Mobile)):
                return self._status_resolution(row, outcome, checked.artifact_id)
            if isinstance(outcome, Failed):
                raise outcome.error
            if isinstance(outcome, Located):
                log_line(f"[ENGINE] Row {row.row_number}: secondary check passed ({outcome.location_text!r}).")
            else:
                raise TypeError(f"Unhandled outcome {outcome!r}")

        with self.session.page("primary") as page:
            looked_up = self._primary(page, row.ip_address, settings, self.capture)
        outcome = looked_up.outcome
        if isinstance(outcome, Failed):
            raise outcome.error
        if isinstance(outcome, (Overseas, Mobile)):
            return self._status_resolution(row, outcome, looked_up.artifact_id)
        if not isinstance(outcome, Located):
            raise TypeError(f"Unhandled outcome {outcome!r}")

        location = classify_location_text(
            outcome.location_text, settings.not_found_markers, settings.sentinel
        )
        if is_status_text(location, settings.sentinel):
            return self._status_resolution(row, outcome, looked_up.artifact_id)

        station = resolve(location, self.records)
        if station:
            log_line(f"[ENGINE] Row {row.row_number}: matched station {station}.")
        else:
            log_line(f"[ENGINE] Row {row.row_number}: no station covers {location!r}; leaving it empty.")
        return _Resolution(
            outcome="located",
            jurisdiction=station or "",
            location_text=outcome.location_text,
            evidence_id=looked_up.artifact_id or "",
        )

    def _status_resolution(
        self, row: JobRow, outcome: Outcome, artifact_id: Optional[str]
    ) -> _Resolution:
        label = "status" if isinstance(outcome, Located) else outcome_label(outcome)
        sentinel = self.settings.sentinel
        log_line(f"[ENGINE] Row {row.row_number}: {label} result; writing {sentinel!r}.")
        delay_ms = self.settings.delays.after_status_row_ms
        if delay_ms > 0:
            self._sleep(delay_ms / 1000)
        return _Resolution(
            outcome=label,
            jurisdiction=sentinel,
            location_text=sentinel,
            evidence_id=artifact_id or "",
        )

    # -- write-back -------------------------------------------------------

    def _write_result(self, row: JobRow, resolution: _Resolution) -> None:
        columns = self.settings.columns
        values = build_result_values(
            row,
            columns,
            jurisdiction=resolution.jurisdiction,
            location_text=resolution.location_text,
            evidence_id=resolution.evidence_id,
        )
        target = row_range(self.settings.job_sheet, row.row_number, 0, columns.width - 1)
        if self.dry_run:
            log_line(f"[ENGINE][DRY-RUN] Would write {target}: {values}")
            return
        self.store.write_range(self.settings.spreadsheet_id, target, [values])

    def _handle_failure(self, row: JobRow, exc: Exception) -> RowResult:
        message = format_error_message(exc)
        fatal = is_fatal_session_error(exc, self.settings.fatal_signatures)
        log_line(f"[ENGINE][ERROR] Row {row.row_number} ({row.ip_address}): {exc}")
        _trace_event(
            "error",
            phase="row",
            row=row.row_number,
            ip=row.ip_address,
            error_code=getattr(exc, "error_code", None),
            fatal=fatal,
            error=str(exc),
        )

        target = row_range(
            self.settings.job_sheet, row.row_number, self.settings.columns.error, self.settings.columns.error
        )
        if self.dry_run:
            log_line(f"[ENGINE][DRY-RUN] Would write {target}: {message!r}")
        else:
            try:
                self.store.write_range(self.settings.spreadsheet_id, target, [[message]])
            except Exception as write_exc:  # noqa: BLE001
                log_line(f"[ENGINE][ERROR] Unable to record error for row {row.row_number}: {write_exc}")

        result = RowResult(
            row_number=row.row_number,
            ip_address=row.ip_address,
            status="aborted" if fatal else "error",
            error=message,
        )
        self._record(result, reason=getattr(exc, "error_code", None) or type(exc).__name__)

        if fatal:
            log_line("[ENGINE] Fatal browser session error; aborting remaining rows.")
            if isinstance(exc, FatalSessionError):
                raise exc
            raise FatalSessionError(str(exc)) from exc
        return result

    def _record(self, result: RowResult, *, reason: str) -> None:
        self.results.append(result)
        meta = asdict(result)
        status = meta.pop("status")
        meta["row"] = meta.pop("row_number")
        meta["ip"] = meta.pop("ip_address")
        self.telemetry.add(status, reason, meta)


__all__ = ["RowProcessingEngine", "RowResult"]
