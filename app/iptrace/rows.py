from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import RESUME_MARKERS, JobColumns
from .utils import column_letter, quote_sheet_name


@dataclass(frozen=True)
class JobRow:
    """One row of the job sheet.

    ``index`` is the 0-based position within the read range and
    ``row_number`` the 1-based sheet row it was read from. ``cells`` keeps the
    raw values padded to the job width so untouched columns can be written
    back verbatim.
    """

    index: int
    row_number: int
    ip_address: str
    title: str
    company: str
    assigned_jurisdiction: str
    capture_timestamp: str
    final_jurisdiction: str
    complaint_link: str
    evidence_id: str
    location_text: str
    error_message: str
    cells: tuple[str, ...]

    def marker_value(self, marker: str) -> str:
        if marker == "jurisdiction":
            return self.assigned_jurisdiction
        if marker == "location":
            return self.location_text
        raise ValueError(f"Unknown resume marker {marker!r}; expected one of {RESUME_MARKERS}")


def _cell(values: Sequence[object], index: int) -> str:
    if index < len(values) and values[index] is not None:
        return str(values[index])
    return ""


def parse_job_rows(
    values: Sequence[Sequence[object]], columns: JobColumns, *, first_row_number: int
) -> List[JobRow]:
    """Convert raw range values into :class:`JobRow` objects."""

    width = columns.width
    rows: List[JobRow] = []
    for index, raw in enumerate(values):
        cells = tuple(_cell(raw, i) for i in range(max(width, len(raw))))
        rows.append(
            JobRow(
                index=index,
                row_number=first_row_number + index,
                ip_address=cells[columns.ip_address].strip(),
                title=cells[columns.title],
                company=cells[columns.company],
                assigned_jurisdiction=cells[columns.jurisdiction],
                capture_timestamp=cells[columns.capture_timestamp],
                final_jurisdiction=cells[columns.final_jurisdiction],
                complaint_link=cells[columns.complaint_link],
                evidence_id=cells[columns.evidence_id],
                location_text=cells[columns.location],
                error_message=cells[columns.error],
                cells=cells,
            )
        )
    return rows


def is_row_processed(row: JobRow, marker: str) -> bool:
    """Return ``True`` when the marker column already holds a value."""

    return bool(row.marker_value(marker).strip())


def is_row_eligible(row: JobRow, marker: str) -> bool:
    """A row is processed only when it has an IP and an empty marker column."""

    return bool(row.ip_address) and not is_row_processed(row, marker)


def find_resume_index(rows: Sequence[JobRow], marker: str) -> Optional[int]:
    """Return the index of the first row whose marker column is empty."""

    for row in rows:
        if not is_row_processed(row, marker):
            return row.index
    return None


def build_result_values(
    row: JobRow,
    columns: JobColumns,
    *,
    jurisdiction: str,
    location_text: str,
    evidence_id: str,
) -> List[str]:
    """Return the full A..last cells for a successful write-back.

    Input and passthrough columns keep their current values; the error column
    is cleared.
    """

    values = list(row.cells[: columns.width])
    values[columns.jurisdiction] = jurisdiction
    values[columns.location] = location_text
    values[columns.evidence_id] = evidence_id
    values[columns.error] = ""
    return values


def row_range(sheet: str, row_number: int, first_col: int, last_col: int) -> str:
    """Return a sheet-qualified single-row A1 range."""

    start = f"{column_letter(first_col)}{row_number}"
    end = f"{column_letter(last_col)}{row_number}"
    if start == end:
        return f"{quote_sheet_name(sheet)}!{start}"
    return f"{quote_sheet_name(sheet)}!{start}:{end}"


def format_error_message(exc: BaseException) -> str:
    message = str(exc) or type(exc).__name__
    return f"ERROR: {message}"


__all__ = [
    "JobRow",
    "parse_job_rows",
    "is_row_processed",
    "is_row_eligible",
    "find_resume_index",
    "build_result_values",
    "row_range",
    "format_error_message",
]
