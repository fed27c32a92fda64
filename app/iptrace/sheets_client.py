"""Tabular store adapter for Google Sheets.

Only two calls are needed by the runner: a bulk read of a range and a
single-range write in RAW input mode (no formula evaluation or coercion).
"""
from __future__ import annotations

from typing import Any, Dict, List, Protocol, Sequence

import gspread

from .logging_utils import _trace_event
from .utils import log_line, quote_sheet_name


class TabularStore(Protocol):
    def read_range(self, spreadsheet_id: str, range_spec: str) -> List[List[str]]:
        ...

    def write_range(
        self, spreadsheet_id: str, range_spec: str, rows: Sequence[Sequence[str]]
    ) -> None:
        ...


def sheet_range(sheet: str, cells: str) -> str:
    """Qualify an A1 range such as ``A2:J`` with a worksheet title."""

    return f"{quote_sheet_name(sheet)}!{cells}"


class GoogleSheetsStore:
    """:class:`TabularStore` backed by a gspread client."""

    def __init__(self, client: gspread.Client) -> None:
        self._client = client
        self._spreadsheets: Dict[str, gspread.Spreadsheet] = {}

    def _spreadsheet(self, spreadsheet_id: str) -> gspread.Spreadsheet:
        spreadsheet = self._spreadsheets.get(spreadsheet_id)
        if spreadsheet is None:
            spreadsheet = self._client.open_by_key(spreadsheet_id)
            self._spreadsheets[spreadsheet_id] = spreadsheet
        return spreadsheet

    def read_range(self, spreadsheet_id: str, range_spec: str) -> List[List[str]]:
        payload: Dict[str, Any] = self._spreadsheet(spreadsheet_id).values_get(range_spec)
        values = payload.get("values") or []
        _trace_event("sheets", phase="read", range=range_spec, rows=len(values))
        return [[str(cell) for cell in row] for row in values]

    def write_range(
        self, spreadsheet_id: str, range_spec: str, rows: Sequence[Sequence[str]]
    ) -> None:
        self._spreadsheet(spreadsheet_id).values_update(
            range_spec,
            params={"valueInputOption": "RAW"},
            body={"values": [list(row) for row in rows]},
        )
        log_line(f"[SHEETS] Updated {range_spec}")


__all__ = ["TabularStore", "GoogleSheetsStore", "sheet_range"]
