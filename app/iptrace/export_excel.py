"""Excel export helpers for run telemetry."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import pandas as pd

from . import config
from .telemetry import prune_old_exports

STATUS_SHEETS = (
    ("written", "Written"),
    ("error", "Errors"),
    ("aborted", "Aborted"),
    ("skipped", "Skipped"),
)


def latest_run_json_path() -> Optional[Path]:
    """Return the most recent run telemetry JSON path, if any.

    Run files are named ``run_<YYYYmmdd_HHMMSS>_<hex>.json`` so the last
    entry in sorted order is the newest run.
    """

    runs_dir = Path(config.RUNS_DIR)
    if not runs_dir.is_dir():
        return None
    runs = sorted(path for path in runs_dir.iterdir() if path.suffix == ".json")
    return runs[-1] if runs else None


def _safe_pivot(frame: pd.DataFrame, by: list[str]) -> pd.DataFrame:
    if frame.empty or not set(by).issubset(frame.columns):
        return pd.DataFrame()
    return frame.groupby(by).size().reset_index(name="count").sort_values("count", ascending=False)


def export_latest_run_to_excel(dest_path: Optional[str] = None) -> str:
    """Create an Excel workbook from the most recent telemetry payload."""

    run_path = latest_run_json_path()
    if not run_path:
        raise FileNotFoundError("No run telemetry available to export")

    with run_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)

    df = pd.DataFrame(payload.get("entries", []))
    if df.empty:
        df = pd.DataFrame([{"status": "", "info": "No entries in latest run"}])

    summary_status = _safe_pivot(df, ["status"])
    summary_outcome = _safe_pivot(df[df["status"] == "written"], ["outcome"]) if "outcome" in df else pd.DataFrame()
    summary_jurisdiction = (
        _safe_pivot(df[df["status"] == "written"], ["jurisdiction"]) if "jurisdiction" in df else pd.DataFrame()
    )

    exports_dir = Path(config.EXPORTS_DIR)
    exports_dir.mkdir(parents=True, exist_ok=True)
    if not dest_path:
        dest_path = str(exports_dir / f"iptrace_{payload['run_id']}.xlsx")

    with pd.ExcelWriter(dest_path, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="All")
        for status, sheet_name in STATUS_SHEETS:
            df[df["status"] == status].to_excel(writer, index=False, sheet_name=sheet_name)
        summary_status.to_excel(writer, index=False, sheet_name="Summary_Status")
        if not summary_outcome.empty:
            summary_outcome.to_excel(writer, index=False, sheet_name="Summary_Outcome")
        if not summary_jurisdiction.empty:
            summary_jurisdiction.to_excel(writer, index=False, sheet_name="Summary_Jurisdiction")

    prune_old_exports()
    return dest_path


__all__ = ["export_latest_run_to_excel", "latest_run_json_path"]
