"""Run telemetry and analytics helpers."""

from __future__ import annotations

import json
import os
import time
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S")


class RunTelemetry:
    """Collect per-row telemetry for analytics and export."""

    def __init__(self, trigger: str = "cli") -> None:
        self.run_id = f"{_ts()}_{uuid.uuid4().hex[:8]}"
        self.trigger = trigger
        self.started_at = time.time()
        self.entries: List[Dict[str, Any]] = []
        self.summary: Dict[str, Any] = defaultdict(int)

    def add(self, status: str, reason: str, meta: Dict[str, Any]) -> None:
        self.entries.append(
            {
                "status": status,
                "reason": reason,
                **meta,
            }
        )
        self.summary[f"count_{status}"] += 1

    def finalize(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        payload = {
            "run_id": self.run_id,
            "trigger": self.trigger,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "summary": dict(self.summary),
            "entries": self.entries,
            **(extra or {}),
        }
        runs_dir = Path(config.RUNS_DIR)
        runs_dir.mkdir(parents=True, exist_ok=True)
        path = runs_dir / f"run_{self.run_id}.json"
        with path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2, default=str)
        return path


def prune_old_exports(max_exports: Optional[int] = None) -> None:
    keep = max_exports if max_exports is not None else int(os.environ.get("EXPORTS_KEEP_MAX", "5"))
    exports_dir = Path(config.EXPORTS_DIR)
    if not exports_dir.is_dir():
        return
    files = sorted(p for p in exports_dir.iterdir() if p.suffix == ".xlsx")
    while len(files) > keep:
        old = files.pop(0)
        try:
            old.unlink()
        except OSError:
            continue


__all__ = [
    "RunTelemetry",
    "prune_old_exports",
]
