from __future__ import annotations

import os
import threading
import time
from typing import Any, Dict, Generator, Optional

from flask import Flask, Response, jsonify, request, send_file

from app.iptrace import config
from app.iptrace.config import load_settings
from app.iptrace.export_excel import export_latest_run_to_excel, latest_run_json_path
from app.iptrace.healthcheck import run_health_checks
from app.iptrace.logging_utils import _trace_event
from app.iptrace.run import run_lookup
from app.iptrace.utils import ensure_dirs, get_current_log_path, load_json_file, log_line

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-change-me")

# Initialise storage paths on import so WSGI entrypoints find them ready.
ensure_dirs()

_RUN_LOCK = threading.Lock()


def _tail_log_generator() -> Generator[str, None, None]:
    """Yield Server-Sent Event messages for appended log lines."""

    ensure_dirs()
    current_path = get_current_log_path()
    current_path.parent.mkdir(parents=True, exist_ok=True)
    current_path.touch(exist_ok=True)

    handle = current_path.open("r", encoding="utf-8", errors="ignore")
    handle.seek(0, os.SEEK_END)

    try:
        while True:
            latest_path = get_current_log_path()
            if latest_path != current_path:
                handle.close()
                current_path = latest_path
                current_path.parent.mkdir(parents=True, exist_ok=True)
                current_path.touch(exist_ok=True)
                handle = current_path.open("r", encoding="utf-8", errors="ignore")
                handle.seek(0, os.SEEK_END)

            line = handle.readline()
            if line:
                yield f"data: {line.rstrip()}\n\n"
            else:
                time.sleep(1)
                yield ": heartbeat\n\n"
    finally:
        handle.close()


def _parse_limit(raw: Any) -> Optional[int]:
    if raw in (None, ""):
        return None
    try:
        return max(0, int(raw))
    except (TypeError, ValueError):
        return None


@app.get("/api/health")
def api_health() -> Response:
    """Return a JSON health summary for configuration, filesystem, and credentials."""

    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


@app.post("/api/run")
def api_start_run() -> Response:
    """Start a lookup run in a background thread."""

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    limit = _parse_limit(payload.get("limit", request.args.get("limit")))
    dry_run = bool(payload.get("dry_run", request.args.get("dry_run") == "1"))
    settings = load_settings()

    if not _RUN_LOCK.acquire(blocking=False):
        _trace_event("state", phase="api_run", kind="rejected_busy")
        return jsonify({"ok": False, "error": "run already in progress"}), 409

    app.config["LAST_PARAMS"] = {"limit": limit, "dry_run": dry_run}

    def _run() -> None:
        try:
            with app.app_context():
                summary = run_lookup(
                    settings,
                    limit=limit,
                    dry_run=dry_run,
                    trigger="ui",
                    entrypoint="ui",
                )
                app.config["LAST_SUMMARY"] = summary
        except Exception as exc:  # noqa: BLE001
            log_line(f"Run thread failed: {exc}")
        finally:
            _RUN_LOCK.release()

    threading.Thread(target=_run, daemon=True, name="iptrace-run").start()
    return jsonify({"ok": True, "started": True, "limit": limit, "dry_run": dry_run}), 202


@app.get("/api/runs/latest")
def api_runs_latest() -> Response:
    """Return the latest run summary, preferring the run telemetry file."""

    run_path = latest_run_json_path()
    payload = load_json_file(run_path) if run_path else None
    if payload:
        return jsonify(
            {
                "ok": True,
                "running": _RUN_LOCK.locked(),
                "run": {
                    "id": payload.get("run_id"),
                    "trigger": payload.get("trigger"),
                    "started_at": payload.get("started_at"),
                    "ended_at": payload.get("ended_at"),
                    "counts": payload.get("summary", {}),
                    "result": payload.get("result", {}),
                },
            }
        )

    summary = load_json_file(config.SUMMARY_FILE)
    if summary:
        return jsonify({"ok": True, "running": _RUN_LOCK.locked(), "run": {"result": summary}})
    return jsonify({"ok": False, "running": _RUN_LOCK.locked(), "error": "no runs"}), 404


@app.get("/api/export/latest.xlsx")
def api_export_latest_xlsx() -> Response:
    try:
        path = export_latest_run_to_excel()
    except FileNotFoundError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 404
    return send_file(path, as_attachment=True, download_name=os.path.basename(path))


@app.get("/logs/stream")
def logs_stream() -> Response:
    """Stream log updates to the browser using SSE."""

    response = Response(_tail_log_generator(), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    return response


@app.get("/logs/<path:filename>")
def download_log(filename: str) -> Response:
    """Serve a log file from the logs directory."""

    target = (config.LOG_DIR / filename).resolve()
    root = config.LOG_DIR.resolve()
    if not str(target).startswith(str(root)):
        return Response("Invalid path", status=400)
    if not target.exists() or not target.is_file():
        return Response("File not found", status=404)
    return send_file(target, as_attachment=True, download_name=target.name)


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8080)
