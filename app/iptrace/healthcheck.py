from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from . import config
from .config import Settings, load_settings
from .config_validation import validate_settings
from .logging_utils import _trace_event
from .utils import disk_has_room, ensure_dirs, log_line


@dataclass
class HealthResult:
    ok: bool
    checks: dict[str, dict[str, Any]]


def run_health_checks(entrypoint: str = "cli", settings: Optional[Settings] = None) -> HealthResult:
    settings = settings or load_settings()
    checks: dict[str, dict[str, Any]] = {}

    try:
        validate_settings(settings, entrypoint or "cli")
        checks["config"] = {"ok": True}
    except ValueError as exc:
        checks["config"] = {"ok": False, "error": str(exc)}

    ensure_dirs()
    fs_ok = disk_has_room(config.MIN_FREE_MB, config.DATA_DIR)
    checks["filesystem"] = {
        "ok": fs_ok,
        "data_dir": str(config.DATA_DIR),
        "min_free_mb": config.MIN_FREE_MB,
    }

    if settings.service_account_file is not None:
        checks["credentials"] = {
            "ok": settings.service_account_file.exists(),
            "service_account_file": str(settings.service_account_file),
        }
    else:
        checks["credentials"] = {
            "ok": settings.credentials_file.exists() or settings.token_file.exists(),
            "credentials_file": str(settings.credentials_file),
            "token_cached": settings.token_file.exists(),
        }

    overall_ok = all(check.get("ok", False) for check in checks.values())

    _trace_event(
        "state" if overall_ok else "error",
        phase="health",
        context="healthcheck",
        ok=overall_ok,
        checks=checks,
    )

    return HealthResult(ok=overall_ok, checks=checks)


if __name__ == "__main__":  # pragma: no cover
    result = run_health_checks(entrypoint="cli")
    for name, info in result.checks.items():
        status = "OK" if info.get("ok") else "FAIL"
        log_line(f"[HEALTH] {name}: {status} {info}")
    raise SystemExit(0 if result.ok else 1)
