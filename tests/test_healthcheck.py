from __future__ import annotations

from pathlib import Path

import pytest

from app.iptrace import healthcheck
from tests.fakes import configure_temp_paths, make_settings


def test_run_health_checks_happy_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    configure_temp_paths(tmp_path, monkeypatch)

    result = healthcheck.run_health_checks(entrypoint="ui", settings=make_settings(tmp_path))

    assert result.ok is True
    assert result.checks["config"]["ok"] is True
    assert result.checks["filesystem"]["ok"] is True
    assert result.checks["credentials"]["ok"] is True


def test_run_health_checks_handles_invalid_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    configure_temp_paths(tmp_path, monkeypatch)

    result = healthcheck.run_health_checks(
        entrypoint="cli",
        settings=make_settings(tmp_path, spreadsheet_id="", service_account_file=tmp_path / "missing.json"),
    )

    assert result.ok is False
    assert result.checks["config"]["ok"] is False
    assert result.checks["credentials"]["ok"] is False
