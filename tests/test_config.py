from __future__ import annotations

from pathlib import Path

import pytest

from app.iptrace.config import DEFAULT_MOBILE_MARKERS, SENTINEL, Settings, load_settings


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("IPTRACE_SPREADSHEET_ID", "IPTRACE_SECONDARY_ENABLED", "IPTRACE_RESUME_MARKER", "IPTRACE_MOBILE_MARKERS"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.spreadsheet_id == ""
    assert settings.secondary_enabled is False
    assert settings.resume_marker == "location"
    assert settings.sentinel == SENTINEL
    assert settings.mobile_markers == DEFAULT_MOBILE_MARKERS
    assert settings.first_data_row == 2


def test_load_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IPTRACE_SPREADSHEET_ID", " abc123 ")
    monkeypatch.setenv("IPTRACE_SECONDARY_ENABLED", "yes")
    monkeypatch.setenv("IPTRACE_RESUME_MARKER", "Jurisdiction")
    monkeypatch.setenv("IPTRACE_MOBILE_MARKERS", "LTE | 5G |")
    monkeypatch.setenv("IPTRACE_NAV_TIMEOUT_MS", "not-a-number")
    monkeypatch.setenv("IPTRACE_UPLOAD_RETRIES", "0")
    monkeypatch.setenv("IPTRACE_PRIMARY_URL", "https://lookup.example.test/")
    monkeypatch.setenv("IPTRACE_SERVICE_ACCOUNT_FILE", "sa.json")

    settings = load_settings()

    assert settings.spreadsheet_id == "abc123"
    assert settings.secondary_enabled is True
    assert settings.resume_marker == "jurisdiction"
    assert settings.mobile_markers == ("LTE", "5G")
    assert settings.timeouts.navigation_ms == 60_000
    assert settings.upload_retries == 1
    assert settings.primary.url == "https://lookup.example.test/"
    assert settings.primary.input_selector == "#txtAddr"
    assert settings.service_account_file == Path("sa.json")


def test_first_data_row_follows_range() -> None:
    assert Settings(spreadsheet_id="x", screenshot_folder_id="", job_range="A5:J").first_data_row == 5
    assert Settings(spreadsheet_id="x", screenshot_folder_id="", job_range="A:J").first_data_row == 1
