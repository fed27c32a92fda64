"""Configuration for the IP geolocation job runner."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("IPTRACE_DATA_DIR", "data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
STAGING_DIR: Path = DATA_DIR / "screenshots"
SUMMARY_FILE: Path = DATA_DIR / "last_summary.json"
RUNS_DIR: Path = DATA_DIR / "runs"
EXPORTS_DIR: Path = DATA_DIR / "exports"
MIN_FREE_MB: int = int(os.getenv("IPTRACE_MIN_FREE_MB", "100"))

SENTINEL: str = "해외IP."

DEFAULT_SCOPES: tuple[str, ...] = (
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
)

DEFAULT_OVERSEAS_MARKERS: tuple[str, ...] = (
    "국내에서 관리되는 IP가 아닙니다.",
    "해외 IP",
)
DEFAULT_MOBILE_MARKERS: tuple[str, ...] = (
    "이동통신망",
    "모바일 IP",
)
DEFAULT_NOT_FOUND_MARKERS: tuple[str, ...] = (
    "검색 결과가 없습니다",
    "조회된 정보가 없습니다",
)

# Substrings of Playwright/CDP error messages after which the page or browser
# can no longer be driven.
DEFAULT_FATAL_SIGNATURES: tuple[str, ...] = (
    "Protocol error",
    "No target with given id found",
    "Attempted to use detached Frame",
    "Target closed",
    "Target crashed",
    "Target page, context or browser has been closed",
    "Browser has been closed",
    "Browser closed",
    "Connection closed",
)

RESUME_MARKERS: tuple[str, ...] = ("location", "jurisdiction")


@dataclass(frozen=True)
class SiteTarget:
    """URL and selectors for one lookup site."""

    url: str
    input_selector: str
    submit_selector: str
    result_selector: str
    popup_close_selector: str = ""


@dataclass(frozen=True)
class JobColumns:
    """0-based column indices of the job sheet."""

    ip_address: int = 0
    title: int = 1
    company: int = 2
    jurisdiction: int = 3
    capture_timestamp: int = 4
    final_jurisdiction: int = 5
    complaint_link: int = 6
    evidence_id: int = 7
    location: int = 8
    error: int = 9

    @property
    def width(self) -> int:
        return max(
            self.ip_address,
            self.title,
            self.company,
            self.jurisdiction,
            self.capture_timestamp,
            self.final_jurisdiction,
            self.complaint_link,
            self.evidence_id,
            self.location,
            self.error,
        ) + 1


@dataclass(frozen=True)
class Timeouts:
    """Per-step timeouts in milliseconds."""

    navigation_ms: int = 60_000
    element_ms: int = 10_000
    result_ms: int = 60_000
    popup_ms: int = 5_000


@dataclass(frozen=True)
class Delays:
    """Fixed settle delays in milliseconds."""

    initial_settle_ms: int = 5_000
    popup_settle_ms: int = 1_000
    pre_click_ms: int = 1_000
    post_navigation_ms: int = 2_000
    pre_extract_ms: int = 1_000
    after_status_row_ms: int = 5_000


PRIMARY_TARGET = SiteTarget(
    url="https://www.mylocation.co.kr/",
    input_selector="#txtAddr",
    submit_selector="#btnAddr2",
    result_selector="#lbAddr",
    popup_close_selector="button:has-text('닫기')",
)

SECONDARY_TARGET = SiteTarget(
    url="https://whois.kisa.or.kr/kor/main.jsp",
    input_selector="#query",
    submit_selector="#btnSearch",
    result_selector=".result_area",
)


@dataclass(frozen=True)
class Settings:
    """Immutable run configuration, built once at process start."""

    spreadsheet_id: str
    screenshot_folder_id: str
    job_sheet: str = "시트1"
    job_range: str = "A2:J"
    reference_sheet: str = "DB"
    reference_range: str = "B:F"
    reference_station_col: int = 0
    reference_jurisdiction_col: int = 3
    reference_admin_unit_col: int = 4
    columns: JobColumns = field(default_factory=JobColumns)
    credentials_file: Path = Path("credentials.json")
    token_file: Path = Path("token.json")
    service_account_file: Path | None = None
    scopes: tuple[str, ...] = DEFAULT_SCOPES
    primary: SiteTarget = PRIMARY_TARGET
    secondary: SiteTarget = SECONDARY_TARGET
    secondary_enabled: bool = False
    overseas_markers: tuple[str, ...] = DEFAULT_OVERSEAS_MARKERS
    mobile_markers: tuple[str, ...] = DEFAULT_MOBILE_MARKERS
    not_found_markers: tuple[str, ...] = DEFAULT_NOT_FOUND_MARKERS
    fatal_signatures: tuple[str, ...] = DEFAULT_FATAL_SIGNATURES
    sentinel: str = SENTINEL
    resume_marker: str = "location"
    timeouts: Timeouts = field(default_factory=Timeouts)
    delays: Delays = field(default_factory=Delays)
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    upload_retries: int = 3
    staging_dir: Path = STAGING_DIR

    @property
    def first_data_row(self) -> int:
        """Sheet row number of the first row in ``job_range``."""

        start = self.job_range.split(":", 1)[0]
        digits = "".join(ch for ch in start if ch.isdigit())
        return int(digits) if digits else 1


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    """Parse an integer from the environment with a lower bound."""

    try:
        value = int(os.getenv(name, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


def _env_markers(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(part.strip() for part in raw.split("|") if part.strip())


def _env_target(prefix: str, default: SiteTarget) -> SiteTarget:
    return SiteTarget(
        url=os.getenv(f"{prefix}_URL", default.url),
        input_selector=os.getenv(f"{prefix}_INPUT_SELECTOR", default.input_selector),
        submit_selector=os.getenv(f"{prefix}_SUBMIT_SELECTOR", default.submit_selector),
        result_selector=os.getenv(f"{prefix}_RESULT_SELECTOR", default.result_selector),
        popup_close_selector=os.getenv(
            f"{prefix}_POPUP_CLOSE_SELECTOR", default.popup_close_selector
        ),
    )


def load_settings() -> Settings:
    """Build :class:`Settings` from ``IPTRACE_*`` environment variables."""

    service_account = os.getenv("IPTRACE_SERVICE_ACCOUNT_FILE", "").strip()
    timeouts = Timeouts(
        navigation_ms=_env_int("IPTRACE_NAV_TIMEOUT_MS", Timeouts.navigation_ms),
        element_ms=_env_int("IPTRACE_ELEMENT_TIMEOUT_MS", Timeouts.element_ms),
        result_ms=_env_int("IPTRACE_RESULT_TIMEOUT_MS", Timeouts.result_ms),
        popup_ms=_env_int("IPTRACE_POPUP_TIMEOUT_MS", Timeouts.popup_ms),
    )
    delays = Delays(
        initial_settle_ms=_env_int("IPTRACE_INITIAL_SETTLE_MS", Delays.initial_settle_ms),
        popup_settle_ms=_env_int("IPTRACE_POPUP_SETTLE_MS", Delays.popup_settle_ms),
        pre_click_ms=_env_int("IPTRACE_PRE_CLICK_MS", Delays.pre_click_ms),
        post_navigation_ms=_env_int("IPTRACE_POST_NAV_MS", Delays.post_navigation_ms),
        pre_extract_ms=_env_int("IPTRACE_PRE_EXTRACT_MS", Delays.pre_extract_ms),
        after_status_row_ms=_env_int("IPTRACE_AFTER_STATUS_MS", Delays.after_status_row_ms),
    )
    return Settings(
        spreadsheet_id=os.getenv("IPTRACE_SPREADSHEET_ID", "").strip(),
        screenshot_folder_id=os.getenv("IPTRACE_SCREENSHOT_FOLDER_ID", "").strip(),
        job_sheet=os.getenv("IPTRACE_JOB_SHEET", "시트1"),
        job_range=os.getenv("IPTRACE_JOB_RANGE", "A2:J"),
        reference_sheet=os.getenv("IPTRACE_REFERENCE_SHEET", "DB"),
        reference_range=os.getenv("IPTRACE_REFERENCE_RANGE", "B:F"),
        reference_station_col=_env_int("IPTRACE_REFERENCE_STATION_COL", 0),
        reference_jurisdiction_col=_env_int("IPTRACE_REFERENCE_JURISDICTION_COL", 3),
        reference_admin_unit_col=_env_int("IPTRACE_REFERENCE_ADMIN_UNIT_COL", 4),
        credentials_file=Path(os.getenv("IPTRACE_CREDENTIALS_FILE", "credentials.json")),
        token_file=Path(os.getenv("IPTRACE_TOKEN_FILE", "token.json")),
        service_account_file=Path(service_account) if service_account else None,
        primary=_env_target("IPTRACE_PRIMARY", PRIMARY_TARGET),
        secondary=_env_target("IPTRACE_SECONDARY", SECONDARY_TARGET),
        secondary_enabled=_env_bool("IPTRACE_SECONDARY_ENABLED", False),
        overseas_markers=_env_markers("IPTRACE_OVERSEAS_MARKERS", DEFAULT_OVERSEAS_MARKERS),
        mobile_markers=_env_markers("IPTRACE_MOBILE_MARKERS", DEFAULT_MOBILE_MARKERS),
        not_found_markers=_env_markers("IPTRACE_NOT_FOUND_MARKERS", DEFAULT_NOT_FOUND_MARKERS),
        resume_marker=os.getenv("IPTRACE_RESUME_MARKER", "location").strip().lower(),
        timeouts=timeouts,
        delays=delays,
        headless=_env_bool("IPTRACE_HEADLESS", True),
        upload_retries=_env_int("IPTRACE_UPLOAD_RETRIES", 3, minimum=1),
        staging_dir=STAGING_DIR,
    )


__all__ = [
    "Settings",
    "SiteTarget",
    "JobColumns",
    "Timeouts",
    "Delays",
    "load_settings",
    "SENTINEL",
]
