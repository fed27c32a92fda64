"""Lookup procedures for the two geolocation sites.

Primary lookup (address site): open the page, let it settle, close the notice
popup if one appears, submit the IP and read the address label.

Secondary lookup (registry WHOIS): submit the IP and scan the rendered markup
for phrases that mark a non-domestic or mobile-carrier address. The scan is a
case-sensitive substring test on the raw markup, not a structural one.
"""
from __future__ import annotations

from typing import Iterable, Optional

from bs4 import BeautifulSoup
from playwright.sync_api import Page

from .artifacts import ArtifactCapture
from .config import Settings
from .logging_utils import _trace_event
from .outcome import Failed, Located, Mobile, Overseas, ProcedureResult
from .steps import StepExecutor, is_fatal_session_error
from .utils import log_line


def _capture(
    capture: Optional[ArtifactCapture], page: Page, ip_address: str, tag: str
) -> Optional[str]:
    if capture is None:
        return None
    remote_id = capture.capture(page, ip_address, tag)
    if remote_id is None:
        log_line(f"[LOOKUP][WARN] No {tag} screenshot stored for {ip_address}.")
    return remote_id


def _failed(
    exc: Exception,
    *,
    procedure: str,
    page: Page,
    ip_address: str,
    settings: Settings,
    capture: Optional[ArtifactCapture],
) -> ProcedureResult:
    log_line(f"[LOOKUP][ERROR] {procedure} lookup failed for {ip_address}: {exc}")
    _trace_event(
        "error",
        phase="lookup",
        procedure=procedure,
        ip=ip_address,
        error_code=getattr(exc, "error_code", None),
        error=str(exc),
    )
    artifact_id = None
    if not is_fatal_session_error(exc, settings.fatal_signatures):
        artifact_id = _capture(capture, page, ip_address, f"{procedure}_error")
    return ProcedureResult(Failed(exc), artifact_id)


def find_marker(markup: str, markers: Iterable[str]) -> Optional[str]:
    """Return the first marker contained in *markup*, if any."""

    for marker in markers:
        if marker and marker in markup:
            return marker
    return None


def extract_markup_text(markup: str, selector: str) -> str:
    if not selector:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    node = soup.select_one(selector)
    if node is None:
        return ""
    return node.get_text(" ", strip=True)


def primary_lookup(
    page: Page,
    ip_address: str,
    settings: Settings,
    capture: Optional[ArtifactCapture] = None,
) -> ProcedureResult:
    target = settings.primary
    timeouts = settings.timeouts
    delays = settings.delays
    steps = StepExecutor(page, fatal_signatures=settings.fatal_signatures)

    log_line(f"[LOOKUP] primary lookup start: {ip_address}")
    try:
        steps.navigate(target.url, timeouts.navigation_ms)
        steps.pause(delays.initial_settle_ms)
        steps.dismiss_popup_if_present(
            target.popup_close_selector, timeouts.popup_ms, settle_ms=delays.popup_settle_ms
        )
        steps.wait_for_element(target.input_selector, timeout_ms=timeouts.element_ms)
        steps.fill_field(target.input_selector, ip_address, timeout_ms=timeouts.element_ms)
        steps.wait_for_element(target.submit_selector, timeout_ms=timeouts.element_ms)
        steps.pause(delays.pre_click_ms)
        steps.click_and_await_navigation(target.submit_selector, timeouts.navigation_ms)
        steps.pause(delays.post_navigation_ms)
        steps.wait_for_element(
            target.result_selector, visible=False, timeout_ms=timeouts.result_ms
        )
        steps.pause(delays.pre_extract_ms)
        location_text = steps.extract_text(target.result_selector)
    except Exception as exc:  # noqa: BLE001
        return _failed(
            exc,
            procedure="primary",
            page=page,
            ip_address=ip_address,
            settings=settings,
            capture=capture,
        )

    log_line(f"[LOOKUP] primary location for {ip_address}: {location_text}")
    artifact_id = _capture(capture, page, ip_address, "primary")
    return ProcedureResult(Located(location_text), artifact_id)


def secondary_lookup(
    page: Page,
    ip_address: str,
    settings: Settings,
    capture: Optional[ArtifactCapture] = None,
) -> ProcedureResult:
    target = settings.secondary
    timeouts = settings.timeouts
    steps = StepExecutor(page, fatal_signatures=settings.fatal_signatures)

    log_line(f"[LOOKUP] secondary lookup start: {ip_address}")
    try:
        steps.navigate(target.url, timeouts.navigation_ms)
        steps.wait_for_element(target.input_selector, timeout_ms=timeouts.element_ms)
        steps.fill_field(target.input_selector, ip_address, timeout_ms=timeouts.element_ms)
        steps.click_and_await_navigation(target.submit_selector, timeouts.navigation_ms)
        steps.pause(settings.delays.post_navigation_ms)
        markup = steps.page_markup()
    except Exception as exc:  # noqa: BLE001
        return _failed(
            exc,
            procedure="secondary",
            page=page,
            ip_address=ip_address,
            settings=settings,
            capture=capture,
        )

    overseas = find_marker(markup, settings.overseas_markers)
    mobile = None if overseas else find_marker(markup, settings.mobile_markers)
    if overseas:
        outcome = Overseas()
    elif mobile:
        outcome = Mobile()
    else:
        outcome = Located(extract_markup_text(markup, target.result_selector))

    _trace_event(
        "lookup",
        procedure="secondary",
        ip=ip_address,
        outcome=type(outcome).__name__,
        marker=overseas or mobile,
    )
    artifact_id = _capture(capture, page, ip_address, "secondary")
    return ProcedureResult(outcome, artifact_id)


__all__ = [
    "primary_lookup",
    "secondary_lookup",
    "find_marker",
    "extract_markup_text",
]
