from __future__ import annotations

import pytest
from playwright.sync_api import Error as PWError, TimeoutError as PWTimeout

from app.iptrace import steps
from app.iptrace.error_codes import ErrorCode
from app.iptrace.steps import (
    ElementNotFound,
    FatalSessionError,
    NavigationTimeout,
    StepError,
    StepExecutor,
    is_fatal_session_error,
)
from tests.fakes import FakePage


@pytest.fixture(autouse=True)
def _quiet(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(steps, "log_line", lambda msg: None)
    monkeypatch.setattr(steps, "_trace_event", lambda *a, **k: None)


def test_navigate_timeout_maps_to_navigation_timeout() -> None:
    page = FakePage(fail={"goto": PWTimeout("Timeout 100ms exceeded.")})
    with pytest.raises(NavigationTimeout) as excinfo:
        StepExecutor(page).navigate("https://example.test", 100)
    assert excinfo.value.error_code == ErrorCode.NAVIGATION_TIMEOUT


def test_navigate_fatal_signature_maps_to_fatal() -> None:
    page = FakePage(fail={"goto": PWError("Target page, context or browser has been closed")})
    with pytest.raises(FatalSessionError):
        StepExecutor(page).navigate("https://example.test", 100)


def test_navigate_other_error_maps_to_step_error() -> None:
    page = FakePage(fail={"goto": PWError("net::ERR_NAME_NOT_RESOLVED")})
    with pytest.raises(StepError):
        StepExecutor(page).navigate("https://example.test", 100)


def test_wait_for_element_states() -> None:
    page = FakePage()
    executor = StepExecutor(page)
    executor.wait_for_element("#a", timeout_ms=50)
    executor.wait_for_element("#b", visible=False, timeout_ms=50)
    assert page.calls == [
        ("wait_for_selector", "#a", "visible", 50),
        ("wait_for_selector", "#b", "attached", 50),
    ]


def test_wait_for_missing_element() -> None:
    page = FakePage(missing={"#txtAddr"})
    with pytest.raises(ElementNotFound) as excinfo:
        StepExecutor(page).wait_for_element("#txtAddr", timeout_ms=50)
    assert "#txtAddr" in str(excinfo.value)


def test_fill_field_clears_then_types() -> None:
    page = FakePage()
    StepExecutor(page).fill_field("#q", "1.2.3.4", timeout_ms=50)
    assert page.calls == [("fill", "#q", ""), ("type", "#q", "1.2.3.4")]


def test_click_arms_navigation_before_clicking() -> None:
    page = FakePage()
    StepExecutor(page).click_and_await_navigation("#go", 1000)
    assert page.call_names() == ["expect_navigation", "eval_on_selector"]


def test_click_navigation_timeout() -> None:
    page = FakePage(fail={"expect_navigation": PWTimeout("Timeout 1000ms exceeded.")})
    with pytest.raises(NavigationTimeout):
        StepExecutor(page).click_and_await_navigation("#go", 1000)


def test_click_missing_element_is_element_not_found() -> None:
    page = FakePage(fail={"eval_on_selector": PWError("Error: failed to find element matching selector \"#go\"")})
    with pytest.raises(ElementNotFound):
        StepExecutor(page).click_and_await_navigation("#go", 1000)


def test_extract_text() -> None:
    page = FakePage(texts={"#lbAddr": "  서울특별시 강남구  "})
    executor = StepExecutor(page)
    assert executor.extract_text("#lbAddr") == "서울특별시 강남구"
    with pytest.raises(ElementNotFound):
        executor.extract_text("#missing")


def test_pause_skips_closed_page() -> None:
    page = FakePage()
    executor = StepExecutor(page)
    executor.pause(0)
    page.closed = True
    executor.pause(500)
    assert page.calls == []
    page.closed = False
    executor.pause(500)
    assert page.calls == [("wait_for_timeout", 500)]


def test_dismiss_popup_present_and_absent() -> None:
    page = FakePage()
    assert StepExecutor(page).dismiss_popup_if_present("button.close", 100, settle_ms=10) is True
    assert page.call_names() == ["wait_for_selector", "click", "wait_for_timeout"]

    absent = FakePage(missing={"button.close"})
    assert StepExecutor(absent).dismiss_popup_if_present("button.close", 100) is False
    assert StepExecutor(absent).dismiss_popup_if_present("", 100) is False


def test_dismiss_popup_fatal_error_propagates() -> None:
    page = FakePage(fail={"click": PWError("Protocol error (Runtime.callFunctionOn): Target closed.")})
    with pytest.raises(FatalSessionError):
        StepExecutor(page).dismiss_popup_if_present("button.close", 100)


def test_is_fatal_session_error_signatures() -> None:
    assert is_fatal_session_error(RuntimeError("Browser has been closed"))
    assert is_fatal_session_error(FatalSessionError("anything"))
    assert not is_fatal_session_error(RuntimeError("Execution context was destroyed"))
    assert not is_fatal_session_error(RuntimeError("target closed"))
