"""Scripted navigation and extraction primitives over one Playwright page.

None of the primitives retry. A timeout is reported as :class:`ElementNotFound`
or :class:`NavigationTimeout`; a Playwright error whose message matches one of
the fatal signatures is reported as :class:`FatalSessionError` so callers can
tear the whole session down.
"""
from __future__ import annotations

from typing import Iterable, Optional

from playwright.sync_api import Error as PWError, Page, TimeoutError as PWTimeout

from .config import DEFAULT_FATAL_SIGNATURES
from .error_codes import ErrorCode
from .logging_utils import _trace_event
from .utils import log_line


class AutomationError(Exception):
    def __init__(self, error_code: str, message: str, *, step: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.step = step

    def __str__(self) -> str:  # pragma: no cover - inherited behaviour
        return str(self.args[0]) if self.args else ""


class ElementNotFound(AutomationError):
    def __init__(self, message: str, *, step: str | None = None) -> None:
        super().__init__(ErrorCode.ELEMENT_NOT_FOUND, message, step=step)


class NavigationTimeout(AutomationError):
    def __init__(self, message: str, *, step: str | None = None) -> None:
        super().__init__(ErrorCode.NAVIGATION_TIMEOUT, message, step=step)


class StepError(AutomationError):
    def __init__(self, message: str, *, step: str | None = None) -> None:
        super().__init__(ErrorCode.STEP_FAILED, message, step=step)


class FatalSessionError(AutomationError):
    def __init__(self, message: str, *, step: str | None = None) -> None:
        super().__init__(ErrorCode.SESSION_FATAL, message, step=step)


def is_fatal_session_error(
    exc: BaseException, signatures: Iterable[str] = DEFAULT_FATAL_SIGNATURES
) -> bool:
    """Return ``True`` if *exc* means the browser session can no longer be used."""

    if isinstance(exc, FatalSessionError):
        return True
    message = str(exc)
    return any(signature in message for signature in signatures)


class StepExecutor:
    """Thin wrapper around a Playwright :class:`Page`."""

    def __init__(
        self,
        page: Page,
        *,
        fatal_signatures: Iterable[str] = DEFAULT_FATAL_SIGNATURES,
    ) -> None:
        self.page = page
        self._fatal_signatures = tuple(fatal_signatures)

    def _translate(self, exc: PWError, step: str, target: str) -> AutomationError:
        message = f"{step}({target!r}) failed: {exc}"
        if is_fatal_session_error(exc, self._fatal_signatures):
            return FatalSessionError(message, step=step)
        if "failed to find element" in str(exc):
            return ElementNotFound(message, step=step)
        return StepError(message, step=step)

    def navigate(self, url: str, timeout_ms: int, *, wait_until: str = "networkidle") -> None:
        _trace_event("step", step="navigate", url=url, timeout_ms=timeout_ms)
        try:
            self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PWTimeout as exc:
            raise NavigationTimeout(
                f"navigate({url!r}) timed out after {timeout_ms}ms", step="navigate"
            ) from exc
        except PWError as exc:
            raise self._translate(exc, "navigate", url) from exc

    def wait_for_element(self, selector: str, *, visible: bool = True, timeout_ms: int) -> None:
        try:
            self.page.wait_for_selector(
                selector,
                state="visible" if visible else "attached",
                timeout=timeout_ms,
            )
        except PWTimeout as exc:
            raise ElementNotFound(
                f"element {selector!r} not found within {timeout_ms}ms",
                step="wait_for_element",
            ) from exc
        except PWError as exc:
            raise self._translate(exc, "wait_for_element", selector) from exc

    def fill_field(self, selector: str, value: str, *, timeout_ms: int) -> None:
        """Clear the field at *selector* and type *value* into it."""

        try:
            self.page.fill(selector, "", timeout=timeout_ms)
            self.page.type(selector, value, timeout=timeout_ms)
        except PWTimeout as exc:
            raise ElementNotFound(
                f"field {selector!r} not fillable within {timeout_ms}ms",
                step="fill_field",
            ) from exc
        except PWError as exc:
            raise self._translate(exc, "fill_field", selector) from exc

    def click_and_await_navigation(
        self, selector: str, timeout_ms: int, *, wait_until: str = "networkidle"
    ) -> None:
        """Click *selector* with the navigation wait already armed."""

        _trace_event("step", step="click_and_await_navigation", selector=selector)
        try:
            with self.page.expect_navigation(wait_until=wait_until, timeout=timeout_ms):
                # DOM click; Playwright's pointer click is intercepted by overlays on these sites.
                self.page.eval_on_selector(selector, "el => el.click()")
        except PWTimeout as exc:
            raise NavigationTimeout(
                f"navigation after clicking {selector!r} timed out after {timeout_ms}ms",
                step="click_and_await_navigation",
            ) from exc
        except PWError as exc:
            raise self._translate(exc, "click_and_await_navigation", selector) from exc

    def extract_text(self, selector: str) -> str:
        try:
            element = self.page.query_selector(selector)
            if element is None:
                raise ElementNotFound(f"element {selector!r} not present", step="extract_text")
            return (element.text_content() or "").strip()
        except PWError as exc:
            raise self._translate(exc, "extract_text", selector) from exc

    def page_markup(self) -> str:
        try:
            return self.page.content()
        except PWError as exc:
            raise self._translate(exc, "page_markup", self.page.url) from exc

    def pause(self, milliseconds: int) -> None:
        """Fixed settle delay; skipped when the page is already closed."""

        if milliseconds <= 0 or self.page.is_closed():
            return
        self.page.wait_for_timeout(milliseconds)

    def dismiss_popup_if_present(
        self, selector: Optional[str], timeout_ms: int, *, settle_ms: int = 0
    ) -> bool:
        """Click a popup close button if one shows up; absence is not an error."""

        if not selector:
            return False
        try:
            self.page.wait_for_selector(selector, state="visible", timeout=timeout_ms)
            self.page.click(selector, timeout=timeout_ms)
        except PWTimeout:
            log_line(f"[STEP] No popup matched {selector!r}; continuing.")
            return False
        except PWError as exc:
            if is_fatal_session_error(exc, self._fatal_signatures):
                raise self._translate(exc, "dismiss_popup", selector) from exc
            log_line(f"[STEP] Popup dismissal via {selector!r} failed: {exc}")
            return False
        log_line(f"[STEP] Closed popup via {selector!r}")
        self.pause(settle_ms)
        return True


__all__ = [
    "AutomationError",
    "ElementNotFound",
    "NavigationTimeout",
    "StepError",
    "FatalSessionError",
    "is_fatal_session_error",
    "StepExecutor",
]
