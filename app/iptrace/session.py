"""Browser session lifecycle for a run.

One browser and one context live for the whole run. Pages are handed out via
:meth:`BrowserSession.page`, which always closes the page on exit.
:meth:`BrowserSession.shutdown` closes every open page, the context, the
browser and Playwright itself; it is safe to call more than once. Signal
handlers and thread hooks never close anything themselves: they only stop the
run, and the owning ``with session`` block does the teardown.
"""
from __future__ import annotations

import _thread
import signal
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from playwright.sync_api import Browser, BrowserContext, Page, sync_playwright

from .config import Settings
from .logging_utils import _trace_event
from .steps import FatalSessionError
from .utils import log_line

UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--ignore-certificate-errors",
]


class SessionClosed(FatalSessionError):
    """The session was shut down or aborted; no further pages can be opened."""


class RunInterrupted(KeyboardInterrupt):
    """Raised from a signal handler to stop the run."""


class BackgroundThreadFailure(RunInterrupted):
    """Raised in the main thread after another thread died with an exception."""


class BrowserSession:
    def __init__(
        self,
        browser: Browser,
        context: BrowserContext,
        *,
        stop: Optional[Callable[[], None]] = None,
    ) -> None:
        self._browser = browser
        self._context = context
        self._stop = stop
        self._pages: List[Page] = []
        self._lock = threading.Lock()
        self._closed = False
        self._abort_reason: Optional[str] = None
        self.shutdown_calls = 0

    @classmethod
    def launch(cls, settings: Settings) -> "BrowserSession":
        pw = sync_playwright().start()
        try:
            browser = pw.chromium.launch(headless=settings.headless, args=BROWSER_ARGS)
            context = browser.new_context(
                user_agent=UA,
                locale="ko-KR",
                viewport={"width": settings.viewport_width, "height": settings.viewport_height},
            )
        except Exception:
            pw.stop()
            raise
        log_line("[SESSION] Browser launched.")
        return cls(browser, context, stop=pw.stop)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def abort_reason(self) -> Optional[str]:
        return self._abort_reason

    def abort(self, reason: str) -> None:
        """Refuse new pages from now on; teardown is left to the owner."""

        if self._abort_reason is None:
            self._abort_reason = reason
            _trace_event("session", phase="abort", reason=reason)

    @contextmanager
    def page(self, label: str) -> Iterator[Page]:
        """Yield a fresh page that is closed on every exit path."""

        if self._closed:
            raise SessionClosed(f"Browser session already shut down; cannot open {label} page")
        if self._abort_reason is not None:
            raise SessionClosed(f"Browser session aborted ({self._abort_reason}); cannot open {label} page")
        page = self._context.new_page()
        with self._lock:
            self._pages.append(page)
        try:
            yield page
        finally:
            with self._lock:
                if page in self._pages:
                    self._pages.remove(page)
            self._close_quietly(page, f"{label} page")

    def shutdown(self, reason: str = "run finished") -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pages = list(self._pages)
            self._pages.clear()
        self.shutdown_calls += 1

        _trace_event("session", phase="shutdown", reason=reason, open_pages=len(pages))
        for page in pages:
            self._close_quietly(page, "page")
        for closable, name in ((self._context, "context"), (self._browser, "browser")):
            self._close_quietly(closable, name)
        if self._stop is not None:
            try:
                self._stop()
            except Exception as exc:  # noqa: BLE001
                log_line(f"[SESSION][WARN] Error stopping Playwright: {exc}")
        log_line(f"[SESSION] Browser session closed ({reason}).")

    @staticmethod
    def _close_quietly(closable: Any, name: str) -> None:
        try:
            if hasattr(closable, "is_closed") and closable.is_closed():
                return
            closable.close()
        except Exception as exc:  # noqa: BLE001
            log_line(f"[SESSION][WARN] Error closing {name}: {exc}")

    def __enter__(self) -> "BrowserSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.shutdown("fatal error" if exc is not None else "run finished")


@contextmanager
def shutdown_on_signals(session: BrowserSession) -> Iterator[None]:
    """Stop the run on SIGINT/SIGTERM or an uncaught thread exception.

    Signal handlers are only installed from the main thread. There, a thread
    failure interrupts the main thread so the run ends right away; in a worker
    thread the session is aborted and the next page request raises
    :class:`SessionClosed`.
    """

    previous_handlers: Dict[int, Any] = {}
    previous_excepthook = threading.excepthook

    def _on_signal(signum, _frame) -> None:  # noqa: ANN001
        name = signal.Signals(signum).name
        if session.abort_reason is not None:
            raise BackgroundThreadFailure(session.abort_reason)
        log_line(f"[SESSION] Received {name}; stopping run.")
        raise RunInterrupted(name)

    def _on_thread_exception(args: threading.ExceptHookArgs) -> None:
        thread_name = args.thread.name if args.thread is not None else "unknown"
        log_line(f"[SESSION][ERROR] Uncaught exception in thread {thread_name}: {args.exc_value!r}")
        session.abort(f"uncaught exception in thread {thread_name}: {args.exc_value!r}")
        if previous_handlers:
            _thread.interrupt_main()

    if threading.current_thread() is threading.main_thread():
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous_handlers[signum] = signal.signal(signum, _on_signal)
    threading.excepthook = _on_thread_exception
    try:
        yield
    finally:
        threading.excepthook = previous_excepthook
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)


__all__ = [
    "BrowserSession",
    "SessionClosed",
    "RunInterrupted",
    "BackgroundThreadFailure",
    "shutdown_on_signals",
]
