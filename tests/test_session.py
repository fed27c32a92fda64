from __future__ import annotations

import signal
import threading
import time

import pytest

from app.iptrace.session import (
    BackgroundThreadFailure,
    BrowserSession,
    RunInterrupted,
    SessionClosed,
    shutdown_on_signals,
)
from app.iptrace.steps import FatalSessionError, is_fatal_session_error
from tests.fakes import FakeBrowser, FakeContext


def test_page_is_closed_on_exception() -> None:
    context = FakeContext()
    session = BrowserSession(FakeBrowser(), context)

    with pytest.raises(RuntimeError):
        with session.page("primary"):
            raise RuntimeError("boom")

    assert context.opened[0].closed is True


def test_shutdown_is_idempotent_and_closes_everything() -> None:
    browser = FakeBrowser()
    context = FakeContext()
    stops: list[int] = []
    session = BrowserSession(browser, context, stop=lambda: stops.append(1))

    session.shutdown("first")
    session.shutdown("second")

    assert session.shutdown_calls == 1
    assert session.closed is True
    assert context.close_calls == 1
    assert browser.close_calls == 1
    assert stops == [1]
    with pytest.raises(SessionClosed):
        with session.page("late"):
            pass


def test_shutdown_closes_open_pages() -> None:
    context = FakeContext()
    session = BrowserSession(FakeBrowser(), context)

    with session.page("primary") as page:
        session.shutdown("signal")
        assert page.closed is True


def test_close_errors_are_logged_not_raised() -> None:
    class _BadBrowser(FakeBrowser):
        def close(self) -> None:
            raise RuntimeError("already gone")

    session = BrowserSession(_BadBrowser(), FakeContext())
    session.shutdown("run finished")
    assert session.shutdown_calls == 1


def test_closed_session_error_is_fatal() -> None:
    session = BrowserSession(FakeBrowser(), FakeContext())
    session.shutdown("run finished")

    with pytest.raises(FatalSessionError) as excinfo:
        with session.page("primary"):
            pass

    assert is_fatal_session_error(excinfo.value)


def test_signal_handler_only_interrupts() -> None:
    context = FakeContext()
    session = BrowserSession(FakeBrowser(), context)
    previous = signal.getsignal(signal.SIGTERM)

    with pytest.raises(RunInterrupted):
        with session, shutdown_on_signals(session):
            handler = signal.getsignal(signal.SIGTERM)
            with pytest.raises(RunInterrupted):
                handler(signal.SIGTERM, None)
            assert session.closed is False
            assert context.close_calls == 0
            raise RunInterrupted("SIGTERM")

    assert session.closed is True
    assert session.shutdown_calls == 1
    assert context.close_calls == 1
    assert signal.getsignal(signal.SIGTERM) == previous


def test_thread_exception_interrupts_main_thread() -> None:
    context = FakeContext()
    session = BrowserSession(FakeBrowser(), context)

    def _worker() -> None:
        raise RuntimeError("worker died")

    with pytest.raises(BackgroundThreadFailure) as excinfo:
        with session, shutdown_on_signals(session):
            thread = threading.Thread(target=_worker, name="uploader")
            thread.start()
            thread.join()
            for _ in range(100):
                time.sleep(0.01)

    assert "uploader" in str(excinfo.value)
    assert session.shutdown_calls == 1
    assert context.close_calls == 1


def test_thread_exception_in_worker_run_aborts_next_page() -> None:
    session = BrowserSession(FakeBrowser(), FakeContext())
    seen: list[BaseException] = []

    def _failing() -> None:
        raise RuntimeError("worker died")

    def _run() -> None:
        with shutdown_on_signals(session):
            thread = threading.Thread(target=_failing)
            thread.start()
            thread.join()
            try:
                with session.page("primary"):
                    pass
            except SessionClosed as exc:
                seen.append(exc)

    runner = threading.Thread(target=_run)
    runner.start()
    runner.join()

    assert len(seen) == 1
    assert "aborted" in str(seen[0])
    assert session.closed is False
    assert session.abort_reason is not None
