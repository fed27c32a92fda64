from __future__ import annotations

import pytest

from app.iptrace import retry_policy
from app.iptrace.error_codes import ErrorCode


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(label: str, **fields: object) -> None:
        events.append((label, fields))

    monkeypatch.setattr(retry_policy, "_trace_event", _record)
    return events


@pytest.mark.parametrize(
    "attempt, expected, kind",
    [
        (1, True, "retryable"),
        (2, True, "retryable"),
        (3, False, "capped"),
        (5, False, "capped"),
    ],
)
def test_network_retry_limits(
    attempt: int, expected: bool, kind: str, event_recorder: list[tuple[str, dict]]
) -> None:
    result = retry_policy.decide_retry(attempt, 3, error_code=ErrorCode.NETWORK)
    assert result is expected
    assert len(event_recorder) == 1
    label, fields = event_recorder[0]
    assert label == "state"
    assert fields["phase"] == "retry_decision"
    assert fields["attempt"] == attempt
    assert fields["max_attempts"] == 3
    assert fields["will_retry"] is expected
    assert fields["kind"] == kind


@pytest.mark.parametrize(
    "error_code",
    [ErrorCode.HTTP_403, ErrorCode.MALFORMED_RESPONSE, ErrorCode.ELEMENT_NOT_FOUND, ErrorCode.SESSION_FATAL],
)
def test_non_retryable_error_codes(error_code: str, event_recorder: list[tuple[str, dict]]) -> None:
    assert error_code in retry_policy.NON_RETRYABLE_ERROR_CODES
    assert retry_policy.decide_retry(1, 3, error_code=error_code) is False
    _, fields = event_recorder[0]
    assert fields["kind"] == "non_retryable"
    assert fields["will_retry"] is False


def test_server_status_without_code_is_retryable(event_recorder: list[tuple[str, dict]]) -> None:
    assert retry_policy.decide_retry(1, 3, http_status=502) is True
    assert event_recorder[0][1]["kind"] == "retryable"


@pytest.mark.parametrize(
    "error_code, attempt, expected, kind",
    [
        (None, 1, True, "missing_error_code"),
        (None, 2, False, "missing_error_code"),
        ("weird", 1, True, "unknown"),
    ],
)
def test_unknown_codes_get_one_retry(
    error_code, attempt: int, expected: bool, kind: str, event_recorder: list[tuple[str, dict]]  # noqa: ANN001
) -> None:
    assert retry_policy.decide_retry(attempt, 3, error_code=error_code) is expected
    assert event_recorder[0][1]["kind"] == kind


def test_backoff_is_capped() -> None:
    assert retry_policy.compute_backoff_seconds(1) == 1.0
    assert retry_policy.compute_backoff_seconds(3) == 4.0
    assert retry_policy.compute_backoff_seconds(10) == 30.0
