from __future__ import annotations

"""Error code taxonomy for row and upload failures.

Codes are attached to raised errors, emitted in structured logs and stored in
run telemetry so that a failed row can be explained after the fact.
"""


class ErrorCode:
    ELEMENT_NOT_FOUND = "element_not_found"
    NAVIGATION_TIMEOUT = "navigation_timeout"
    STEP_FAILED = "step_failed"
    SESSION_FATAL = "session_fatal"
    NETWORK = "network_error"
    HTTP_4XX = "http_4xx"
    HTTP_401 = "http_401_unauthorised"
    HTTP_403 = "http_403_forbidden"
    HTTP_404 = "http_404_not_found"
    HTTP_5XX = "http_5xx"
    RATE_LIMIT = "rate_limit"
    MALFORMED_RESPONSE = "malformed_response"
    CONFIG = "config_error"
    INTERNAL = "internal_error"


__all__ = ["ErrorCode"]
