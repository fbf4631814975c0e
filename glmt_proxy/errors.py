"""Proxy error hierarchy.

Every failure is scoped to the request that raised it and is rendered as an
``{"error": {"type", "message"}}`` envelope in the inbound wire format.
"""

from enum import Enum


class RequestState(str, Enum):
    """Per-request lifecycle states, including terminal error states."""

    RECEIVED = "RECEIVED"
    BODY_READ = "BODY_READ"
    PARSED = "PARSED"
    REQUEST_TRANSFORMED = "REQUEST_TRANSFORMED"
    FORWARDED = "FORWARDED"
    UPSTREAM_RESPONDED = "UPSTREAM_RESPONDED"
    RESPONSE_TRANSFORMED = "RESPONSE_TRANSFORMED"
    SENT = "SENT"

    ERROR_METHOD_NOT_ALLOWED = "ERROR_METHOD_NOT_ALLOWED"
    ERROR_BODY_TOO_LARGE = "ERROR_BODY_TOO_LARGE"
    ERROR_BAD_JSON = "ERROR_BAD_JSON"
    ERROR_UPSTREAM = "ERROR_UPSTREAM"
    ERROR_INTERNAL = "ERROR_INTERNAL"

    @property
    def is_error(self) -> bool:
        return self in STATE_ERRORS


INVALID_REQUEST_ERROR = "invalid_request_error"
PROXY_ERROR = "proxy_error"

# terminal state -> (status, error type)
STATE_ERRORS = {
    RequestState.ERROR_METHOD_NOT_ALLOWED: (405, INVALID_REQUEST_ERROR),
    RequestState.ERROR_BODY_TOO_LARGE: (413, INVALID_REQUEST_ERROR),
    RequestState.ERROR_BAD_JSON: (400, INVALID_REQUEST_ERROR),
    RequestState.ERROR_UPSTREAM: (502, PROXY_ERROR),
    RequestState.ERROR_INTERNAL: (500, PROXY_ERROR),
}


def error_envelope(error_type: str, message: str) -> dict:
    return {"error": {"type": error_type, "message": message}}


class ProxyError(Exception):
    """Base exception for request-scoped proxy failures."""

    state = RequestState.ERROR_INTERNAL

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return STATE_ERRORS[self.state][0]

    @property
    def error_type(self) -> str:
        return STATE_ERRORS[self.state][1]

    def to_envelope(self) -> dict:
        return error_envelope(self.error_type, self.message)


class ClientProtocolError(ProxyError):
    """4xx - the inbound request itself is unusable."""


class MethodNotAllowedError(ClientProtocolError):
    state = RequestState.ERROR_METHOD_NOT_ALLOWED

    def __init__(self, method: str):
        super().__init__(f"Method not allowed: {method}")
        self.method = method


class BodyTooLargeError(ClientProtocolError):
    state = RequestState.ERROR_BODY_TOO_LARGE

    def __init__(self, max_size: int):
        super().__init__(f"Request body too large (max {max_size // (1024 * 1024)}MB)")
        self.max_size = max_size


class InvalidJSONError(ClientProtocolError):
    state = RequestState.ERROR_BAD_JSON

    def __init__(self, detail: str):
        super().__init__(f"Invalid JSON in request body: {detail}")


class UpstreamError(ProxyError):
    """Non-2xx, unparsable or failed upstream call.

    Never retried here; retry policy belongs to the caller.
    """

    state = RequestState.ERROR_UPSTREAM

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.upstream_status = status_code


class UpstreamTimeoutError(UpstreamError):
    """Upstream call exceeded the configured timeout."""

    @property
    def status_code(self) -> int:
        return 504


class TransformationError(Exception):
    """Translation between the two wire formats failed."""


class NoChoicesError(TransformationError):
    def __init__(self, count: int = 0):
        super().__init__(
            "No choices in upstream response" if count == 0
            else f"Expected exactly one choice in upstream response, got {count}"
        )
        self.count = count


class ToolArgumentsError(TransformationError):
    """A tool call carried an argument string that is not a JSON object."""

    def __init__(self, call_id: str, detail: str):
        super().__init__(f"Malformed arguments for tool call {call_id}: {detail}")
        self.call_id = call_id
