"""Exception hierarchy for the GLIMPS Detect SDK."""

from __future__ import annotations


class GDetectError(Exception):
    """Base exception for all GLIMPS Detect SDK errors."""

    def __init__(self, message: str = "", details: dict | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class GDetectBadTokenError(GDetectError):
    """Raised when the API token does not match the expected format."""


class GDetectInvalidEndpointError(GDetectError):
    """Raised when the endpoint is not an absolute URL with a scheme and host."""


class GDetectFileError(GDetectError):
    """Raised when the file to submit cannot be read."""


class GDetectHTTPError(GDetectError):
    """Raised for any unexpected non-200 response.

    Attributes:
        status: Status line, e.g. ``"401 Unauthorized"``.
        code: Numeric HTTP status code.
        body: Raw response body.
    """

    TRANSIENT_CODES = frozenset({429, 502, 503, 504})

    def __init__(self, status: str, code: int, body: str) -> None:
        super().__init__(f"invalid response from endpoint, {status}: {body}")
        self.status = status
        self.code = code
        self.body = body

    @property
    def is_transient(self) -> bool:
        return self.code in self.TRANSIENT_CODES


class GDetectDecodeError(GDetectError):
    """Raised when a 200 response body is not the expected JSON document."""

    def __init__(self, message: str, raw_length: int = 0) -> None:
        super().__init__(message, {"raw_length": raw_length})
        self.raw_length = raw_length


class GDetectSubmissionRejectedError(GDetectError):
    """Raised when the submit endpoint answers ``status: false``."""


class GDetectNotSupportedError(GDetectError):
    """Raised when an operation is unavailable for the active API variant or server.

    ``version`` is set to ``"unknown"`` when the server does not expose the
    lite v2 API version.
    """

    def __init__(self, message: str, version: str = "") -> None:
        super().__init__(message)
        self.version = version


class GDetectNoTokenError(GDetectError):
    """Raised when a result carries no view token."""


class GDetectNoSIDError(GDetectError):
    """Raised when a result carries no analysis SID."""


class GDetectTimeoutError(GDetectError):
    """Raised when a request or a wait exceeds its deadline."""


class GDetectCancelledError(GDetectTimeoutError):
    """Raised when the caller cancels a wait before a verdict is available."""


class GDetectConnectionError(GDetectError):
    """Raised when the SDK cannot reach the Detect API server."""
