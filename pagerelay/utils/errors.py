"""
Error taxonomy for pagerelay.

Every failure a handler can surface is a RelayError carrying a code and the
HTTP status it maps to. Callers only ever see the status and the raw message;
the code and details exist for structured logs.

Error codes follow the pattern:
- INVALID_* / FORBIDDEN_*: Target validation errors (rejected before any I/O)
- *_UNAVAILABLE: Browser engine could not be launched or was shut down
- *_FAILED: Navigation or upstream fetch failures
- INTERNAL_ERROR: Anything else
"""

from enum import Enum
from typing import Any


class RelayErrorCode(str, Enum):
    """Relay error codes."""

    INVALID_TARGET = "INVALID_TARGET"
    """Target URL missing or not an absolute http(s) URL."""

    FORBIDDEN_TARGET = "FORBIDDEN_TARGET"
    """Target URL points at a loopback/local host."""

    ENGINE_UNAVAILABLE = "ENGINE_UNAVAILABLE"
    """Browser engine launch or context creation failed."""

    NAVIGATION_FAILED = "NAVIGATION_FAILED"
    """Page load timed out or failed inside the engine."""

    UPSTREAM_FAILED = "UPSTREAM_FAILED"
    """Probe or passthrough request failed (transport error or non-2xx)."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected internal error."""


_HTTP_STATUS: dict[RelayErrorCode, int] = {
    RelayErrorCode.INVALID_TARGET: 400,
    RelayErrorCode.FORBIDDEN_TARGET: 403,
}


class RelayError(Exception):
    """
    Base exception for relay errors.
    """

    def __init__(
        self,
        code: RelayErrorCode,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize relay error.

        Args:
            code: Error code from RelayErrorCode enum.
            message: Human-readable error message (returned to the caller as-is).
            details: Optional additional error details (logged only).
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    @property
    def http_status(self) -> int:
        """HTTP status for the response; everything but validation is a 500."""
        return _HTTP_STATUS.get(self.code, 500)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a log-friendly dict."""
        result: dict[str, Any] = {
            "error_code": self.code.value,
            "error": self.message,
            "status": self.http_status,
        }
        if self.details:
            result["details"] = self.details
        return result


class InvalidTargetError(RelayError):
    """Raised when the target URL is missing or malformed."""

    def __init__(self, message: str, *, received: Any = None):
        details = {"received": str(received)} if received is not None else None
        super().__init__(RelayErrorCode.INVALID_TARGET, message, details=details)


class ForbiddenTargetError(RelayError):
    """Raised when the target URL resolves to a local host."""

    def __init__(self, host: str):
        super().__init__(
            RelayErrorCode.FORBIDDEN_TARGET,
            f"Forbidden target host: {host}",
            details={"host": host},
        )


class EngineUnavailableError(RelayError):
    """Raised when the render engine cannot be launched or is shut down."""

    def __init__(self, message: str):
        super().__init__(
            RelayErrorCode.ENGINE_UNAVAILABLE,
            f"Render engine unavailable: {message}",
        )


class NavigationError(RelayError):
    """Raised when a page load fails or times out."""

    def __init__(self, url: str, message: str, *, timeout: bool = False):
        super().__init__(
            RelayErrorCode.NAVIGATION_FAILED,
            message,
            details={"url": url, "timeout": timeout},
        )


class UpstreamFetchError(RelayError):
    """Raised when the probe or passthrough request fails."""

    def __init__(self, url: str, message: str, *, status: int | None = None):
        details: dict[str, Any] = {"url": url}
        if status is not None:
            details["upstream_status"] = status
        super().__init__(RelayErrorCode.UPSTREAM_FAILED, message, details=details)
