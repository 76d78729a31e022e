"""
Acquisition error codes for crawlkit.

Every backend, the remote-debug client and the orchestrators raise one of the
coded exceptions below so callers can branch on ``error.code`` instead of on
library-specific exception types.
"""

import asyncio
from enum import Enum
from typing import Any


class AcquisitionErrorCode(str, Enum):
    """Acquisition error codes."""

    NAVIGATION_ERROR = "NAVIGATION_ERROR"
    """Navigation failed or the endpoint returned a protocol error."""

    TIMEOUT = "TIMEOUT"
    """The target did not become ready within the allowed time."""

    ELEMENT_NOT_FOUND = "ELEMENT_NOT_FOUND"
    """A selector the caller waited on never appeared."""

    EVALUATION_ERROR = "EVALUATION_ERROR"
    """A script evaluated in the page threw or could not be serialised."""

    UPLOAD_ERROR = "UPLOAD_ERROR"
    """A file could not be attached to an input element."""

    CONNECTION_FAILURE = "CONNECTION_FAILURE"
    """The transport to a backend closed or could not be established."""

    CANCELLED = "CANCELLED"
    """The cancellation token was set before work started."""

    UNKNOWN = "UNKNOWN"
    """Anything not covered above."""


class AcquisitionError(Exception):
    """
    Base exception for acquisition failures.

    Provides a structured, serialisable view of the failure.
    """

    code: AcquisitionErrorCode = AcquisitionErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        code: AcquisitionErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """
        Convert error to a response dictionary.

        Returns:
            Dictionary with ok=False, the error code and message.
        """
        result: dict[str, Any] = {
            "ok": False,
            "error_code": self.code.value,
            "error": self.message,
        }

        if self.details:
            result["details"] = self.details

        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


class NavigationError(AcquisitionError):
    """Raised when navigation to a URL fails."""

    code = AcquisitionErrorCode.NAVIGATION_ERROR

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        if url:
            details["url"] = url
        super().__init__(message, details=details)


class AcquisitionTimeoutError(AcquisitionError):
    """Raised when an operation exceeds its deadline."""

    code = AcquisitionErrorCode.TIMEOUT

    def __init__(
        self,
        message: str,
        *,
        timeout: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        if timeout is not None:
            details["timeout_seconds"] = timeout
        super().__init__(message, details=details)


class ElementNotFoundError(AcquisitionError):
    """Raised when a selector never matched."""

    code = AcquisitionErrorCode.ELEMENT_NOT_FOUND

    def __init__(self, selector: str, *, details: dict[str, Any] | None = None):
        details = dict(details or {})
        details["selector"] = selector
        super().__init__(f"Element not found: {selector}", details=details)


class EvaluationError(AcquisitionError):
    """Raised when in-page script evaluation fails."""

    code = AcquisitionErrorCode.EVALUATION_ERROR


class UploadError(AcquisitionError):
    """Raised when a file upload to the page fails."""

    code = AcquisitionErrorCode.UPLOAD_ERROR


class ConnectionFailureError(AcquisitionError):
    """Raised when a backend transport is closed or unreachable."""

    code = AcquisitionErrorCode.CONNECTION_FAILURE


class AcquisitionCancelledError(AcquisitionError):
    """Raised when the caller's token was cancelled before an attempt."""

    code = AcquisitionErrorCode.CANCELLED

    def __init__(self, message: str = "Acquisition cancelled", **kwargs: Any):
        super().__init__(message, **kwargs)


class UnknownAcquisitionError(AcquisitionError):
    """Raised for failures outside the other categories."""

    code = AcquisitionErrorCode.UNKNOWN


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return True
    # Playwright, httpx and curl_cffi all name their timeout types *Timeout*
    return "timeout" in type(exc).__name__.lower()


def wrap_exception(exc: BaseException, *, url: str | None = None) -> AcquisitionError:
    """Map an arbitrary exception onto the acquisition error taxonomy.

    Args:
        exc: Exception raised by a backend library.
        url: Target URL, recorded in details when given.

    Returns:
        The exception itself when it already is an AcquisitionError,
        otherwise an AcquisitionTimeoutError or UnknownAcquisitionError
        carrying the original type name.
    """
    if isinstance(exc, AcquisitionError):
        return exc

    details: dict[str, Any] = {"exception_type": type(exc).__name__}
    if url:
        details["url"] = url

    message = str(exc) or type(exc).__name__
    if _is_timeout(exc):
        return AcquisitionTimeoutError(message, details=details)
    return UnknownAcquisitionError(message, details=details)
