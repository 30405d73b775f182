"""Application-level exception types for toolstream."""

from __future__ import annotations

TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({500, 502, 503, 504, 529})
TRANSIENT_STREAM_ERRORS: frozenset[str] = frozenset({"overloaded_error", "api_error"})


class ToolstreamError(Exception):
    """Base exception for toolstream."""


class ConfigurationError(ToolstreamError):
    """Base exception for configuration and startup validation errors."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when an API key is required but missing."""


class BackendError(ToolstreamError):
    """Base exception for failures reported by the reasoning backend."""

    @property
    def transient(self) -> bool:
        return False


class BackendStatusError(BackendError):
    """The backend answered the stream request with an HTTP error status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"backend returned status {status_code}: {message}" if message else f"status {status_code}")

    @property
    def transient(self) -> bool:
        return self.status_code in TRANSIENT_STATUS_CODES


class BackendConnectionError(BackendError):
    """The stream could not be opened or was dropped before the round ended."""

    @property
    def transient(self) -> bool:
        return True


class BackendTimeoutError(BackendConnectionError):
    """The stream did not finish within its deadline."""


class BackendStreamError(BackendError):
    """The backend reported an error event inside an open stream."""

    def __init__(self, error_type: str, message: str = "") -> None:
        self.error_type = error_type
        self.message = message
        super().__init__(f"{error_type}: {message}" if message else error_type)

    @property
    def transient(self) -> bool:
        return self.error_type in TRANSIENT_STREAM_ERRORS


class CorrelationError(ToolstreamError):
    """Operation results do not match the outstanding requests of the last model turn."""
