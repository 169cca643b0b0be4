"""Exceptions raised by the backend gateway."""

from typing import Iterable, Optional


class GatewayError(Exception):
    """Base class for every error the gateway reports to a caller."""


class ConfigurationError(GatewayError):
    """The configuration is invalid or leaves no usable backend."""


class BackendResolutionError(GatewayError):
    """The backend targeted by a call could not be determined."""


class BackendRequired(BackendResolutionError):
    """No backend was named while several are configured."""

    def __init__(self):
        super().__init__("backend parameter required when multiple backends are configured")


class UnknownBackend(BackendResolutionError):
    """The named backend is not part of the configuration."""

    def __init__(self, backend: str, available: Iterable[str]):
        self.backend = backend
        self.available = sorted(available)
        super().__init__(
            f"unknown backend \"{backend}\", available: [{', '.join(self.available)}]"
        )


class ClientUnavailable(GatewayError):
    """The backend is configured but has no usable client."""

    def __init__(self, backend: str, reason: Optional[str] = None):
        self.backend = backend
        message = f"backend \"{backend}\" has no client available"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidPattern(GatewayError):
    """A metric-name glob pattern is malformed."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        super().__init__(f"invalid glob pattern {pattern!r}: {reason}")


class InvalidArgument(GatewayError):
    """A caller-supplied argument is missing or malformed."""


class BackendAPIError(GatewayError):
    """The backend answered, but reported a failure in its response body."""

    def __init__(self, message: str, error_type: Optional[str] = None, status_code: Optional[int] = None):
        self.error_type = error_type
        self.status_code = status_code
        super().__init__(f"{error_type}: {message}" if error_type else message)


class QueryExecutionError(GatewayError):
    """A backend call failed; carries the backend name and the upstream message verbatim."""

    def __init__(self, backend: str, message: str, operation: str = "query"):
        self.backend = backend
        self.message = message
        self.operation = operation
        super().__init__(f"failed to execute {operation} on backend \"{backend}\": {message}")
