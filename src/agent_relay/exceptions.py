"""Custom exceptions for the agent relay daemon.

All exceptions inherit from RelayError so callers can catch every relay
error with a single except clause.

Exception hierarchy:
    RelayError (base)
    ├── ConfigurationError
    │   └── ValidationError
    ├── TunnelError
    │   ├── TunnelStartError
    │   └── TunnelUnavailableError
    └── SessionError
        └── SessionStartError
"""

from pathlib import Path
from typing import Any


class RelayError(Exception):
    """Base exception for all relay errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(RelayError):
    """Raised when configuration is invalid or cannot be loaded."""

    def __init__(
        self,
        message: str,
        config_file: Path | None = None,
        key: str | None = None,
    ):
        details = {}
        if config_file:
            details["config_file"] = str(config_file)
        if key:
            details["key"] = key
        super().__init__(message, details)
        self.config_file = config_file
        self.key = key


class ValidationError(ConfigurationError):
    """Raised when a configuration value fails validation.

    Examples:
        - Unknown tunnel provider name
        - Non-positive timeout
        - Invalid log level
    """

    def __init__(
        self,
        message: str,
        field: str,
        value: Any = None,
        expected: str | None = None,
    ):
        """Initialize validation error.

        Args:
            message: Error description.
            field: The field that failed validation.
            value: The invalid value (truncated if too long).
            expected: Description of the expected value.
        """
        super().__init__(message)
        self.details["field"] = field
        if value is not None:
            value_str = str(value)
            self.details["value"] = value_str[:100] + "..." if len(value_str) > 100 else value_str
        if expected:
            self.details["expected"] = expected
        self.field = field
        self.value = value
        self.expected = expected


# =============================================================================
# Tunnel Errors
# =============================================================================


class TunnelError(RelayError):
    """Base class for tunnel errors."""

    def __init__(self, message: str, provider: str | None = None):
        details = {}
        if provider:
            details["provider"] = provider
        super().__init__(message, details)
        self.provider = provider


class TunnelStartError(TunnelError):
    """Raised when a tunnel process fails to come up.

    Examples:
        - Binary exited before printing a public URL
        - No URL within the start timeout
        - Restarted tunnel never passed its health check
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, provider=provider)
        self.cause = cause


class TunnelUnavailableError(TunnelError):
    """Raised when the tunnel binary cannot be located."""

    def __init__(self, message: str, provider: str | None = None, path: str | None = None):
        super().__init__(message, provider=provider)
        if path:
            self.details["path"] = path
        self.path = path


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(RelayError):
    """Base class for assistant session errors."""

    def __init__(self, message: str, session_id: str | None = None):
        details = {}
        if session_id:
            details["session_id"] = session_id
        super().__init__(message, details)
        self.session_id = session_id


class SessionStartError(SessionError):
    """Raised when an assistant session cannot be spawned or resumed.

    Only the request that asked for the session sees this error.
    """

    def __init__(
        self,
        message: str,
        session_id: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, session_id=session_id)
        self.cause = cause
