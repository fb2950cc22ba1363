"""
Error taxonomy for the dynprof control plane.

None of these errors is allowed to terminate the host process. They are raised
at the edges (file reads, signal installation, daemon calls, client callbacks)
and caught by the controller, which logs them and keeps using the last-known-good
configuration.

Key features:
- Error code enums (avoid typos)
- Severity levels (transient, degraded, user_error)
- Pydantic model for structured error details
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Error Codes and Severity
# ============================================================================


class ErrorCode(str, Enum):
    """Enumeration of all error codes in the control plane."""

    CONFIG_READ_ERROR = "CONFIG_READ_ERROR"
    CONFIG_WRITE_ERROR = "CONFIG_WRITE_ERROR"
    CONFIG_PARSE_ERROR = "CONFIG_PARSE_ERROR"
    SETTINGS_ERROR = "SETTINGS_ERROR"
    SIGNAL_INSTALL_ERROR = "SIGNAL_INSTALL_ERROR"
    DAEMON_ERROR = "DAEMON_ERROR"
    THREAD_AFFINITY_ERROR = "THREAD_AFFINITY_ERROR"


class ErrorSeverity(str, Enum):
    """How the control plane degrades when the error occurs."""

    TRANSIENT = "transient"  # Treated as empty configuration, retried next cycle
    DEGRADED = "degraded"  # A trigger path is disabled, the rest keeps working
    USER_ERROR = "user_error"  # Caller mistake, operation skipped


class ErrorDetails(BaseModel):
    """Structured error details for serialization."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: ErrorCode = Field(..., description="Error code enum")
    message: str = Field(..., description="Human-readable error message")
    context: dict[str, Any] = Field(default_factory=dict, description="Additional context")
    severity: ErrorSeverity = Field(default=ErrorSeverity.TRANSIENT, description="Error severity")


# ============================================================================
# Base Exception Class
# ============================================================================


class DynprofError(Exception):
    """Base class for all dynprof errors."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        details: dict[str, Any] | None = None,
        severity: ErrorSeverity = ErrorSeverity.TRANSIENT,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.severity = severity

    def to_details(self) -> ErrorDetails:
        """Convert to structured ErrorDetails."""
        return ErrorDetails(
            code=self.code, message=self.message, context=self.details, severity=self.severity
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "error": self.code.value,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
        }


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigReadError(DynprofError):
    """A configuration file could not be read."""

    def __init__(self, path: str, cause: Exception) -> None:
        super().__init__(
            f"Failed to read config file {path}: {cause}",
            ErrorCode.CONFIG_READ_ERROR,
            {"path": path, "cause_type": type(cause).__name__, "cause": str(cause)},
        )


class ConfigWriteError(DynprofError):
    """A configuration file could not be written."""

    def __init__(self, path: str, cause: Exception) -> None:
        super().__init__(
            f"Failed to write config file {path}: {cause}",
            ErrorCode.CONFIG_WRITE_ERROR,
            {"path": path, "cause_type": type(cause).__name__, "cause": str(cause)},
            severity=ErrorSeverity.USER_ERROR,
        )


class ConfigParseError(DynprofError):
    """Configuration text is malformed."""

    def __init__(self, message: str, line_number: int | None = None, line: str | None = None) -> None:
        details: dict[str, Any] = {}
        if line_number is not None:
            details["line_number"] = line_number
        if line is not None:
            details["line"] = line
        super().__init__(message, ErrorCode.CONFIG_PARSE_ERROR, details)


class SettingsError(DynprofError):
    """Control-plane settings failed validation."""

    def __init__(self, message: str, source: str | None = None) -> None:
        details = {"source": source} if source else {}
        super().__init__(message, ErrorCode.SETTINGS_ERROR, details, severity=ErrorSeverity.USER_ERROR)


# ============================================================================
# Runtime Errors
# ============================================================================


class SignalHandlerInstallError(DynprofError):
    """The OS signal handler could not be installed or restored."""

    def __init__(self, signum: int, cause: Exception) -> None:
        super().__init__(
            f"Failed to register handler for signal {signum}: {cause}",
            ErrorCode.SIGNAL_INSTALL_ERROR,
            {"signum": signum, "cause_type": type(cause).__name__, "cause": str(cause)},
            severity=ErrorSeverity.DEGRADED,
        )


class DaemonClientError(DynprofError):
    """The daemon client failed to answer a query."""

    def __init__(self, operation: str, cause: Exception) -> None:
        super().__init__(
            f"Daemon call '{operation}' failed: {cause}",
            ErrorCode.DAEMON_ERROR,
            {"operation": operation, "cause_type": type(cause).__name__, "cause": str(cause)},
        )


class ThreadAffinityError(DynprofError):
    """A non-thread-safe callback was invoked from the wrong thread."""

    def __init__(self, expected_thread: int, actual_thread: int) -> None:
        super().__init__(
            "External init callback must run in same thread as register_client "
            f"({actual_thread} != {expected_thread})",
            ErrorCode.THREAD_AFFINITY_ERROR,
            {"expected_thread": expected_thread, "actual_thread": actual_thread},
            severity=ErrorSeverity.USER_ERROR,
        )
