"""
Infrastructure exceptions for hostbus.

Purpose
-------
Define the structured exception hierarchy for the dispatcher, the staged
loader and the lifecycle controller. Only caller errors are raised to the
code that made the call; listener, load and guard faults are logged by the
component that caught them and never interrupt the running process.

Fault Classes
-------------
- CallerError: invalid arguments (non-string event name, non-callable
  listener, empty or ambiguous module specifier). Raised as
  `InvalidArgumentError` at the call site.
- ListenerFault: an exception raised by application listener code. Isolated
  per listener and logged by `src.core.event.errors`.
- LoadFault: a module-load capability failure. Wrapped in `ModuleLoadError`
  and recorded on the `LoadResult` for that specifier.
- GuardFault: a failure inside the fatal-signal handler's own bookkeeping.
  Each sub-step is isolated inside the handler.

Design Notes
------------
- All hostbus exceptions inherit from `HostbusException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging decisions
  - `error_code`: short, stable identifier for programmatic use
- `InvalidArgumentError` is also a `TypeError` so callers that only know the
  builtin hierarchy can still catch it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class HostbusException(Exception):
    """
    Base exception for all hostbus errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        error_code: Optional code for programmatic handling

    Example:
        >>> raise HostbusException(
        ...     "Dispatcher misconfigured",
        ...     {"max_listeners": -1}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}"
            ")"
        )


class InvalidArgumentError(HostbusException, TypeError):
    """
    Raised when a public operation is called with malformed arguments.

    These are caller errors: they surface synchronously and are never logged
    and swallowed by the component that detected them.

    Args:
        argument: Name of the offending parameter
        reason: Why the value was rejected
        value: The rejected value (only its type is recorded)
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, argument: str, reason: str, value: Any = None) -> None:
        self.argument = argument
        self.reason = reason
        super().__init__(
            f"Invalid argument '{argument}': {reason}",
            details={
                "argument": argument,
                "value_type": type(value).__name__,
            },
            error_code="INVALID_ARGUMENT",
        )


class ModuleLoadError(HostbusException):
    """
    Wraps a failure raised by the module-load capability.

    Never raised out of the staged loader; stored on the `LoadResult` of the
    failing specifier so callers can inspect what went wrong.

    Args:
        specifier: Resolved module specifier that failed to load
        original_error: The underlying exception
    """

    def __init__(self, specifier: str, original_error: BaseException) -> None:
        self.specifier = specifier
        self.original_error = original_error
        super().__init__(
            f"Failed to load module '{specifier}': {original_error}",
            details={
                "specifier": specifier,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="MODULE_LOAD_ERROR",
        )


# Utility functions for exception handling patterns


def is_caller_error(exc: BaseException) -> bool:
    """
    Check whether an exception is a caller error that must propagate.

    Args:
        exc: Exception to check

    Returns:
        True for `InvalidArgumentError`, False otherwise.
    """
    return isinstance(exc, InvalidArgumentError)


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    """
    Get the severity level of an exception for logging.

    Args:
        exc: Exception to check

    Returns:
        ErrorSeverity level.
    """
    if isinstance(exc, HostbusException):
        return exc.severity
    return ErrorSeverity.ERROR
