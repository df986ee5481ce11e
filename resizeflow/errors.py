"""Error taxonomy for resize workflow runs."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification recorded for every non-success outcome."""

    CONFIGURATION = "ConfigurationError"
    TRANSIENT_CAPACITY = "TransientCapacityError"
    TIMEOUT = "TimeoutError"
    API = "ApiError"
    CAPACITY_EXHAUSTED = "CapacityExhaustedError"
    CANCELLED = "CancelledError"


class ResizeflowError(Exception):
    """Base class for all errors raised by resizeflow."""

    kind: ErrorKind = ErrorKind.API

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ResizeflowError):
    """Bad or missing parameters, or an invalid workflow definition."""

    kind = ErrorKind.CONFIGURATION


class BindingError(ConfigurationError):
    """A step input could not be resolved at dispatch time."""


class TransientCapacityError(ResizeflowError):
    """Requested capacity is temporarily unavailable; safe to retry."""

    kind = ErrorKind.TRANSIENT_CAPACITY

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class WaitTimeoutError(ResizeflowError, TimeoutError):
    """A waiter or step deadline elapsed before the desired state was seen."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, last_value: Optional[str] = None) -> None:
        super().__init__(message)
        self.last_value = last_value


class ApiError(ResizeflowError):
    """The control plane rejected a call for a non-transient reason."""

    kind = ErrorKind.API

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class RemoteCommandError(ApiError):
    """A remote command finished in a non-success status."""

    def __init__(self, message: str, status: str, output: str = "") -> None:
        super().__init__(message, code=status)
        self.status = status
        self.output = output


class CapacityExhaustedError(ResizeflowError):
    """Every capacity reservation attempt failed with a transient error."""

    kind = ErrorKind.CAPACITY_EXHAUSTED

    def __init__(self, attempts: int, last_error: Optional[Exception] = None) -> None:
        super().__init__(
            f"Capacity still unavailable after {attempts} attempt(s)"
            + (f": {last_error}" if last_error else "")
        )
        self.attempts = attempts
        self.last_error = last_error


class RunCancelledError(ResizeflowError):
    """The run was cancelled by an operator or exceeded its deadline."""

    kind = ErrorKind.CANCELLED


__all__ = [
    "ErrorKind",
    "ResizeflowError",
    "ConfigurationError",
    "BindingError",
    "TransientCapacityError",
    "WaitTimeoutError",
    "ApiError",
    "RemoteCommandError",
    "CapacityExhaustedError",
    "RunCancelledError",
]
