"""Typed domain errors and their classification into client-facing responses."""

from enum import Enum

from pydantic import BaseModel


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Lookup errors
    ERR_NOT_FOUND = "ERR_NOT_FOUND"

    # Input errors
    ERR_INVALID_INPUT = "ERR_INVALID_INPUT"

    # State errors
    ERR_CONFLICT = "ERR_CONFLICT"

    # Storage errors
    ERR_STORAGE_FAILURE = "ERR_STORAGE_FAILURE"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class EVVError(Exception):
    """Base class for every error raised by the EVV core."""

    code: str = ErrorCode.ERR_UNKNOWN


class NotFoundError(EVVError):
    """A referenced schedule, visit or task does not exist."""

    code = ErrorCode.ERR_NOT_FOUND


class InvalidInputError(EVVError):
    """Input failed a domain rule (enum, format, range, ordering or time window)."""

    code = ErrorCode.ERR_INVALID_INPUT

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ConflictError(EVVError):
    """The request is valid but clashes with current state."""

    code = ErrorCode.ERR_CONFLICT


class StorageError(EVVError):
    """The data-access layer failed for a reason opaque to the core.

    The originating exception is kept as ``__cause__``.
    """

    code = ErrorCode.ERR_STORAGE_FAILURE


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity
    field: str | None = None


def classify_error_with_response(exception: BaseException) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised by a service call

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, NotFoundError):
        return ErrorResponse(
            code=ErrorCode.ERR_NOT_FOUND,
            message=str(exception),
            suggestion="Check the identifier and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, InvalidInputError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_INPUT,
            message=str(exception),
            suggestion="Correct the highlighted value and resubmit.",
            severity=ErrorSeverity.LOW,
            field=exception.field,
        )

    if isinstance(exception, ConflictError):
        return ErrorResponse(
            code=ErrorCode.ERR_CONFLICT,
            message=str(exception),
            suggestion="Refresh the schedule to see its current state.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, StorageError):
        return ErrorResponse(
            code=ErrorCode.ERR_STORAGE_FAILURE,
            message="The data store is currently unavailable.",
            suggestion="Please try again later. If the problem persists, contact support.",
            severity=ErrorSeverity.HIGH,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.CRITICAL,
    )
