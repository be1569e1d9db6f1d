"""Engine exceptions and error classification utilities."""

from enum import Enum

from pydantic import BaseModel, ValidationError


class ErrorCategory(Enum):
    """Categories of errors that can occur in the occurrence engine."""

    INVALID_DATE = "invalid_date"
    MISSING_MANUAL_NEXT_DUE = "missing_manual_next_due"
    NEXT_DUE_BEFORE_CURRENT = "next_due_before_current"
    UNSUPPORTED_FREQUENCY = "unsupported_frequency"
    DESTRUCTIVE_EDIT = "destructive_edit"
    RECORD_NOT_FOUND = "record_not_found"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Date errors
    ERR_INVALID_DATE = "ERR_INVALID_DATE"

    # Completion errors
    ERR_MISSING_MANUAL_NEXT_DUE = "ERR_MISSING_MANUAL_NEXT_DUE"
    ERR_NEXT_DUE_BEFORE_CURRENT = "ERR_NEXT_DUE_BEFORE_CURRENT"

    # Rule errors
    ERR_UNSUPPORTED_FREQUENCY = "ERR_UNSUPPORTED_FREQUENCY"
    ERR_DESTRUCTIVE_EDIT = "ERR_DESTRUCTIVE_EDIT"

    # Lookup / payload errors
    ERR_RECORD_NOT_FOUND = "ERR_RECORD_NOT_FOUND"
    ERR_VALIDATION = "ERR_VALIDATION"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class TicklerError(Exception):
    """Base class for errors raised by the occurrence engine."""

    category: ErrorCategory = ErrorCategory.UNKNOWN


class InvalidDateError(TicklerError, ValueError):
    """A date string is unparseable or malformed."""

    category = ErrorCategory.INVALID_DATE


class MissingManualNextDueError(TicklerError, ValueError):
    """A manual-next-due occurrence was completed without a next due date."""

    category = ErrorCategory.MISSING_MANUAL_NEXT_DUE


class NextDueBeforeCurrentError(TicklerError, ValueError):
    """The supplied next due date precedes the occurrence's scheduled date."""

    category = ErrorCategory.NEXT_DUE_BEFORE_CURRENT


class UnsupportedFrequencyError(TicklerError):
    """The projector does not recognize the rule shape (e.g. weekly with no days)."""

    category = ErrorCategory.UNSUPPORTED_FREQUENCY


class DestructiveEditError(TicklerError):
    """An edit would delete completed occurrences and was not confirmed."""

    category = ErrorCategory.DESTRUCTIVE_EDIT

    def __init__(self, message: str, *, done_dates: list[str]) -> None:
        super().__init__(message)
        self.done_dates = done_dates


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


def classify_error_with_response(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, InvalidDateError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_DATE,
            message=f"Invalid date: {exception}",
            suggestion="Use the YYYY-MM-DD format.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, MissingManualNextDueError):
        return ErrorResponse(
            code=ErrorCode.ERR_MISSING_MANUAL_NEXT_DUE,
            message="This task needs the next due date when it is completed.",
            suggestion="Supply manual_next_due with the completion.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, NextDueBeforeCurrentError):
        return ErrorResponse(
            code=ErrorCode.ERR_NEXT_DUE_BEFORE_CURRENT,
            message=str(exception),
            suggestion="Pick a next due date on or after the current scheduled date.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, UnsupportedFrequencyError):
        return ErrorResponse(
            code=ErrorCode.ERR_UNSUPPORTED_FREQUENCY,
            message=str(exception),
            suggestion="Check the recurrence settings (e.g. pick at least one weekday).",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, DestructiveEditError):
        return ErrorResponse(
            code=ErrorCode.ERR_DESTRUCTIVE_EDIT,
            message=str(exception),
            suggestion="Review the preview and resubmit with confirm_destructive=true to proceed.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, KeyError):
        return ErrorResponse(
            code=ErrorCode.ERR_RECORD_NOT_FOUND,
            message="The requested task or occurrence does not exist.",
            suggestion="Refresh the list and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, ValidationError | ValueError):
        return ErrorResponse(
            code=ErrorCode.ERR_VALIDATION,
            message=f"Invalid request: {exception}",
            suggestion="Check the submitted fields.",
            severity=ErrorSeverity.LOW,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again. If the problem persists, check the application log.",
        severity=ErrorSeverity.MEDIUM,
    )
