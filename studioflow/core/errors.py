"""Error taxonomy and classification for task lifecycle operations."""

from enum import Enum

from pydantic import BaseModel


class ValidationFailedError(ValueError):
    """Missing or malformed fields. Carries every violation, not just the first."""

    def __init__(self, errors: list[str], message: str = "Validation failed") -> None:
        super().__init__(message)
        self.errors = list(errors)


class NotFoundError(KeyError):
    """Entity absent, or outside the actor's organization (reported identically)."""

    def __str__(self) -> str:
        # KeyError repr-quotes its argument
        return str(self.args[0]) if self.args else "Not found"


class AccessDeniedError(PermissionError):
    """The actor's role does not permit the requested view or action."""


class InvalidTransitionError(ValueError):
    """Requested status is not in the allowed set."""


class DependencyFailureError(RuntimeError):
    """A secondary dependency (workload counters, notification dispatch) failed."""


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_VALIDATION_FAILED = "ERR_VALIDATION_FAILED"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_ACCESS_DENIED = "ERR_ACCESS_DENIED"
    ERR_INVALID_TRANSITION = "ERR_INVALID_TRANSITION"
    ERR_DEPENDENCY_FAILURE = "ERR_DEPENDENCY_FAILURE"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity
    status_code: int
    details: list[str] = []


def classify_error_with_response(exception: Exception) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, severity and HTTP status
    """
    if isinstance(exception, ValidationFailedError):
        return ErrorResponse(
            code=ErrorCode.ERR_VALIDATION_FAILED,
            message=str(exception),
            suggestion="Fix the listed fields and try again.",
            severity=ErrorSeverity.LOW,
            status_code=400,
            details=exception.errors,
        )

    if isinstance(exception, InvalidTransitionError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_TRANSITION,
            message=str(exception),
            suggestion="Choose one of the allowed task statuses.",
            severity=ErrorSeverity.LOW,
            status_code=400,
        )

    if isinstance(exception, NotFoundError):
        return ErrorResponse(
            code=ErrorCode.ERR_NOT_FOUND,
            message=str(exception),
            suggestion="Check the identifier and your organization.",
            severity=ErrorSeverity.LOW,
            status_code=404,
        )

    if isinstance(exception, AccessDeniedError):
        return ErrorResponse(
            code=ErrorCode.ERR_ACCESS_DENIED,
            message=str(exception),
            suggestion="Ask a Design Head or an administrator if you need this access.",
            severity=ErrorSeverity.MEDIUM,
            status_code=403,
        )

    if isinstance(exception, DependencyFailureError):
        return ErrorResponse(
            code=ErrorCode.ERR_DEPENDENCY_FAILURE,
            message=str(exception),
            suggestion="The change was saved. Secondary updates will be retried.",
            severity=ErrorSeverity.MEDIUM,
            status_code=502,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="Internal server error",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.HIGH,
        status_code=500,
    )
