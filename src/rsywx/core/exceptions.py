"""Exception hierarchy for the library API.

Every error raised on purpose by the service layer derives from
``RsywxError`` so the HTTP layer can map it to a status code and a
consistent JSON body without knowing about individual failure cases.

Usage:
    from rsywx.core.exceptions import BookNotFoundError

    raise BookNotFoundError(bookid="00666")
"""

from typing import Any


class RsywxError(Exception):
    """Base exception for all library API errors.

    Attributes:
        code: Machine-readable error code (e.g., "BOOK_NOT_FOUND")
        message: Human-readable error message
        status_code: HTTP status code to return
        details: Additional error details (optional)
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if message:
            self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Convert exception to the API error body.

        The top-level ``success``/``message`` pair is what API clients of the
        library have always read; ``error`` carries the structured form.
        """
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if request_id:
            error["request_id"] = request_id
        if self.details:
            error["details"] = self.details
        return {"success": False, "message": self.message, "error": error}


# =============================================================================
# Resource Not Found Errors (404)
# =============================================================================


class NotFoundError(RsywxError):
    """Base class for resource not found errors."""

    code: str = "NOT_FOUND"
    message: str = "Resource not found"
    status_code: int = 404


class BookNotFoundError(NotFoundError):
    """Raised when a book does not exist or sits in an invalid location."""

    code: str = "BOOK_NOT_FOUND"
    message: str = "Book not found"

    def __init__(self, bookid: str | None = None, message: str | None = None) -> None:
        details: dict[str, Any] = {}
        if bookid:
            details["bookid"] = bookid
        super().__init__(message=message, details=details or None)


# =============================================================================
# Authentication Errors (401)
# =============================================================================


class AuthenticationError(RsywxError):
    """Raised when a request cannot be authenticated."""

    code: str = "AUTHENTICATION_FAILED"
    message: str = "Authentication failed"
    status_code: int = 401


class InvalidAPIKeyError(AuthenticationError):
    """Raised when the API key is missing or wrong."""

    code: str = "INVALID_API_KEY"
    message: str = "Invalid or missing API key"


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(RsywxError):
    """Raised when input validation fails."""

    code: str = "VALIDATION_ERROR"
    message: str = "Validation error"
    status_code: int = 400

    def __init__(
        self,
        message: str | None = None,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if details is None:
            details = {}
        if field:
            details["field"] = field
        super().__init__(message=message, details=details or None)


class InvalidSearchTypeError(ValidationError):
    """Raised when a list/search request names an unknown search type."""

    code: str = "INVALID_SEARCH_TYPE"
    message: str = "Invalid type"

    def __init__(self, search_type: str, allowed: list[str] | tuple[str, ...]) -> None:
        super().__init__(
            message=(
                f"Invalid type '{search_type}'. Allowed: {', '.join(allowed)}"
            ),
            field="type",
            details={"type": search_type},
        )


class InvalidTagPayloadError(ValidationError):
    """Raised when a tag submission is malformed."""

    code: str = "INVALID_TAG_PAYLOAD"
    message: str = "Invalid tag payload"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message=message, field="tags")


class InvalidDateError(ValidationError):
    """Raised when a month/day pair is not a calendar date."""

    code: str = "INVALID_DATE"
    message: str = "Invalid month/day"

    def __init__(self, month: int, day: int) -> None:
        super().__init__(
            message=f"Invalid month/day: {month}/{day}",
            details={"month": month, "day": day},
        )


# =============================================================================
# Programming Errors (500)
# =============================================================================


class QueryModeConflictError(RsywxError):
    """Raised when two query modes are applied to one query builder."""

    code: str = "QUERY_MODE_CONFLICT"
    message: str = "A query builder accepts a single mode"

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            message=(
                f"Query builder already configured for '{current}', "
                f"cannot switch to '{requested}'"
            ),
            details={"current": current, "requested": requested},
        )
