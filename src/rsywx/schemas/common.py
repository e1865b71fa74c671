"""Common Pydantic schemas used across the API.

This module provides shared schemas for:
- The success envelope every endpoint returns
- Error responses (consistent error format)
- Health checks
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Success Envelope
# =============================================================================


class ApiResponse(BaseModel):
    """Standard success envelope.

    Operations may add metadata next to ``data`` (``pagination``,
    ``date_info``, ``period_info``, ``categories``, ``discovery_info``, ...).

    Attributes:
        success: Always true for successful responses
        data: Operation payload
        cached: Whether the base record came from the cache
    """

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "success": True,
                "data": {"bookid": "00666", "title": "红楼梦", "total_visits": 3},
                "cached": False,
            }
        },
    )

    success: bool = True
    data: Any = None
    cached: bool = False

    @classmethod
    def from_result(cls, result: dict[str, Any]) -> "ApiResponse":
        """Wrap a service result ``{"data", "from_cache", ...}``."""
        extras = {k: v for k, v in result.items() if k not in ("data", "from_cache")}
        return cls(
            data=result.get("data"),
            cached=bool(result.get("from_cache", False)),
            **extras,
        )


# =============================================================================
# Requests
# =============================================================================


class TagSubmission(BaseModel):
    """Body of a tag submission.

    ``tags`` is deliberately untyped here; its shape is checked by the book
    service so malformed payloads get the library's own 400 error.
    """

    tags: Any = Field(None, json_schema_extra={"example": ["经典", "文学"]})


# =============================================================================
# Error Schemas
# =============================================================================


class ErrorDetail(BaseModel):
    """Details of an error response.

    Attributes:
        code: Machine-readable error code (e.g., "BOOK_NOT_FOUND")
        message: Human-readable error description
        request_id: Correlation ID for tracing (optional)
        details: Additional error context (optional)
    """

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error description")
    request_id: str | None = Field(
        None, description="Request correlation ID for tracing"
    )
    details: dict[str, Any] | None = Field(None, description="Additional error context")


class ErrorResponse(BaseModel):
    """Standard error response wrapper.

    All API errors return this format for consistency.
    """

    success: bool = False
    message: str
    error: ErrorDetail

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "message": "Book not found",
                "error": {
                    "code": "BOOK_NOT_FOUND",
                    "message": "Book not found",
                    "request_id": "abc-123-def-456",
                    "details": {"bookid": "99999"},
                },
            }
        }
    )


# =============================================================================
# Health Check Schemas
# =============================================================================


class HealthCheckResponse(BaseModel):
    """Health check endpoint response.

    Attributes:
        status: Overall health status
        checks: Individual service health checks
    """

    status: str = Field(..., pattern="^(ok|degraded|error)$")
    checks: dict[str, str] = Field(
        default_factory=dict, description="Individual service checks"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "ok",
                "checks": {"database": "ok", "cache": "ok"},
            }
        }
    )
