"""
Standardized API Response Module

Provides consistent error formatting for the booking API.

RESPONSE FORMAT:
    Error:
        {
            "error": {
                "code": "ERROR_CODE",
                "message": "Human-readable message",
                "details": {...}  # Optional extra context
            },
            "status": "error"
        }

ERROR CODES:
    - VALIDATION_ERROR: Request data failed validation
    - NOT_FOUND: Resource not found (or owned by another tenant)
    - SLOT_OCCUPIED: Requested interval collides with an active booking
    - AVAILABILITY_VIOLATION: Requested interval is outside configured availability
    - QUOTA_EXCEEDED: A daily/weekly/monthly booking cap was reached
    - NOTICE_WINDOW_VIOLATION: Too close to the booking start to cancel/reschedule
    - INVALID_TRANSITION: Booking status does not allow the requested action
    - RATE_LIMITED: Too many requests from the same client
"""

from typing import Any, Optional

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Structured error information."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error envelope, used for OpenAPI documentation of error responses."""
    error: ErrorDetail
    status: str = "error"


# ============================================================================
# COMMON ERROR CODES
# ============================================================================

class ErrorCodes:
    """Standard error codes for API responses."""

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"

    # Scheduling conflicts (409 / 422)
    SLOT_OCCUPIED = "SLOT_OCCUPIED"
    AVAILABILITY_VIOLATION = "AVAILABILITY_VIOLATION"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    NOTICE_WINDOW_VIOLATION = "NOTICE_WINDOW_VIOLATION"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Throttling (429)
    RATE_LIMITED = "RATE_LIMITED"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def error_response(
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    """
    Create a standardized error response dict.

    Use this for simple error responses.
    """
    response = {
        "error": {
            "code": code,
            "message": message,
        },
        "status": "error",
    }
    if details:
        response["error"]["details"] = details
    return response
