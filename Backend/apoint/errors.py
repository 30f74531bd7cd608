"""
Booking engine error taxonomy.

Every failure the engine surfaces to a caller is a BookingEngineError subclass.
Callers branch on the type (never on the message): SlotOccupiedError in
particular is what triggers auto-waitlisting.

HTTP mapping lives on the class (status_code / code) so the API layer can
render any of them with a single exception handler.
"""

from enum import Enum
from typing import Any, Optional

from .core.responses import ErrorCodes


class BookingEngineError(Exception):
    """Base class for all errors raised by the booking engine."""

    status_code: int = 400
    code: str = ErrorCodes.VALIDATION_ERROR
    retryable: bool = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(BookingEngineError):
    """Malformed input or a reference to a service/staff the tenant cannot use."""

    status_code = 400
    code = ErrorCodes.VALIDATION_ERROR


class NotFoundError(BookingEngineError):
    """Entity is absent or belongs to another tenant (the two are indistinguishable)."""

    status_code = 404
    code = ErrorCodes.NOT_FOUND


class SlotOccupiedError(BookingEngineError):
    """The exact requested interval collides with an active booking for that staff."""

    status_code = 409
    code = ErrorCodes.SLOT_OCCUPIED
    retryable = True

    def __init__(
        self,
        message: str = "The requested time is already taken for this staff member.",
        conflicting_booking_ids: Optional[list[str]] = None,
    ):
        self.conflicting_booking_ids = conflicting_booking_ids or []
        super().__init__(message, {"conflicting_booking_ids": self.conflicting_booking_ids})


class AvailabilityViolationError(BookingEngineError):
    """Requested interval is outside configured rules or inside a blocking exception."""

    status_code = 422
    code = ErrorCodes.AVAILABILITY_VIOLATION


class QuotaLimit(str, Enum):
    """Which booking cap was reached."""

    MONTHLY = "monthly"
    DAILY = "daily"
    WEEKLY = "weekly"


class QuotaExceededError(BookingEngineError):
    """A monthly plan cap or a tenant daily/weekly cap has been reached."""

    status_code = 409
    code = ErrorCodes.QUOTA_EXCEEDED

    def __init__(self, limit: QuotaLimit, cap: int, count: int, message: Optional[str] = None):
        self.limit = limit
        self.cap = cap
        self.count = count
        super().__init__(
            message or f"Maximum {limit.value} bookings reached ({count}/{cap}).",
            {"limit": limit.value, "cap": cap, "count": count},
        )


class NoticeWindowViolationError(BookingEngineError):
    """Cancel/reschedule attempted inside the tenant's minimum notice period."""

    status_code = 409
    code = ErrorCodes.NOTICE_WINDOW_VIOLATION

    def __init__(self, action: str, required_hours: int):
        self.action = action
        self.required_hours = required_hours
        super().__init__(
            f"Cannot {action} with less than {required_hours} hours notice.",
            {"action": action, "required_hours": required_hours},
        )


class InvalidTransitionError(BookingEngineError):
    """Lifecycle transition not allowed from the booking's current status."""

    status_code = 409
    code = ErrorCodes.INVALID_TRANSITION

    def __init__(self, current_status: str, action: str):
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} a booking with status '{current_status}'.",
            {"current_status": current_status, "action": action},
        )
