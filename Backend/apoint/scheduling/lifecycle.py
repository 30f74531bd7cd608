"""
Booking lifecycle rules.

    create          -> confirmed
    confirmed       -> cancelled | rescheduled
    rescheduled     -> cancelled | rescheduled
    pending         -> confirmed | cancelled | rescheduled   (reserved, not produced by create)
    cancelled       -> (terminal; cancelling again is a no-op)
    completed       -> (terminal)
    no_show         -> (terminal)
"""

from datetime import datetime, timedelta

from ..errors import InvalidTransitionError, NoticeWindowViolationError
from ..models import BookingStatus
from .time_window import ensure_utc

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.RESCHEDULED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.RESCHEDULED}),
    BookingStatus.RESCHEDULED: frozenset({BookingStatus.CANCELLED, BookingStatus.RESCHEDULED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return BookingStatus(target) in ALLOWED_TRANSITIONS.get(BookingStatus(current), frozenset())


def ensure_can_cancel(booking) -> bool:
    """
    Returns False when the booking is already cancelled (nothing to do),
    True when it may be cancelled. Raises for completed / no_show.
    """
    status = BookingStatus(booking.status)
    if status == BookingStatus.CANCELLED:
        return False
    if not can_transition(status, BookingStatus.CANCELLED):
        raise InvalidTransitionError(status.value, "cancel")
    return True


def ensure_can_reschedule(booking) -> None:
    status = BookingStatus(booking.status)
    if not can_transition(status, BookingStatus.RESCHEDULED):
        raise InvalidTransitionError(status.value, "reschedule")


def ensure_notice_window(start_at: datetime, notice_hours: int, now: datetime, action: str) -> None:
    """Reject when `now` is later than start_at minus the notice period. 0 hours disables the check."""
    if not notice_hours:
        return
    latest_allowed = ensure_utc(start_at) - timedelta(hours=notice_hours)
    if ensure_utc(now) > latest_allowed:
        raise NoticeWindowViolationError(action, notice_hours)
