"""
Collision detection between a candidate interval and existing bookings.

The buffer is applied once, to the candidate: [start - buffer, end + buffer)
is compared with the raw stored booking intervals. Because every booking was
itself checked that way when it was created, the gap holds on both sides.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional
from uuid import UUID

from ..errors import SlotOccupiedError
from ..models import ACTIVE_BOOKING_STATUSES


def expand_by_buffer(start: datetime, end: datetime, buffer_minutes: int) -> tuple[datetime, datetime]:
    buffer = timedelta(minutes=max(buffer_minutes or 0, 0))
    return start - buffer, end + buffer


def find_collisions(
    start: datetime,
    end: datetime,
    bookings: Iterable,
    buffer_minutes: int = 0,
    exclude_booking_id: Optional[UUID] = None,
) -> list:
    overlap_start, overlap_end = expand_by_buffer(start, end, buffer_minutes)
    return [
        booking
        for booking in bookings
        if booking.status in ACTIVE_BOOKING_STATUSES
        and (exclude_booking_id is None or booking.id != exclude_booking_id)
        and booking.start_at < overlap_end
        and overlap_start < booking.end_at
    ]


def has_collision(start: datetime, end: datetime, bookings: Iterable, buffer_minutes: int = 0) -> bool:
    return bool(find_collisions(start, end, bookings, buffer_minutes))


class CollisionDetector:
    def __init__(self, bookings):
        self.bookings = bookings

    async def ensure_free(
        self,
        tenant_id: int,
        staff_id: int,
        start_at: datetime,
        end_at: datetime,
        buffer_minutes: int,
        exclude_booking_id: Optional[UUID] = None,
    ) -> None:
        """Raise SlotOccupiedError if the buffered interval touches an active booking."""
        overlap_start, overlap_end = expand_by_buffer(start_at, end_at, buffer_minutes)
        candidates = await self.bookings.list_active_overlapping(
            tenant_id, staff_id, overlap_start, overlap_end, exclude_booking_id
        )
        collisions = find_collisions(start_at, end_at, candidates, buffer_minutes, exclude_booking_id)
        if collisions:
            raise SlotOccupiedError(conflicting_booking_ids=[str(b.id) for b in collisions])
