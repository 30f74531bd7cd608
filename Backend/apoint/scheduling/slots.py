"""
Slot generation.

Candidate start times are enumerated every SLOT_STEP_MINUTES inside each
resolved window. The stride does not depend on service duration, so two
adjacent slots can cover overlapping time: slots are candidate starts, not a
partition of the day.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from .availability import ResolvedAvailability
from .collision import has_collision
from .time_window import combine_utc

SLOT_STEP_MINUTES = 15


@dataclass(frozen=True)
class Slot:
    start_at: datetime
    end_at: datetime

    def to_dict(self) -> dict:
        return {"start_at": self.start_at.isoformat(), "end_at": self.end_at.isoformat()}


def generate_slots(
    availability: ResolvedAvailability,
    duration_minutes: int,
    bookings: Iterable = (),
    buffer_minutes: int = 0,
    step_minutes: int = SLOT_STEP_MINUTES,
) -> list[Slot]:
    if availability.full_day_blocked or duration_minutes <= 0:
        return []

    bookings = list(bookings)
    by_start: dict[datetime, Slot] = {}

    for window in availability.windows:
        cursor = window.start
        while cursor + duration_minutes <= window.end:
            slot_end = cursor + duration_minutes
            if not availability.is_blocked(cursor, slot_end):
                start_at = combine_utc(availability.date, cursor)
                end_at = start_at + timedelta(minutes=duration_minutes)
                if start_at not in by_start and not has_collision(start_at, end_at, bookings, buffer_minutes):
                    by_start[start_at] = Slot(start_at=start_at, end_at=end_at)
            cursor += step_minutes

    return sorted(by_start.values(), key=lambda slot: slot.start_at)
