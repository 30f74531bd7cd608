"""
Availability resolution.

Turns recurring weekly rules plus date-specific exceptions into the minute
windows a staff member can be booked in on one UTC date.

Rules are kept as-is (a tenant-wide rule and a staff rule covering the same
minutes both appear); blocking exceptions are applied per candidate interval
by is_blocked() rather than punched out of the windows.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from ..errors import AvailabilityViolationError
from .time_window import ensure_utc, minutes_from_datetime, minutes_from_time, overlaps, utc_weekday

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MinuteWindow:
    """Half-open [start, end) interval in minutes from 00:00 UTC."""

    start: int
    end: int

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end

    def overlaps(self, start: int, end: int) -> bool:
        return overlaps(self.start, self.end, start, end)


@dataclass(frozen=True)
class ResolvedAvailability:
    date: date
    windows: tuple[MinuteWindow, ...] = ()
    blocks: tuple[MinuteWindow, ...] = ()
    full_day_blocked: bool = False

    def is_blocked(self, start: int, end: int) -> bool:
        if self.full_day_blocked:
            return True
        return any(block.overlaps(start, end) for block in self.blocks)

    def fits(self, start: int, end: int) -> bool:
        return any(window.contains(start, end) for window in self.windows)

    @property
    def is_empty(self) -> bool:
        return not self.windows or self.full_day_blocked


def _applies_to_staff(row_staff_id: Optional[int], staff_id: int) -> bool:
    return row_staff_id is None or row_staff_id == staff_id


def resolve_windows(rules: Iterable, exceptions: Iterable, staff_id: int, target_date: date) -> ResolvedAvailability:
    """
    Resolve rules and exceptions for one staff member on one date.

    Rows that do not apply (inactive, other weekday, other staff, other date,
    non-blocking exceptions) are skipped, so callers may pass a superset.
    """
    weekday = utc_weekday(target_date)

    windows = []
    for rule in rules:
        if not rule.is_active or rule.day_of_week != weekday:
            continue
        if not _applies_to_staff(rule.staff_id, staff_id):
            continue
        windows.append(MinuteWindow(minutes_from_time(rule.start_time), minutes_from_time(rule.end_time)))
    windows.sort(key=lambda w: (w.start, w.end))

    blocks = []
    full_day_blocked = False
    for exception in exceptions:
        if exception.date != target_date or not exception.is_unavailable:
            continue
        if not _applies_to_staff(exception.staff_id, staff_id):
            continue
        if exception.is_full_day:
            full_day_blocked = True
            continue
        blocks.append(MinuteWindow(minutes_from_time(exception.start_time), minutes_from_time(exception.end_time)))

    return ResolvedAvailability(
        date=target_date,
        windows=tuple(windows),
        blocks=tuple(blocks),
        full_day_blocked=full_day_blocked,
    )


class AvailabilityResolver:
    """Loads rules/exceptions through the repositories and resolves them."""

    def __init__(self, rules, exceptions):
        self.rules = rules
        self.exceptions = exceptions

    async def resolve(self, tenant_id: int, staff_id: int, target_date: date) -> ResolvedAvailability:
        rules = await self.rules.list_for_weekday(tenant_id, staff_id, utc_weekday(target_date))
        exceptions = await self.exceptions.list_blocking_for_date(tenant_id, staff_id, target_date)
        return resolve_windows(rules, exceptions, staff_id, target_date)

    async def ensure_within_availability(
        self,
        tenant_id: int,
        staff_id: int,
        start_at: datetime,
        end_at: datetime,
    ) -> ResolvedAvailability:
        start_at = ensure_utc(start_at)
        end_at = ensure_utc(end_at)
        availability = await self.resolve(tenant_id, staff_id, start_at.date())

        # End minute is not wrapped, so an interval crossing midnight never fits.
        start_minute = minutes_from_datetime(start_at)
        end_minute = start_minute + int((end_at - start_at).total_seconds() // 60)

        if not availability.fits(start_minute, end_minute):
            raise AvailabilityViolationError(
                "The requested time is outside the staff member's availability.",
                {"start_at": start_at.isoformat(), "end_at": end_at.isoformat()},
            )
        if availability.is_blocked(start_minute, end_minute):
            raise AvailabilityViolationError(
                "The requested time is blocked by an availability exception.",
                {"start_at": start_at.isoformat(), "end_at": end_at.isoformat()},
            )
        return availability
