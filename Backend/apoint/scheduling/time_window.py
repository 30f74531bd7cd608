"""
Minute-of-day and calendar arithmetic used by the scheduling core.

All day, week and month boundaries are computed in UTC. Weekdays are
numbered 0 = Sunday through 6 = Saturday, matching AvailabilityRule.day_of_week.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from ..errors import ValidationError

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
MINUTES_PER_DAY = 24 * 60


def assert_valid_time(value: str, field: str = "time") -> str:
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValidationError(
            f"{field} must use HH:mm format (00:00-23:59).",
            {"field": field, "value": value},
        )
    return value


def minutes_from_time(value: str) -> int:
    """'09:30' -> 570"""
    assert_valid_time(value)
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def time_from_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_from_datetime(value: datetime) -> int:
    value = ensure_utc(value)
    return value.hour * 60 + value.minute


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """Half-open interval overlap test. Works for ints and datetimes alike."""
    return a_start < b_end and b_start < a_end


def validate_time_window(start_time: str, end_time: str) -> None:
    assert_valid_time(start_time, "start_time")
    assert_valid_time(end_time, "end_time")
    if minutes_from_time(end_time) <= minutes_from_time(start_time):
        raise ValidationError(
            "end_time must be later than start_time.",
            {"start_time": start_time, "end_time": end_time},
        )


def validate_optional_time_window(start_time: Optional[str], end_time: Optional[str]) -> None:
    """Both bounds or neither (a full-day window)."""
    if start_time is None and end_time is None:
        return
    if start_time is None or end_time is None:
        raise ValidationError(
            "start_time and end_time must be provided together.",
            {"start_time": start_time, "end_time": end_time},
        )
    validate_time_window(start_time, end_time)


# ────────────────────────────────────────────────────────────────
# Calendar helpers (UTC)
# ────────────────────────────────────────────────────────────────

def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_weekday(value: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (value.weekday() + 1) % 7


def combine_utc(day: date, minutes: int) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=timezone.utc) + timedelta(minutes=minutes)


def utc_day_bounds(value: datetime) -> tuple[datetime, datetime]:
    start = combine_utc(ensure_utc(value).date(), 0)
    return start, start + timedelta(days=1)


def utc_week_bounds(value: datetime) -> tuple[datetime, datetime]:
    """ISO week: Monday 00:00 to the following Monday 00:00."""
    day_start, _ = utc_day_bounds(value)
    start = day_start - timedelta(days=day_start.weekday())
    return start, start + timedelta(days=7)


def utc_month_bounds(value: datetime) -> tuple[datetime, datetime]:
    value = ensure_utc(value)
    start = datetime(value.year, value.month, 1, tzinfo=timezone.utc)
    if value.month == 12:
        end = datetime(value.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(value.year, value.month + 1, 1, tzinfo=timezone.utc)
    return start, end


def parse_iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError("date must use YYYY-MM-DD format.", {"date": value})
