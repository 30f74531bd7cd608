"""
Tenant-scoped query helpers.

These functions provide tenant-isolated database queries.
ALL queries for tenant data MUST use these helpers or include an explicit
tenant_id filter. An id that belongs to another tenant behaves exactly like
an id that does not exist.

Usage:
    from apoint.tenancy.queries import require_owned, scoped_select

    staff = await require_owned(session, Staff, staff_id, ctx.tenant_id)
    stmt = scoped_select(Service, tenant_id).where(Service.active.is_(True))
"""

from datetime import date, datetime
from typing import Optional, Sequence, Type, TypeVar
from uuid import UUID

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

from ..models import (
    ACTIVE_BOOKING_STATUSES,
    AvailabilityException,
    AvailabilityRule,
    Booking,
    WaitlistEntry,
    WaitlistStatus,
)

T = TypeVar("T", bound=DeclarativeBase)


# ────────────────────────────────────────────────────────────────
# Composable Query Helpers
# ────────────────────────────────────────────────────────────────

def scoped_select(model: Type[T], tenant_id: int) -> Select:
    """
    Create a SELECT statement pre-filtered by tenant_id.

    Usage:
        stmt = scoped_select(Service, tenant_id).where(Service.active.is_(True))
        result = await session.execute(stmt)
    """
    return select(model).where(model.tenant_id == tenant_id)


def tenant_filter(model: Type[T], tenant_id: int):
    """Return a SQLAlchemy filter clause for tenant_id."""
    return model.tenant_id == tenant_id


def staff_scope_filter(model: Type[T], staff_id: int):
    """Rows for this staff member or tenant-wide rows (staff_id IS NULL)."""
    return or_(model.staff_id == staff_id, model.staff_id.is_(None))


async def require_owned(
    session: AsyncSession,
    model: Type[T],
    entity_id,
    tenant_id: int,
) -> Optional[T]:
    """
    Fetch an entity by ID, validating tenant ownership.
    Returns None if not found or owned by another tenant.
    """
    result = await session.execute(
        select(model).where(
            model.id == entity_id,
            model.tenant_id == tenant_id,
        )
    )
    return result.scalar_one_or_none()


# ────────────────────────────────────────────────────────────────
# Availability Queries
# ────────────────────────────────────────────────────────────────

async def list_rules_for_weekday(
    session: AsyncSession,
    tenant_id: int,
    staff_id: int,
    day_of_week: int,
) -> Sequence[AvailabilityRule]:
    """Active rules for a weekday that apply to this staff member or to all staff."""
    result = await session.execute(
        scoped_select(AvailabilityRule, tenant_id)
        .where(
            AvailabilityRule.day_of_week == day_of_week,
            AvailabilityRule.is_active.is_(True),
            staff_scope_filter(AvailabilityRule, staff_id),
        )
        .order_by(AvailabilityRule.start_time, AvailabilityRule.id)
    )
    return result.scalars().all()


async def list_blocking_exceptions_for_date(
    session: AsyncSession,
    tenant_id: int,
    staff_id: int,
    target_date: date,
) -> Sequence[AvailabilityException]:
    result = await session.execute(
        scoped_select(AvailabilityException, tenant_id)
        .where(
            AvailabilityException.date == target_date,
            AvailabilityException.is_unavailable.is_(True),
            staff_scope_filter(AvailabilityException, staff_id),
        )
        .order_by(AvailabilityException.id)
    )
    return result.scalars().all()


# ────────────────────────────────────────────────────────────────
# Booking Queries
# ────────────────────────────────────────────────────────────────

def active_booking_filter():
    return Booking.status.in_(ACTIVE_BOOKING_STATUSES)


async def list_active_bookings_overlapping(
    session: AsyncSession,
    tenant_id: int,
    staff_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[UUID] = None,
) -> Sequence[Booking]:
    """Active bookings for a staff member whose [start_at, end_at) intersects [start, end)."""
    stmt = scoped_select(Booking, tenant_id).where(
        Booking.staff_id == staff_id,
        active_booking_filter(),
        Booking.start_at < end,
        Booking.end_at > start,
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    result = await session.execute(stmt.order_by(Booking.start_at))
    return result.scalars().all()


async def count_active_bookings_starting_between(
    session: AsyncSession,
    tenant_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[UUID] = None,
) -> int:
    """Count active bookings (any staff) with start_at in [start, end)."""
    stmt = (
        select(func.count())
        .select_from(Booking)
        .where(
            tenant_filter(Booking, tenant_id),
            active_booking_filter(),
            Booking.start_at >= start,
            Booking.start_at < end,
        )
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def list_active_bookings_starting_between(
    session: AsyncSession,
    tenant_id: int,
    start: datetime,
    end: datetime,
) -> Sequence[Booking]:
    result = await session.execute(
        scoped_select(Booking, tenant_id)
        .where(
            active_booking_filter(),
            Booking.start_at >= start,
            Booking.start_at < end,
        )
        .order_by(Booking.start_at)
    )
    return result.scalars().all()


# ────────────────────────────────────────────────────────────────
# Waitlist Queries
# ────────────────────────────────────────────────────────────────

def waiting_entries_for(tenant_id: int, service_id: int, staff_id: int) -> Select:
    return scoped_select(WaitlistEntry, tenant_id).where(
        WaitlistEntry.service_id == service_id,
        WaitlistEntry.staff_id == staff_id,
        WaitlistEntry.status == WaitlistStatus.WAITING,
    )
