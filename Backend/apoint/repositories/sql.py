"""
SQLAlchemy (AsyncSession) implementations of the scheduling ports.

All repositories of one SqlSchedulingStore share its session, so whatever
runs inside staff_guard() is one transaction:

    async with store.staff_guard(tenant_id, staff_id):
        ...checks and writes...
    # committed here; rolled back if the block raised

On PostgreSQL the guard also takes pg_advisory_xact_lock keyed by
(tenant_id, staff_id), which serializes check-and-write across processes
and is released by the commit/rollback. With tenant_wide=True a tenant-level
advisory lock is taken first, so quota counts stay exact across staff.
"""

import hashlib
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, func, or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import (
    AvailabilityException,
    AvailabilityRule,
    Booking,
    Service,
    Staff,
    Tenant,
    WaitlistEntry,
)
from ..scheduling.locks import InProcessStaffLocks, staff_locks
from ..scheduling.ports import TenantSettings
from ..tenancy.queries import (
    count_active_bookings_starting_between,
    list_active_bookings_overlapping,
    list_active_bookings_starting_between,
    list_blocking_exceptions_for_date,
    list_rules_for_weekday,
    require_owned,
    scoped_select,
    waiting_entries_for,
)

logger = logging.getLogger(__name__)


def advisory_lock_key(tenant_id: int, staff_id: int) -> int:
    """Stable signed 64-bit key for pg_advisory_xact_lock."""
    digest = hashlib.blake2b(f"{tenant_id}:{staff_id}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def tenant_advisory_lock_key(tenant_id: int) -> int:
    """Key for the tenant-wide lock taken around quota-counted writes."""
    digest = hashlib.blake2b(f"tenant:{tenant_id}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class _SqlRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _persist(self, obj):
        self.session.add(obj)
        await self.session.flush()
        return obj


# ────────────────────────────────────────────────────────────────
# Tenants, staff, services
# ────────────────────────────────────────────────────────────────

class SqlTenantSettingsProvider(_SqlRepository):
    async def get_settings(self, tenant_id: int) -> Optional[TenantSettings]:
        result = await self.session.execute(select(Tenant).where(Tenant.id == tenant_id))
        tenant = result.scalar_one_or_none()
        return TenantSettings.from_tenant(tenant) if tenant is not None else None

    async def list_reminder_tenant_ids(self) -> Sequence[int]:
        result = await self.session.execute(
            select(Tenant.id).where(Tenant.reminder_hours_before > 0).order_by(Tenant.id)
        )
        return list(result.scalars().all())


class SqlStaffDirectory(_SqlRepository):
    async def get(self, tenant_id: int, staff_id: int) -> Optional[Staff]:
        return await require_owned(self.session, Staff, staff_id, tenant_id)

    async def find_active(self, tenant_id: int, staff_id: int) -> Optional[Staff]:
        result = await self.session.execute(
            scoped_select(Staff, tenant_id).where(Staff.id == staff_id, Staff.active.is_(True))
        )
        return result.scalar_one_or_none()


class SqlServiceCatalog(_SqlRepository):
    async def get(self, tenant_id: int, service_id: int) -> Optional[Service]:
        return await require_owned(self.session, Service, service_id, tenant_id)

    async def find_active(self, tenant_id: int, service_id: int) -> Optional[Service]:
        result = await self.session.execute(
            scoped_select(Service, tenant_id).where(Service.id == service_id, Service.active.is_(True))
        )
        return result.scalar_one_or_none()


# ────────────────────────────────────────────────────────────────
# Availability
# ────────────────────────────────────────────────────────────────

class SqlRuleRepository(_SqlRepository):
    async def list_for_weekday(self, tenant_id: int, staff_id: int, day_of_week: int) -> Sequence[AvailabilityRule]:
        return await list_rules_for_weekday(self.session, tenant_id, staff_id, day_of_week)

    async def list_for_tenant(self, tenant_id: int, staff_id: Optional[int] = None) -> Sequence[AvailabilityRule]:
        stmt = scoped_select(AvailabilityRule, tenant_id)
        if staff_id is not None:
            stmt = stmt.where(AvailabilityRule.staff_id == staff_id)
        result = await self.session.execute(
            stmt.order_by(AvailabilityRule.day_of_week, AvailabilityRule.start_time, AvailabilityRule.id)
        )
        return result.scalars().all()

    async def get(self, tenant_id: int, rule_id: int) -> Optional[AvailabilityRule]:
        return await require_owned(self.session, AvailabilityRule, rule_id, tenant_id)

    async def add(self, rule: AvailabilityRule) -> AvailabilityRule:
        return await self._persist(rule)

    async def save(self, rule: AvailabilityRule) -> AvailabilityRule:
        return await self._persist(rule)

    async def delete(self, rule: AvailabilityRule) -> None:
        await self.session.delete(rule)
        await self.session.flush()


class SqlExceptionRepository(_SqlRepository):
    async def list_blocking_for_date(
        self, tenant_id: int, staff_id: int, target_date: date
    ) -> Sequence[AvailabilityException]:
        return await list_blocking_exceptions_for_date(self.session, tenant_id, staff_id, target_date)

    async def list_for_tenant(
        self, tenant_id: int, staff_id: Optional[int] = None
    ) -> Sequence[AvailabilityException]:
        stmt = scoped_select(AvailabilityException, tenant_id)
        if staff_id is not None:
            stmt = stmt.where(AvailabilityException.staff_id == staff_id)
        result = await self.session.execute(stmt.order_by(AvailabilityException.date, AvailabilityException.id))
        return result.scalars().all()

    async def get(self, tenant_id: int, exception_id: int) -> Optional[AvailabilityException]:
        return await require_owned(self.session, AvailabilityException, exception_id, tenant_id)

    async def add(self, exception: AvailabilityException) -> AvailabilityException:
        return await self._persist(exception)

    async def save(self, exception: AvailabilityException) -> AvailabilityException:
        return await self._persist(exception)

    async def delete(self, exception: AvailabilityException) -> None:
        await self.session.delete(exception)
        await self.session.flush()


# ────────────────────────────────────────────────────────────────
# Bookings and waitlist
# ────────────────────────────────────────────────────────────────

class SqlBookingRepository(_SqlRepository):
    async def get(self, tenant_id: int, booking_id: UUID) -> Optional[Booking]:
        # populate_existing: re-reads inside the staff guard must see committed state.
        result = await self.session.execute(
            scoped_select(Booking, tenant_id)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_active_overlapping(
        self,
        tenant_id: int,
        staff_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[UUID] = None,
    ) -> Sequence[Booking]:
        return await list_active_bookings_overlapping(
            self.session, tenant_id, staff_id, start, end, exclude_booking_id
        )

    async def count_active_starting_between(
        self,
        tenant_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[UUID] = None,
    ) -> int:
        return await count_active_bookings_starting_between(
            self.session, tenant_id, start, end, exclude_booking_id
        )

    async def list_active_starting_between(self, tenant_id: int, start: datetime, end: datetime) -> Sequence[Booking]:
        return await list_active_bookings_starting_between(self.session, tenant_id, start, end)

    async def add(self, booking: Booking) -> Booking:
        return await self._persist(booking)

    async def save(self, booking: Booking) -> Booking:
        return await self._persist(booking)


class SqlWaitlistRepository(_SqlRepository):
    async def get(self, tenant_id: int, entry_id: UUID) -> Optional[WaitlistEntry]:
        return await require_owned(self.session, WaitlistEntry, entry_id, tenant_id)

    async def find_waiting(
        self,
        tenant_id: int,
        service_id: int,
        staff_id: int,
        customer_email: str,
        preferred_start_at: datetime,
    ) -> Optional[WaitlistEntry]:
        result = await self.session.execute(
            waiting_entries_for(tenant_id, service_id, staff_id)
            .where(
                WaitlistEntry.customer_email == customer_email,
                WaitlistEntry.preferred_start_at == preferred_start_at,
            )
            .order_by(WaitlistEntry.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def first_waiting_between(
        self,
        tenant_id: int,
        service_id: int,
        staff_id: int,
        start: datetime,
        end: datetime,
    ) -> Optional[WaitlistEntry]:
        result = await self.session.execute(
            waiting_entries_for(tenant_id, service_id, staff_id)
            .where(
                WaitlistEntry.preferred_start_at >= start,
                WaitlistEntry.preferred_start_at < end,
            )
            .order_by(WaitlistEntry.created_at, WaitlistEntry.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_ahead(self, entry: WaitlistEntry) -> int:
        waiting = waiting_entries_for(entry.tenant_id, entry.service_id, entry.staff_id).where(
            or_(
                WaitlistEntry.preferred_start_at < entry.preferred_start_at,
                and_(
                    WaitlistEntry.preferred_start_at == entry.preferred_start_at,
                    WaitlistEntry.created_at <= entry.created_at,
                ),
            )
        )
        result = await self.session.execute(select(func.count()).select_from(waiting.subquery()))
        return int(result.scalar_one())

    async def add(self, entry: WaitlistEntry) -> WaitlistEntry:
        return await self._persist(entry)

    async def save(self, entry: WaitlistEntry) -> WaitlistEntry:
        return await self._persist(entry)


# ────────────────────────────────────────────────────────────────
# Store
# ────────────────────────────────────────────────────────────────

class SqlSchedulingStore:
    """SchedulingStore bound to one AsyncSession."""

    def __init__(self, session: AsyncSession, locks: Optional[InProcessStaffLocks] = None):
        self.session = session
        self.locks = locks or staff_locks
        self.tenants = SqlTenantSettingsProvider(session)
        self.staff = SqlStaffDirectory(session)
        self.services = SqlServiceCatalog(session)
        self.rules = SqlRuleRepository(session)
        self.exceptions = SqlExceptionRepository(session)
        self.bookings = SqlBookingRepository(session)
        self.waitlist = SqlWaitlistRepository(session)

    def _uses_advisory_locks(self) -> bool:
        return self.session.get_bind().dialect.name == "postgresql"

    @asynccontextmanager
    async def staff_guard(self, tenant_id: int, staff_id: int, tenant_wide: bool = False) -> AsyncIterator[None]:
        async with self.locks.hold(tenant_id, staff_id, tenant_wide=tenant_wide):
            try:
                if self._uses_advisory_locks():
                    if tenant_wide:
                        await self.session.execute(
                            text("SELECT pg_advisory_xact_lock(:key)"),
                            {"key": tenant_advisory_lock_key(tenant_id)},
                        )
                    await self.session.execute(
                        text("SELECT pg_advisory_xact_lock(:key)"),
                        {"key": advisory_lock_key(tenant_id, staff_id)},
                    )
                yield
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                raise

    async def commit(self) -> None:
        await self.session.commit()
