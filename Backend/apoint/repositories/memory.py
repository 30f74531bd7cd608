"""
Process-local implementations of the scheduling ports.

Rows are ordinary (transient) ORM instances kept in dicts, so the core sees
the same objects it would get from the SQL adapters. Each repository call
yields to the event loop once, which lets concurrent operations interleave
the way they would against a real database.
"""

import asyncio
import itertools
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Any, AsyncIterator, Optional, Sequence
from uuid import UUID

from ..core.db import utcnow
from ..models import (
    ACTIVE_BOOKING_STATUSES,
    AuditLog,
    AvailabilityException,
    AvailabilityRule,
    Booking,
    BookingStatus,
    Plan,
    Service,
    Staff,
    Tenant,
    WaitlistEntry,
    WaitlistStatus,
)
from ..scheduling.locks import InProcessStaffLocks
from ..scheduling.ports import TenantSettings


class MemoryStore:
    """All rows of every tenant. Shared by the repositories built on top of it."""

    def __init__(self):
        self.tenants: dict[int, Tenant] = {}
        self.staff: dict[int, Staff] = {}
        self.services: dict[int, Service] = {}
        self.rules: dict[int, AvailabilityRule] = {}
        self.exceptions: dict[int, AvailabilityException] = {}
        self.bookings: dict[UUID, Booking] = {}
        self.waitlist: dict[UUID, WaitlistEntry] = {}
        self.audit_logs: list[AuditLog] = []
        self._ids = itertools.count(1)
        self._last_created_at: Optional[datetime] = None

    def next_id(self) -> int:
        return next(self._ids)

    def created_at(self) -> datetime:
        """Strictly increasing timestamps so FIFO order is well defined."""
        now = utcnow()
        if self._last_created_at is not None and now <= self._last_created_at:
            now = self._last_created_at + timedelta(microseconds=1)
        self._last_created_at = now
        return now

    # ────────────────────────────────────────────────────────────────
    # Seeding helpers
    # ────────────────────────────────────────────────────────────────

    def add_tenant(self, name: str = "Tenant", plan: Plan = Plan.FREE, **fields) -> Tenant:
        tenant_id = self.next_id()
        values = {
            "slug": f"tenant-{tenant_id}",
            "time_zone": "UTC",
            "booking_buffer_minutes": 0,
            "max_bookings_per_day": None,
            "max_bookings_per_week": None,
            "cancellation_notice_hours": 0,
            "reschedule_notice_hours": 0,
            "reminder_hours_before": 0,
            "booking_form_fields": [],
        }
        values.update(fields)
        tenant = Tenant(id=tenant_id, name=name, plan=plan, created_at=self.created_at(), **values)
        self.tenants[tenant.id] = tenant
        return tenant

    def add_staff(self, tenant_id: int, full_name: str = "Staff", active: bool = True, **fields) -> Staff:
        staff = Staff(
            id=self.next_id(),
            tenant_id=tenant_id,
            full_name=full_name,
            active=active,
            created_at=self.created_at(),
            **fields,
        )
        self.staff[staff.id] = staff
        return staff

    def add_service(
        self,
        tenant_id: int,
        name: str = "Service",
        duration_minutes: int = 30,
        active: bool = True,
        **fields,
    ) -> Service:
        service = Service(
            id=self.next_id(),
            tenant_id=tenant_id,
            name=name,
            duration_minutes=duration_minutes,
            price_cents=fields.pop("price_cents", 0),
            active=active,
            created_at=self.created_at(),
            **fields,
        )
        self.services[service.id] = service
        return service

    def add_rule(
        self,
        tenant_id: int,
        day_of_week: int,
        start_time: str,
        end_time: str,
        staff_id: Optional[int] = None,
        is_active: bool = True,
    ) -> AvailabilityRule:
        rule = AvailabilityRule(
            id=self.next_id(),
            tenant_id=tenant_id,
            staff_id=staff_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            is_active=is_active,
            created_at=self.created_at(),
        )
        self.rules[rule.id] = rule
        return rule

    def add_exception(
        self,
        tenant_id: int,
        on: date,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        staff_id: Optional[int] = None,
        is_unavailable: bool = True,
        note: Optional[str] = None,
    ) -> AvailabilityException:
        exception = AvailabilityException(
            id=self.next_id(),
            tenant_id=tenant_id,
            staff_id=staff_id,
            date=on,
            start_time=start_time,
            end_time=end_time,
            is_unavailable=is_unavailable,
            note=note,
            created_at=self.created_at(),
        )
        self.exceptions[exception.id] = exception
        return exception

    def add_booking(
        self,
        tenant_id: int,
        service_id: int,
        staff_id: int,
        start_at: datetime,
        end_at: datetime,
        status: BookingStatus = BookingStatus.CONFIRMED,
        customer_email: str = "existing@example.com",
        customer_name: str = "Existing Customer",
    ) -> Booking:
        booking = Booking(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            service_id=service_id,
            staff_id=staff_id,
            customer_name=customer_name,
            customer_email=customer_email,
            start_at=start_at,
            end_at=end_at,
            status=status,
            custom_fields={},
            created_at=self.created_at(),
        )
        self.bookings[booking.id] = booking
        return booking


class _MemoryRepository:
    def __init__(self, store: MemoryStore):
        self.store = store

    @staticmethod
    async def _yield() -> None:
        await asyncio.sleep(0)


class MemoryTenantSettingsProvider(_MemoryRepository):
    async def get_settings(self, tenant_id: int) -> Optional[TenantSettings]:
        await self._yield()
        tenant = self.store.tenants.get(tenant_id)
        return TenantSettings.from_tenant(tenant) if tenant is not None else None

    async def list_reminder_tenant_ids(self) -> Sequence[int]:
        await self._yield()
        return sorted(t.id for t in self.store.tenants.values() if (t.reminder_hours_before or 0) > 0)


class MemoryStaffDirectory(_MemoryRepository):
    async def get(self, tenant_id: int, staff_id: int) -> Optional[Staff]:
        await self._yield()
        staff = self.store.staff.get(staff_id)
        return staff if staff is not None and staff.tenant_id == tenant_id else None

    async def find_active(self, tenant_id: int, staff_id: int) -> Optional[Staff]:
        staff = await self.get(tenant_id, staff_id)
        return staff if staff is not None and staff.active else None


class MemoryServiceCatalog(_MemoryRepository):
    async def get(self, tenant_id: int, service_id: int) -> Optional[Service]:
        await self._yield()
        service = self.store.services.get(service_id)
        return service if service is not None and service.tenant_id == tenant_id else None

    async def find_active(self, tenant_id: int, service_id: int) -> Optional[Service]:
        service = await self.get(tenant_id, service_id)
        return service if service is not None and service.active else None


class MemoryRuleRepository(_MemoryRepository):
    async def list_for_weekday(self, tenant_id: int, staff_id: int, day_of_week: int) -> Sequence[AvailabilityRule]:
        await self._yield()
        rules = [
            r
            for r in self.store.rules.values()
            if r.tenant_id == tenant_id
            and r.day_of_week == day_of_week
            and r.is_active
            and (r.staff_id is None or r.staff_id == staff_id)
        ]
        return sorted(rules, key=lambda r: (r.start_time, r.id))

    async def list_for_tenant(self, tenant_id: int, staff_id: Optional[int] = None) -> Sequence[AvailabilityRule]:
        await self._yield()
        rules = [
            r
            for r in self.store.rules.values()
            if r.tenant_id == tenant_id and (staff_id is None or r.staff_id == staff_id)
        ]
        return sorted(rules, key=lambda r: (r.day_of_week, r.start_time, r.id))

    async def get(self, tenant_id: int, rule_id: int) -> Optional[AvailabilityRule]:
        await self._yield()
        rule = self.store.rules.get(rule_id)
        return rule if rule is not None and rule.tenant_id == tenant_id else None

    async def add(self, rule: AvailabilityRule) -> AvailabilityRule:
        await self._yield()
        rule.id = self.store.next_id()
        rule.created_at = self.store.created_at()
        if rule.is_active is None:
            rule.is_active = True
        self.store.rules[rule.id] = rule
        return rule

    async def save(self, rule: AvailabilityRule) -> AvailabilityRule:
        await self._yield()
        self.store.rules[rule.id] = rule
        return rule

    async def delete(self, rule: AvailabilityRule) -> None:
        await self._yield()
        self.store.rules.pop(rule.id, None)


class MemoryExceptionRepository(_MemoryRepository):
    async def list_blocking_for_date(
        self, tenant_id: int, staff_id: int, target_date: date
    ) -> Sequence[AvailabilityException]:
        await self._yield()
        return [
            e
            for e in self.store.exceptions.values()
            if e.tenant_id == tenant_id
            and e.date == target_date
            and e.is_unavailable
            and (e.staff_id is None or e.staff_id == staff_id)
        ]

    async def list_for_tenant(
        self, tenant_id: int, staff_id: Optional[int] = None
    ) -> Sequence[AvailabilityException]:
        await self._yield()
        exceptions = [
            e
            for e in self.store.exceptions.values()
            if e.tenant_id == tenant_id and (staff_id is None or e.staff_id == staff_id)
        ]
        return sorted(exceptions, key=lambda e: (e.date, e.id))

    async def get(self, tenant_id: int, exception_id: int) -> Optional[AvailabilityException]:
        await self._yield()
        exception = self.store.exceptions.get(exception_id)
        return exception if exception is not None and exception.tenant_id == tenant_id else None

    async def add(self, exception: AvailabilityException) -> AvailabilityException:
        await self._yield()
        exception.id = self.store.next_id()
        exception.created_at = self.store.created_at()
        if exception.is_unavailable is None:
            exception.is_unavailable = True
        self.store.exceptions[exception.id] = exception
        return exception

    async def save(self, exception: AvailabilityException) -> AvailabilityException:
        await self._yield()
        self.store.exceptions[exception.id] = exception
        return exception

    async def delete(self, exception: AvailabilityException) -> None:
        await self._yield()
        self.store.exceptions.pop(exception.id, None)


class MemoryBookingRepository(_MemoryRepository):
    def _active(self, tenant_id: int):
        return (
            b
            for b in self.store.bookings.values()
            if b.tenant_id == tenant_id and b.status in ACTIVE_BOOKING_STATUSES
        )

    async def get(self, tenant_id: int, booking_id: UUID) -> Optional[Booking]:
        await self._yield()
        booking = self.store.bookings.get(booking_id)
        return booking if booking is not None and booking.tenant_id == tenant_id else None

    async def list_active_overlapping(
        self,
        tenant_id: int,
        staff_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[UUID] = None,
    ) -> Sequence[Booking]:
        await self._yield()
        bookings = [
            b
            for b in self._active(tenant_id)
            if b.staff_id == staff_id
            and b.id != exclude_booking_id
            and b.start_at < end
            and b.end_at > start
        ]
        return sorted(bookings, key=lambda b: b.start_at)

    async def count_active_starting_between(
        self,
        tenant_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[UUID] = None,
    ) -> int:
        await self._yield()
        return sum(
            1
            for b in self._active(tenant_id)
            if b.id != exclude_booking_id and start <= b.start_at < end
        )

    async def list_active_starting_between(self, tenant_id: int, start: datetime, end: datetime) -> Sequence[Booking]:
        await self._yield()
        bookings = [b for b in self._active(tenant_id) if start <= b.start_at < end]
        return sorted(bookings, key=lambda b: b.start_at)

    async def add(self, booking: Booking) -> Booking:
        await self._yield()
        if booking.id is None:
            booking.id = uuid.uuid4()
        booking.created_at = self.store.created_at()
        self.store.bookings[booking.id] = booking
        return booking

    async def save(self, booking: Booking) -> Booking:
        await self._yield()
        self.store.bookings[booking.id] = booking
        return booking


class MemoryWaitlistRepository(_MemoryRepository):
    def _waiting(self, tenant_id: int, service_id: int, staff_id: int):
        return [
            e
            for e in self.store.waitlist.values()
            if e.tenant_id == tenant_id
            and e.service_id == service_id
            and e.staff_id == staff_id
            and e.status == WaitlistStatus.WAITING
        ]

    async def get(self, tenant_id: int, entry_id: UUID) -> Optional[WaitlistEntry]:
        await self._yield()
        entry = self.store.waitlist.get(entry_id)
        return entry if entry is not None and entry.tenant_id == tenant_id else None

    async def find_waiting(
        self,
        tenant_id: int,
        service_id: int,
        staff_id: int,
        customer_email: str,
        preferred_start_at: datetime,
    ) -> Optional[WaitlistEntry]:
        await self._yield()
        for entry in self._waiting(tenant_id, service_id, staff_id):
            if entry.customer_email == customer_email and entry.preferred_start_at == preferred_start_at:
                return entry
        return None

    async def first_waiting_between(
        self,
        tenant_id: int,
        service_id: int,
        staff_id: int,
        start: datetime,
        end: datetime,
    ) -> Optional[WaitlistEntry]:
        await self._yield()
        matches = [
            e for e in self._waiting(tenant_id, service_id, staff_id) if start <= e.preferred_start_at < end
        ]
        if not matches:
            return None
        return min(matches, key=lambda e: e.created_at)

    async def count_ahead(self, entry: WaitlistEntry) -> int:
        await self._yield()
        return sum(
            1
            for e in self._waiting(entry.tenant_id, entry.service_id, entry.staff_id)
            if e.preferred_start_at < entry.preferred_start_at
            or (e.preferred_start_at == entry.preferred_start_at and e.created_at <= entry.created_at)
        )

    async def add(self, entry: WaitlistEntry) -> WaitlistEntry:
        await self._yield()
        if entry.id is None:
            entry.id = uuid.uuid4()
        entry.created_at = self.store.created_at()
        self.store.waitlist[entry.id] = entry
        return entry

    async def save(self, entry: WaitlistEntry) -> WaitlistEntry:
        await self._yield()
        self.store.waitlist[entry.id] = entry
        return entry


class MemoryAuditRecorder(_MemoryRepository):
    async def record(
        self,
        tenant_id: int,
        action: str,
        entity: str,
        entity_id: Optional[str],
        metadata: Optional[dict[str, Any]] = None,
        actor_id: Optional[str] = None,
    ) -> None:
        await self._yield()
        self.store.audit_logs.append(
            AuditLog(
                id=len(self.store.audit_logs) + 1,
                tenant_id=tenant_id,
                actor_id=actor_id,
                action=action,
                entity=entity,
                entity_id=entity_id,
                metadata_json=metadata or {},
                created_at=self.store.created_at(),
            )
        )


class MemorySchedulingStore:
    """SchedulingStore over a MemoryStore. Writes are applied immediately."""

    def __init__(self, store: MemoryStore, locks: Optional[InProcessStaffLocks] = None):
        self.data = store
        self.locks = locks or InProcessStaffLocks()
        self.tenants = MemoryTenantSettingsProvider(store)
        self.staff = MemoryStaffDirectory(store)
        self.services = MemoryServiceCatalog(store)
        self.rules = MemoryRuleRepository(store)
        self.exceptions = MemoryExceptionRepository(store)
        self.bookings = MemoryBookingRepository(store)
        self.waitlist = MemoryWaitlistRepository(store)

    @asynccontextmanager
    async def staff_guard(self, tenant_id: int, staff_id: int, tenant_wide: bool = False) -> AsyncIterator[None]:
        async with self.locks.hold(tenant_id, staff_id, tenant_wide=tenant_wide):
            yield

    async def commit(self) -> None:
        return None
