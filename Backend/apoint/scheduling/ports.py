"""
Interfaces the scheduling core consumes.

Every repository method takes tenant_id first and must filter on it: a row
owned by another tenant is indistinguishable from a missing row.

Two adapter sets implement these: apoint.repositories.sql (AsyncSession) and
apoint.repositories.memory (process-local, used by tests).
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, AsyncContextManager, Optional, Protocol, Sequence
from uuid import UUID

from ..models import (
    AvailabilityException,
    AvailabilityRule,
    Booking,
    Plan,
    Service,
    Staff,
    WaitlistEntry,
)


@dataclass(frozen=True)
class TenantSettings:
    tenant_id: int
    plan: Plan = Plan.FREE
    time_zone: str = "UTC"
    buffer_minutes: int = 0
    max_bookings_per_day: Optional[int] = None
    max_bookings_per_week: Optional[int] = None
    cancellation_notice_hours: int = 0
    reschedule_notice_hours: int = 0
    reminder_hours_before: int = 0
    booking_form_fields: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_tenant(cls, tenant) -> "TenantSettings":
        return cls(
            tenant_id=tenant.id,
            plan=Plan(tenant.plan or Plan.FREE),
            time_zone=tenant.time_zone or "UTC",
            buffer_minutes=tenant.booking_buffer_minutes or 0,
            max_bookings_per_day=tenant.max_bookings_per_day,
            max_bookings_per_week=tenant.max_bookings_per_week,
            cancellation_notice_hours=tenant.cancellation_notice_hours or 0,
            reschedule_notice_hours=tenant.reschedule_notice_hours or 0,
            reminder_hours_before=tenant.reminder_hours_before or 0,
            booking_form_fields=list(tenant.booking_form_fields or []),
        )


# ────────────────────────────────────────────────────────────────
# Read-only collaborators
# ────────────────────────────────────────────────────────────────

class TenantSettingsProvider(Protocol):
    async def get_settings(self, tenant_id: int) -> Optional[TenantSettings]: ...

    async def list_reminder_tenant_ids(self) -> Sequence[int]: ...


class StaffDirectory(Protocol):
    async def find_active(self, tenant_id: int, staff_id: int) -> Optional[Staff]: ...

    async def get(self, tenant_id: int, staff_id: int) -> Optional[Staff]: ...


class ServiceCatalog(Protocol):
    async def find_active(self, tenant_id: int, service_id: int) -> Optional[Service]: ...

    async def get(self, tenant_id: int, service_id: int) -> Optional[Service]: ...


# ────────────────────────────────────────────────────────────────
# Repositories
# ────────────────────────────────────────────────────────────────

class RuleRepository(Protocol):
    async def list_for_weekday(self, tenant_id: int, staff_id: int, day_of_week: int) -> Sequence[AvailabilityRule]: ...

    async def list_for_tenant(self, tenant_id: int, staff_id: Optional[int] = None) -> Sequence[AvailabilityRule]: ...

    async def get(self, tenant_id: int, rule_id: int) -> Optional[AvailabilityRule]: ...

    async def add(self, rule: AvailabilityRule) -> AvailabilityRule: ...

    async def save(self, rule: AvailabilityRule) -> AvailabilityRule: ...

    async def delete(self, rule: AvailabilityRule) -> None: ...


class ExceptionRepository(Protocol):
    async def list_blocking_for_date(
        self, tenant_id: int, staff_id: int, target_date: date
    ) -> Sequence[AvailabilityException]: ...

    async def list_for_tenant(self, tenant_id: int, staff_id: Optional[int] = None) -> Sequence[AvailabilityException]: ...

    async def get(self, tenant_id: int, exception_id: int) -> Optional[AvailabilityException]: ...

    async def add(self, exception: AvailabilityException) -> AvailabilityException: ...

    async def save(self, exception: AvailabilityException) -> AvailabilityException: ...

    async def delete(self, exception: AvailabilityException) -> None: ...


class BookingRepository(Protocol):
    async def get(self, tenant_id: int, booking_id: UUID) -> Optional[Booking]: ...

    async def list_active_overlapping(
        self,
        tenant_id: int,
        staff_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[UUID] = None,
    ) -> Sequence[Booking]: ...

    async def count_active_starting_between(
        self,
        tenant_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[UUID] = None,
    ) -> int: ...

    async def list_active_starting_between(
        self, tenant_id: int, start: datetime, end: datetime
    ) -> Sequence[Booking]: ...

    async def add(self, booking: Booking) -> Booking: ...

    async def save(self, booking: Booking) -> Booking: ...


class WaitlistRepository(Protocol):
    async def get(self, tenant_id: int, entry_id: UUID) -> Optional[WaitlistEntry]: ...

    async def find_waiting(
        self,
        tenant_id: int,
        service_id: int,
        staff_id: int,
        customer_email: str,
        preferred_start_at: datetime,
    ) -> Optional[WaitlistEntry]: ...

    async def first_waiting_between(
        self,
        tenant_id: int,
        service_id: int,
        staff_id: int,
        start: datetime,
        end: datetime,
    ) -> Optional[WaitlistEntry]: ...

    async def count_ahead(self, entry: WaitlistEntry) -> int: ...

    async def add(self, entry: WaitlistEntry) -> WaitlistEntry: ...

    async def save(self, entry: WaitlistEntry) -> WaitlistEntry: ...


# ────────────────────────────────────────────────────────────────
# Side-effect collaborators (best effort)
# ────────────────────────────────────────────────────────────────

class NotificationGateway(Protocol):
    async def notify_booking_created(self, booking: Booking, service: Optional[Service] = None) -> bool: ...

    async def notify_booking_cancelled(self, booking: Booking) -> bool: ...

    async def notify_booking_rescheduled(self, booking: Booking, previous_start_at: datetime) -> bool: ...

    async def notify_waitlist_slot_available(self, entry: WaitlistEntry, booking: Booking) -> bool: ...

    async def notify_booking_reminder(self, booking: Booking) -> bool: ...


class AuditRecorder(Protocol):
    async def record(
        self,
        tenant_id: int,
        action: str,
        entity: str,
        entity_id: Optional[str],
        metadata: Optional[dict[str, Any]] = None,
        actor_id: Optional[str] = None,
    ) -> None: ...


# ────────────────────────────────────────────────────────────────
# Store (one unit of work)
# ────────────────────────────────────────────────────────────────

class SchedulingStore(Protocol):
    """
    All repositories sharing one transaction, plus the per-staff guard.

    staff_guard(tenant_id, staff_id) serializes check-and-write for one staff
    member; everything written inside it is committed when the block exits
    normally and rolled back when it raises. tenant_wide=True additionally
    serializes against every other tenant-wide guard of the tenant (taken
    first), for writes counted by tenant-level quotas.
    """

    tenants: TenantSettingsProvider
    staff: StaffDirectory
    services: ServiceCatalog
    rules: RuleRepository
    exceptions: ExceptionRepository
    bookings: BookingRepository
    waitlist: WaitlistRepository

    def staff_guard(
        self, tenant_id: int, staff_id: int, tenant_wide: bool = False
    ) -> AsyncContextManager[None]: ...

    async def commit(self) -> None: ...


class AuditAction:
    """Action names written to the audit log."""

    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_RESCHEDULED = "BOOKING_RESCHEDULED"
    BOOKING_REMINDER_SENT = "BOOKING_REMINDER_SENT"
    WAITLIST_JOINED = "WAITLIST_JOINED"
    WAITLIST_NOTIFIED = "WAITLIST_NOTIFIED"
