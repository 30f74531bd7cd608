"""
Booking engine.

Composes the resolver, slot generator, collision detector, quota enforcer,
lifecycle rules and waitlist coordinator over a SchedulingStore.

Operations:
    list_available_slots(tenant_id, service_id, staff_id, date)  -> list[Slot]
    create_booking(tenant_id, request, auto_waitlist_on_occupied, actor_id)
                                                                  -> Booking | WaitlistOutcome
    cancel_booking(tenant_id, booking_id, reason)                 -> Booking
    reschedule_booking(tenant_id, booking_id, new_start_at)       -> Booking
    join_waitlist(tenant_id, request)                             -> WaitlistOutcome

Check-and-write always runs inside store.staff_guard(tenant_id, staff_id),
so two requests for the same staff member cannot both pass the collision
check before either has written. When the tenant has any booking cap the
guard is tenant-wide as well, since quota counts span every staff member.
Notifications and audit entries are sent
after the guard has committed and never fail the operation.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional, Union
from uuid import UUID

from ..core.clock import SystemClock
from ..errors import NotFoundError, SlotOccupiedError, ValidationError
from ..models import Booking, BookingStatus, Service, WaitlistEntry
from .availability import AvailabilityResolver
from .collision import CollisionDetector, expand_by_buffer
from .effects import SideEffects
from .lifecycle import ensure_can_cancel, ensure_can_reschedule, ensure_notice_window
from .ports import AuditAction, TenantSettings
from .quota import QuotaEnforcer, has_caps
from .requests import CreateBookingRequest, JoinWaitlistRequest
from .slots import Slot, generate_slots
from .time_window import combine_utc, ensure_utc, parse_iso_date
from .waitlist import WaitlistCoordinator, WaitlistOutcome

logger = logging.getLogger(__name__)


def coerce_uuid(value: Union[str, UUID], label: str = "Booking") -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(f"{label} not found.")


def missing_required_field(form_fields: list[dict[str, Any]], values: dict[str, Any]) -> Optional[str]:
    """Label of the first required form field with no usable value, if any."""
    for form_field in form_fields or []:
        if not form_field.get("required"):
            continue
        key = form_field.get("key") or form_field.get("name")
        if not key:
            continue
        value = (values or {}).get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            return form_field.get("label") or key
    return None


class BookingEngine:
    def __init__(self, store, notifications=None, audit=None, clock=None):
        self.store = store
        self.clock = clock or SystemClock()
        self.effects = SideEffects(notifications, audit)
        self.resolver = AvailabilityResolver(store.rules, store.exceptions)
        self.collisions = CollisionDetector(store.bookings)
        self.quotas = QuotaEnforcer(store.bookings)
        self.waitlist = WaitlistCoordinator(store.waitlist, self.effects, self.clock)

    # ────────────────────────────────────────────────────────────────
    # Lookups
    # ────────────────────────────────────────────────────────────────

    async def _settings(self, tenant_id: int) -> TenantSettings:
        settings = await self.store.tenants.get_settings(tenant_id)
        if settings is None:
            raise NotFoundError("Tenant not found.")
        return settings

    async def _active_service(self, tenant_id: int, service_id: int) -> Service:
        service = await self.store.services.find_active(tenant_id, service_id)
        if service is None:
            raise ValidationError("Service is not available for this tenant.", {"service_id": service_id})
        return service

    async def _ensure_active_staff(self, tenant_id: int, staff_id: int) -> None:
        staff = await self.store.staff.find_active(tenant_id, staff_id)
        if staff is None:
            raise ValidationError("Staff member is not available for this tenant.", {"staff_id": staff_id})

    async def get_booking(self, tenant_id: int, booking_id) -> Booking:
        booking = await self.store.bookings.get(tenant_id, coerce_uuid(booking_id))
        if booking is None:
            raise NotFoundError("Booking not found.")
        return booking

    async def _ensure_slot_available(
        self,
        tenant_id: int,
        staff_id: int,
        start_at: datetime,
        end_at: datetime,
        buffer_minutes: int,
        exclude_booking_id: Optional[UUID] = None,
    ) -> None:
        # Occupied is reported before availability so callers can waitlist.
        await self.collisions.ensure_free(
            tenant_id, staff_id, start_at, end_at, buffer_minutes, exclude_booking_id
        )
        await self.resolver.ensure_within_availability(tenant_id, staff_id, start_at, end_at)

    # ────────────────────────────────────────────────────────────────
    # Slots
    # ────────────────────────────────────────────────────────────────

    async def list_available_slots(
        self,
        tenant_id: int,
        service_id: int,
        staff_id: int,
        target_date: Union[date, str],
    ) -> list[Slot]:
        if isinstance(target_date, str):
            target_date = parse_iso_date(target_date)

        settings = await self._settings(tenant_id)
        service = await self._active_service(tenant_id, service_id)
        await self._ensure_active_staff(tenant_id, staff_id)

        day_start = combine_utc(target_date, 0)
        if not await self.quotas.can_accept_more_bookings(settings, tenant_id, day_start):
            return []

        availability = await self.resolver.resolve(tenant_id, staff_id, target_date)
        if availability.is_empty:
            return []

        range_start, range_end = expand_by_buffer(
            day_start, day_start + timedelta(days=1), settings.buffer_minutes
        )
        bookings = await self.store.bookings.list_active_overlapping(
            tenant_id, staff_id, range_start, range_end
        )
        return generate_slots(
            availability,
            service.duration_minutes,
            bookings,
            settings.buffer_minutes,
        )

    # ────────────────────────────────────────────────────────────────
    # Create
    # ────────────────────────────────────────────────────────────────

    async def create_booking(
        self,
        tenant_id: int,
        request: CreateBookingRequest,
        auto_waitlist_on_occupied: bool = False,
        actor_id: Optional[str] = None,
    ) -> Union[Booking, WaitlistOutcome]:
        settings = await self._settings(tenant_id)
        service = await self._active_service(tenant_id, request.service_id)
        await self._ensure_active_staff(tenant_id, request.staff_id)

        missing = missing_required_field(settings.booking_form_fields, request.custom_fields)
        if missing:
            raise ValidationError(f"Field '{missing}' is required.", {"field": missing})

        # Plain values: a rolled-back guard expires ORM instances.
        service_id, duration_minutes = service.id, service.duration_minutes
        start_at = ensure_utc(request.start_at)
        end_at = start_at + timedelta(minutes=duration_minutes)

        try:
            async with self.store.staff_guard(tenant_id, request.staff_id, tenant_wide=has_caps(settings)):
                await self.quotas.enforce(settings, tenant_id, start_at)
                await self._ensure_slot_available(
                    tenant_id, request.staff_id, start_at, end_at, settings.buffer_minutes
                )
                booking = await self.store.bookings.add(
                    Booking(
                        tenant_id=tenant_id,
                        service_id=service_id,
                        staff_id=request.staff_id,
                        customer_id=request.customer_id,
                        customer_name=request.customer_name,
                        customer_email=request.customer_email,
                        start_at=start_at,
                        end_at=end_at,
                        status=BookingStatus.CONFIRMED,
                        notes=request.notes,
                        custom_fields=dict(request.custom_fields or {}),
                    )
                )
        except SlotOccupiedError:
            if not auto_waitlist_on_occupied:
                raise
            logger.info(
                f"Slot {start_at.isoformat()} occupied for tenant {tenant_id} "
                f"staff {request.staff_id}; diverting to waitlist"
            )
            return await self._join_waitlist(
                tenant_id,
                service_id,
                duration_minutes,
                request.staff_id,
                start_at,
                request.customer_name,
                request.customer_email,
                request.notes,
                actor_id,
            )

        logger.info(
            f"Booking {booking.id} confirmed for tenant {tenant_id} staff {booking.staff_id} "
            f"{start_at.isoformat()}-{end_at.isoformat()}"
        )
        await self.effects.notify("notify_booking_created", booking, service)
        await self.effects.record(
            tenant_id,
            AuditAction.BOOKING_CREATED,
            "booking",
            str(booking.id),
            {
                "service_id": booking.service_id,
                "staff_id": booking.staff_id,
                "start_at": start_at.isoformat(),
                "end_at": end_at.isoformat(),
            },
            actor_id,
        )
        return booking

    # ────────────────────────────────────────────────────────────────
    # Cancel / Reschedule
    # ────────────────────────────────────────────────────────────────

    async def cancel_booking(
        self,
        tenant_id: int,
        booking_id,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Booking:
        booking = await self.get_booking(tenant_id, booking_id)
        promoted: Optional[WaitlistEntry] = None
        changed = False

        async with self.store.staff_guard(tenant_id, booking.staff_id):
            booking = await self.get_booking(tenant_id, booking.id)
            if ensure_can_cancel(booking):
                settings = await self._settings(tenant_id)
                now = self.clock.now()
                ensure_notice_window(booking.start_at, settings.cancellation_notice_hours, now, "cancel")

                booking.status = BookingStatus.CANCELLED
                booking.cancelled_at = now
                booking.cancellation_reason = reason
                await self.store.bookings.save(booking)
                promoted = await self.waitlist.promote_on_cancellation(booking)
                changed = True

        if not changed:
            return booking

        logger.info(f"Booking {booking.id} cancelled for tenant {tenant_id}")
        await self.effects.notify("notify_booking_cancelled", booking)
        await self.effects.record(
            tenant_id,
            AuditAction.BOOKING_CANCELLED,
            "booking",
            str(booking.id),
            {"reason": reason},
            actor_id,
        )
        if promoted is not None:
            await self.waitlist.announce_promotion(promoted, booking, actor_id)
        return booking

    async def reschedule_booking(
        self,
        tenant_id: int,
        booking_id,
        new_start_at: datetime,
        actor_id: Optional[str] = None,
    ) -> Booking:
        booking = await self.get_booking(tenant_id, booking_id)
        settings = await self._settings(tenant_id)

        async with self.store.staff_guard(tenant_id, booking.staff_id, tenant_wide=has_caps(settings)):
            booking = await self.get_booking(tenant_id, booking.id)
            ensure_can_reschedule(booking)

            ensure_notice_window(
                booking.start_at, settings.reschedule_notice_hours, self.clock.now(), "reschedule"
            )

            service = await self.store.services.get(tenant_id, booking.service_id)
            if service is None:
                raise NotFoundError("Service not found.")

            new_start_at = ensure_utc(new_start_at)
            new_end_at = new_start_at + timedelta(minutes=service.duration_minutes)

            await self.quotas.enforce(settings, tenant_id, new_start_at, exclude_booking_id=booking.id)
            await self._ensure_slot_available(
                tenant_id,
                booking.staff_id,
                new_start_at,
                new_end_at,
                settings.buffer_minutes,
                exclude_booking_id=booking.id,
            )

            previous_start_at = booking.start_at
            booking.start_at = new_start_at
            booking.end_at = new_end_at
            booking.status = BookingStatus.RESCHEDULED
            booking.reminder_sent_at = None
            await self.store.bookings.save(booking)

        logger.info(
            f"Booking {booking.id} rescheduled for tenant {tenant_id} "
            f"{previous_start_at.isoformat()} -> {new_start_at.isoformat()}"
        )
        await self.effects.notify("notify_booking_rescheduled", booking, previous_start_at)
        await self.effects.record(
            tenant_id,
            AuditAction.BOOKING_RESCHEDULED,
            "booking",
            str(booking.id),
            {
                "previous_start_at": previous_start_at.isoformat(),
                "start_at": new_start_at.isoformat(),
                "end_at": new_end_at.isoformat(),
            },
            actor_id,
        )
        return booking

    # ────────────────────────────────────────────────────────────────
    # Waitlist
    # ────────────────────────────────────────────────────────────────

    async def join_waitlist(
        self,
        tenant_id: int,
        request: JoinWaitlistRequest,
        actor_id: Optional[str] = None,
    ) -> WaitlistOutcome:
        await self._settings(tenant_id)
        service = await self._active_service(tenant_id, request.service_id)
        await self._ensure_active_staff(tenant_id, request.staff_id)
        return await self._join_waitlist(
            tenant_id,
            service.id,
            service.duration_minutes,
            request.staff_id,
            request.preferred_start_at,
            request.customer_name,
            request.customer_email,
            request.notes,
            actor_id,
        )

    async def _join_waitlist(
        self,
        tenant_id: int,
        service_id: int,
        duration_minutes: int,
        staff_id: int,
        preferred_start_at: datetime,
        customer_name: str,
        customer_email: str,
        notes: Optional[str],
        actor_id: Optional[str],
    ) -> WaitlistOutcome:
        async with self.store.staff_guard(tenant_id, staff_id):
            entry, created = await self.waitlist.join(
                tenant_id,
                service_id,
                staff_id,
                preferred_start_at,
                customer_name,
                customer_email,
                notes,
            )
            outcome = await self.waitlist.feedback(entry, duration_minutes, created)

        if created:
            await self.waitlist.announce_joined(entry, actor_id)
        return outcome

    async def get_waitlist_feedback(self, tenant_id: int, entry_id) -> WaitlistOutcome:
        entry = await self.store.waitlist.get(tenant_id, coerce_uuid(entry_id, "Waitlist entry"))
        if entry is None:
            raise NotFoundError("Waitlist entry not found.")
        service = await self.store.services.get(tenant_id, entry.service_id)
        if service is None:
            raise NotFoundError("Service not found.")
        return await self.waitlist.feedback(entry, service.duration_minutes, created=False)
