"""
Waitlist coordination.

join() is idempotent on (tenant, service, staff, customer email, preferred
start) while the entry is still waiting. promote_on_cancellation() moves the
earliest-created waiting entry whose preferred start falls inside the freed
[start_at, end_at) to notified. notified never reverts.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..models import Booking, WaitlistEntry, WaitlistStatus
from .effects import SideEffects
from .ports import AuditAction
from .time_window import ensure_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WaitlistOutcome:
    """What a customer diverted to the waitlist gets back instead of a booking."""

    entry: WaitlistEntry
    queue_position: int
    estimated_start_at: datetime
    estimated_end_at: datetime
    created: bool = True

    def to_dict(self) -> dict:
        return {
            "waitlist_entry_id": str(self.entry.id),
            "status": WaitlistStatus(self.entry.status).value,
            "queue_position": self.queue_position,
            "estimated_start_at": self.estimated_start_at.isoformat(),
            "estimated_end_at": self.estimated_end_at.isoformat(),
        }


class WaitlistCoordinator:
    def __init__(self, waitlist, effects: SideEffects, clock):
        self.waitlist = waitlist
        self.effects = effects
        self.clock = clock

    async def join(
        self,
        tenant_id: int,
        service_id: int,
        staff_id: int,
        preferred_start_at: datetime,
        customer_name: str,
        customer_email: str,
        notes: Optional[str] = None,
    ) -> tuple[WaitlistEntry, bool]:
        """Returns (entry, created). An identical waiting entry is returned unchanged."""
        preferred_start_at = ensure_utc(preferred_start_at)
        customer_email = customer_email.strip().lower()

        existing = await self.waitlist.find_waiting(
            tenant_id, service_id, staff_id, customer_email, preferred_start_at
        )
        if existing is not None:
            return existing, False

        entry = WaitlistEntry(
            tenant_id=tenant_id,
            service_id=service_id,
            staff_id=staff_id,
            customer_name=customer_name.strip(),
            customer_email=customer_email,
            preferred_start_at=preferred_start_at,
            status=WaitlistStatus.WAITING,
            notes=notes,
        )
        entry = await self.waitlist.add(entry)
        logger.info(
            f"Waitlist entry {entry.id} created for tenant {tenant_id} "
            f"staff {staff_id} at {preferred_start_at.isoformat()}"
        )
        return entry, True

    async def feedback(self, entry: WaitlistEntry, duration_minutes: int, created: bool = True) -> WaitlistOutcome:
        position = await self.waitlist.count_ahead(entry)
        start = ensure_utc(entry.preferred_start_at)
        return WaitlistOutcome(
            entry=entry,
            queue_position=max(position, 1),
            estimated_start_at=start,
            estimated_end_at=start + timedelta(minutes=duration_minutes),
            created=created,
        )

    async def promote_on_cancellation(self, booking: Booking) -> Optional[WaitlistEntry]:
        """Mark the first matching waiting entry as notified. Caller persists and announces."""
        entry = await self.waitlist.first_waiting_between(
            booking.tenant_id,
            booking.service_id,
            booking.staff_id,
            booking.start_at,
            booking.end_at,
        )
        if entry is None:
            return None

        entry.status = WaitlistStatus.NOTIFIED
        entry.notified_at = self.clock.now()
        await self.waitlist.save(entry)
        logger.info(f"Waitlist entry {entry.id} promoted after booking {booking.id} was cancelled")
        return entry

    async def announce_joined(self, entry: WaitlistEntry, actor_id: Optional[str] = None) -> None:
        await self.effects.record(
            entry.tenant_id,
            AuditAction.WAITLIST_JOINED,
            "waitlist_entry",
            str(entry.id),
            {
                "service_id": entry.service_id,
                "staff_id": entry.staff_id,
                "preferred_start_at": ensure_utc(entry.preferred_start_at).isoformat(),
            },
            actor_id,
        )

    async def announce_promotion(self, entry: WaitlistEntry, booking: Booking, actor_id: Optional[str] = None) -> None:
        await self.effects.notify("notify_waitlist_slot_available", entry, booking)
        await self.effects.record(
            entry.tenant_id,
            AuditAction.WAITLIST_NOTIFIED,
            "waitlist_entry",
            str(entry.id),
            {"freed_booking_id": str(booking.id)},
            actor_id,
        )
