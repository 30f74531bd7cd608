"""
Booking reminders.

A tenant with reminder_hours_before = H gets one reminder per active booking
whose start falls in [now + H, now + H + 15 minutes). Running the dispatcher
every few minutes therefore covers every booking once; bookings already
stamped with reminder_sent_at are skipped.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .core.clock import SystemClock
from .errors import NotFoundError
from .scheduling.effects import SideEffects
from .scheduling.ports import AuditAction

logger = logging.getLogger(__name__)

REMINDER_WINDOW_MINUTES = 15


@dataclass
class ReminderReport:
    tenant_id: int
    reminder_hours_before: int
    processed: int = 0
    sent: int = 0
    skipped_already_sent: int = 0
    disabled: bool = False
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "reminder_hours_before": self.reminder_hours_before,
            "processed": self.processed,
            "sent": self.sent,
            "skipped_already_sent": self.skipped_already_sent,
            "disabled": self.disabled,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
        }


class ReminderDispatcher:
    def __init__(self, store, notifications=None, audit=None, clock=None):
        self.store = store
        self.clock = clock or SystemClock()
        self.effects = SideEffects(notifications, audit)

    async def run_due_reminders_for_tenant(self, tenant_id: int, actor_id: str = "system:reminders") -> ReminderReport:
        settings = await self.store.tenants.get_settings(tenant_id)
        if settings is None:
            raise NotFoundError("Tenant not found.")

        hours = settings.reminder_hours_before
        if hours <= 0:
            return ReminderReport(tenant_id=tenant_id, reminder_hours_before=hours, disabled=True)

        now = self.clock.now()
        window_start = now + timedelta(hours=hours)
        window_end = window_start + timedelta(minutes=REMINDER_WINDOW_MINUTES)
        report = ReminderReport(
            tenant_id=tenant_id,
            reminder_hours_before=hours,
            window_start=window_start,
            window_end=window_end,
        )

        due = await self.store.bookings.list_active_starting_between(tenant_id, window_start, window_end)
        report.processed = len(due)

        reminded = []
        for booking in due:
            if booking.reminder_sent_at is not None:
                report.skipped_already_sent += 1
                continue

            await self.effects.notify("notify_booking_reminder", booking)
            booking.reminder_sent_at = now
            await self.store.bookings.save(booking)
            reminded.append((str(booking.id), booking.start_at.isoformat()))
        report.sent = len(reminded)

        if not reminded:
            return report

        await self.store.commit()
        logger.info(f"Sent {report.sent} reminder(s) for tenant {tenant_id}")
        for booking_id, start_at in reminded:
            await self.effects.record(
                tenant_id,
                AuditAction.BOOKING_REMINDER_SENT,
                "booking",
                booking_id,
                {"reminder_hours_before": hours, "start_at": start_at},
                actor_id,
            )
        return report
