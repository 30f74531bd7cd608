"""
Reminder dispatch and the periodic reminder scheduler.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta

import pytest

from apoint.background import PeriodicTask, ReminderCycle, SchedulerConfig
from apoint.core.clock import FixedClock
from apoint.errors import NotFoundError
from apoint.models import BookingStatus, Plan
from apoint.reminders import REMINDER_WINDOW_MINUTES, ReminderDispatcher
from apoint.scheduling.ports import AuditAction

from conftest import at


@pytest.fixture
def reminder_clock():
    # Monday 09:00 bookings are exactly 24h ahead.
    return FixedClock(at(9) - timedelta(hours=24))


@pytest.fixture
def dispatcher(store, notifications, audit, reminder_clock):
    return ReminderDispatcher(store, notifications=notifications, audit=audit, clock=reminder_clock)


class TestReminderDispatcher:
    async def test_sends_for_bookings_in_the_window(self, dispatcher, memory, notifications, tenant, staff, service, reminder_clock):
        tenant.reminder_hours_before = 24
        due = memory.add_booking(tenant.id, service.id, staff.id, at(9), at(9, 30))
        edge = memory.add_booking(tenant.id, service.id, staff.id, at(9, 14), at(9, 44))
        too_late = memory.add_booking(tenant.id, service.id, staff.id, at(9, 15), at(9, 45))
        cancelled = memory.add_booking(
            tenant.id, service.id, staff.id, at(9, 5), at(9, 35), status=BookingStatus.CANCELLED
        )

        report = await dispatcher.run_due_reminders_for_tenant(tenant.id)

        assert report.sent == 2
        assert report.processed == 2
        assert report.window_start == at(9)
        assert report.window_end == at(9) + timedelta(minutes=REMINDER_WINDOW_MINUTES)
        assert due.reminder_sent_at == reminder_clock.now()
        assert edge.reminder_sent_at == reminder_clock.now()
        assert too_late.reminder_sent_at is None
        assert cancelled.reminder_sent_at is None
        assert notifications.events() == ["booking_reminder", "booking_reminder"]
        assert [log.action for log in memory.audit_logs] == [AuditAction.BOOKING_REMINDER_SENT] * 2
        assert memory.audit_logs[0].actor_id == "system:reminders"

    async def test_second_run_skips_already_reminded(self, dispatcher, memory, notifications, tenant, staff, service):
        tenant.reminder_hours_before = 24
        memory.add_booking(tenant.id, service.id, staff.id, at(9), at(9, 30))

        await dispatcher.run_due_reminders_for_tenant(tenant.id)
        report = await dispatcher.run_due_reminders_for_tenant(tenant.id)

        assert report.sent == 0
        assert report.skipped_already_sent == 1
        assert notifications.events() == ["booking_reminder"]

    async def test_failed_delivery_still_stamps(self, dispatcher, memory, notifications, tenant, staff, service):
        tenant.reminder_hours_before = 24
        booking = memory.add_booking(tenant.id, service.id, staff.id, at(9), at(9, 30))
        notifications.fail = True

        report = await dispatcher.run_due_reminders_for_tenant(tenant.id)

        assert report.sent == 1
        assert booking.reminder_sent_at is not None

    async def test_disabled_when_hours_is_zero(self, dispatcher, memory, notifications, tenant, staff, service):
        memory.add_booking(tenant.id, service.id, staff.id, at(9), at(9, 30))

        report = await dispatcher.run_due_reminders_for_tenant(tenant.id)

        assert report.disabled
        assert report.to_dict()["window_start"] is None
        assert notifications.calls == []

    async def test_other_tenants_bookings_are_ignored(self, dispatcher, memory, tenant, staff, service):
        tenant.reminder_hours_before = 24
        other = memory.add_tenant("Other", plan=Plan.PRO, reminder_hours_before=24)
        other_staff = memory.add_staff(other.id)
        other_service = memory.add_service(other.id)
        foreign = memory.add_booking(other.id, other_service.id, other_staff.id, at(9), at(9, 30))

        report = await dispatcher.run_due_reminders_for_tenant(tenant.id)

        assert report.sent == 0
        assert foreign.reminder_sent_at is None

    async def test_unknown_tenant(self, dispatcher):
        with pytest.raises(NotFoundError):
            await dispatcher.run_due_reminders_for_tenant(12345)


class TestReminderCycle:
    async def test_runs_every_enabled_tenant(self, store, memory, notifications, reminder_clock):
        first = memory.add_tenant("First", reminder_hours_before=24)
        second = memory.add_tenant("Second", reminder_hours_before=24)
        memory.add_tenant("Silent")
        for tenant in (first, second):
            staff = memory.add_staff(tenant.id)
            service = memory.add_service(tenant.id)
            memory.add_booking(tenant.id, service.id, staff.id, at(9), at(9, 30))

        @asynccontextmanager
        async def store_factory():
            yield store

        cycle = ReminderCycle(
            store_factory,
            lambda s: ReminderDispatcher(s, notifications=notifications, clock=reminder_clock),
        )
        await cycle()

        assert notifications.events() == ["booking_reminder", "booking_reminder"]

    async def test_audits_under_the_scheduler_actor(self, store, memory, notifications, audit, reminder_clock):
        tenant = memory.add_tenant("Audited", reminder_hours_before=24)
        staff = memory.add_staff(tenant.id)
        service = memory.add_service(tenant.id)
        memory.add_booking(tenant.id, service.id, staff.id, at(9), at(9, 30))

        @asynccontextmanager
        async def store_factory():
            yield store

        cycle = ReminderCycle(
            store_factory,
            lambda s: ReminderDispatcher(s, notifications=notifications, audit=audit, clock=reminder_clock),
        )
        await cycle()

        assert [(log.tenant_id, log.action, log.actor_id) for log in memory.audit_logs] == [
            (tenant.id, AuditAction.BOOKING_REMINDER_SENT, "system:reminder-scheduler")
        ]

    async def test_failing_tenant_does_not_stop_the_rest(self, store, memory, notifications, reminder_clock):
        broken = memory.add_tenant("Broken", reminder_hours_before=24)
        healthy = memory.add_tenant("Healthy", reminder_hours_before=24)
        staff = memory.add_staff(healthy.id)
        service = memory.add_service(healthy.id)
        booking = memory.add_booking(healthy.id, service.id, staff.id, at(9), at(9, 30))

        class FlakyDispatcher(ReminderDispatcher):
            async def run_due_reminders_for_tenant(self, tenant_id, actor_id="system:reminders"):
                if tenant_id == broken.id:
                    raise RuntimeError("database hiccup")
                return await super().run_due_reminders_for_tenant(tenant_id, actor_id)

        @asynccontextmanager
        async def store_factory():
            yield store

        cycle = ReminderCycle(store_factory, lambda s: FlakyDispatcher(s, notifications=notifications, clock=reminder_clock))
        await cycle()

        assert booking.reminder_sent_at is not None


class TestPeriodicTask:
    def test_interval_floor_and_default(self):
        assert SchedulerConfig(interval_seconds=0).effective_interval == 300
        assert SchedulerConfig(interval_seconds=-5).effective_interval == 300
        assert SchedulerConfig(interval_seconds=1).effective_interval == 15
        assert SchedulerConfig(interval_seconds=120).effective_interval == 120

    async def test_overlapping_runs_are_skipped(self):
        release = asyncio.Event()
        runs = []

        async def cycle():
            runs.append(1)
            await release.wait()

        task = PeriodicTask("test", cycle, SchedulerConfig())
        first = asyncio.create_task(task.run_once())
        await asyncio.sleep(0)

        assert task.is_running
        assert await task.run_once() is False

        release.set()
        assert await first is True
        assert not task.is_running
        assert runs == [1]

    async def test_cycle_errors_are_contained(self):
        async def cycle():
            raise RuntimeError("boom")

        task = PeriodicTask("test", cycle, SchedulerConfig())
        assert await task.run_once() is True
        assert not task.is_running

    async def test_disabled_task_does_not_start(self):
        task = PeriodicTask("test", lambda: asyncio.sleep(0), SchedulerConfig(enabled=False))
        assert task.start() is False
        assert not task.started

    async def test_start_and_stop(self):
        calls = []

        async def cycle():
            calls.append(1)

        task = PeriodicTask("test", cycle, SchedulerConfig(interval_seconds=60))
        assert task.start() is True
        assert task.start() is False
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await task.stop()

        assert calls == [1]
        assert not task.started
