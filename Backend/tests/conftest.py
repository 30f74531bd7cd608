"""
Pytest configuration and fixtures.

Engine tests run against the in-memory store with a pinned clock. SQL tests
get a throwaway SQLite database (aiosqlite) per test so the real SQLAlchemy
adapters are exercised without a PostgreSQL server.
"""
from datetime import date, datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from apoint.core.clock import FixedClock
from apoint.core.db import Base
from apoint.models import Plan
from apoint.repositories.memory import MemoryAuditRecorder, MemorySchedulingStore, MemoryStore
from apoint.scheduling.engine import BookingEngine
from apoint.scheduling.locks import InProcessStaffLocks
from apoint.scheduling.requests import CreateBookingRequest, JoinWaitlistRequest

# 2030-01-07 is a Monday (day_of_week 1).
MONDAY = date(2030, 1, 7)
MONDAY_DOW = 1
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    """UTC instant on `day` (Monday by default)."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def booking_request(service, staff, start_at: datetime, email: str = "alex@example.com", **fields):
    return CreateBookingRequest(
        service_id=service.id,
        staff_id=staff.id,
        start_at=start_at,
        customer_name=fields.pop("customer_name", "Alex Customer"),
        customer_email=email,
        **fields,
    )


def waitlist_request(service, staff, preferred_start_at: datetime, email: str = "wait@example.com"):
    return JoinWaitlistRequest(
        service_id=service.id,
        staff_id=staff.id,
        preferred_start_at=preferred_start_at,
        customer_name="Waiting Customer",
        customer_email=email,
    )


class RecordingNotifications:
    """Notification gateway that remembers every call. Set `fail` to make it raise."""

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self.fail = False

    def events(self) -> list[str]:
        return [event for event, _ in self.calls]

    async def _record(self, event: str, *args) -> bool:
        self.calls.append((event, args))
        if self.fail:
            raise RuntimeError(f"{event} delivery failed")
        return True

    async def notify_booking_created(self, booking, service=None):
        return await self._record("booking_created", booking, service)

    async def notify_booking_cancelled(self, booking):
        return await self._record("booking_cancelled", booking)

    async def notify_booking_rescheduled(self, booking, previous_start_at):
        return await self._record("booking_rescheduled", booking, previous_start_at)

    async def notify_waitlist_slot_available(self, entry, booking):
        return await self._record("waitlist_slot_available", entry, booking)

    async def notify_booking_reminder(self, booking):
        return await self._record("booking_reminder", booking)


# ────────────────────────────────────────────────────────────────
# In-memory fixtures
# ────────────────────────────────────────────────────────────────

@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def memory():
    return MemoryStore()


@pytest.fixture
def store(memory):
    # Fresh locks per test: asyncio locks belong to the loop that created them.
    return MemorySchedulingStore(memory, locks=InProcessStaffLocks())


@pytest.fixture
def notifications():
    return RecordingNotifications()


@pytest.fixture
def audit(memory):
    return MemoryAuditRecorder(memory)


@pytest.fixture
def engine(store, notifications, audit, clock):
    return BookingEngine(store, notifications=notifications, audit=audit, clock=clock)


@pytest.fixture
def tenant(memory):
    return memory.add_tenant("Acme Studio", plan=Plan.PRO)


@pytest.fixture
def staff(memory, tenant):
    return memory.add_staff(tenant.id, "Jordan")


@pytest.fixture
def service(memory, tenant):
    return memory.add_service(tenant.id, "Consultation", duration_minutes=30)


@pytest.fixture
def monday_rule(memory, tenant, staff):
    return memory.add_rule(tenant.id, MONDAY_DOW, "09:00", "17:00", staff_id=staff.id)


# ────────────────────────────────────────────────────────────────
# SQL fixtures
# ────────────────────────────────────────────────────────────────

@pytest.fixture
async def sql_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'apoint_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return async_sessionmaker(sql_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def sql_session(session_factory):
    async with session_factory() as session:
        yield session


