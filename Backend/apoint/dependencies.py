"""
FastAPI dependencies shared by the routers.

Collaborators (notification gateway, audit recorder, clock) are attached to
app.state in main.py; tests override get_store / get_booking_engine through
app.dependency_overrides.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .core.clock import SystemClock
from .core.db import get_session
from .reminders import ReminderDispatcher
from .repositories.sql import SqlSchedulingStore
from .scheduling.engine import BookingEngine


async def get_store(session: AsyncSession = Depends(get_session)) -> SqlSchedulingStore:
    return SqlSchedulingStore(session)


def _collaborators(request: Request):
    state = request.app.state
    return (
        getattr(state, "notifications", None),
        getattr(state, "audit", None),
        getattr(state, "clock", None) or SystemClock(),
    )


async def get_booking_engine(request: Request, store=Depends(get_store)) -> BookingEngine:
    notifications, audit, clock = _collaborators(request)
    return BookingEngine(store, notifications=notifications, audit=audit, clock=clock)


async def get_reminder_dispatcher(request: Request, store=Depends(get_store)) -> ReminderDispatcher:
    notifications, audit, clock = _collaborators(request)
    return ReminderDispatcher(store, notifications=notifications, audit=audit, clock=clock)
