"""
Availability & booking core.

Modules:
    time_window: HH:mm validation, minute-of-day and UTC calendar arithmetic
    availability: rules + exceptions -> resolved minute windows
    slots: 15-minute stride candidate slots
    collision: buffered overlap checks against active bookings
    quota: monthly plan / daily / weekly caps
    lifecycle: status transitions and notice windows
    waitlist: idempotent join, FIFO promotion on cancellation
    engine: BookingEngine, the operations callers use
    ports: interfaces the core consumes
"""

from .availability import AvailabilityResolver, MinuteWindow, ResolvedAvailability, resolve_windows
from .collision import CollisionDetector, expand_by_buffer, find_collisions, has_collision
from .engine import BookingEngine
from .locks import InProcessStaffLocks, staff_locks
from .ports import AuditAction, SchedulingStore, TenantSettings
from .quota import FREE_PLAN_MONTHLY_LIMIT, QuotaEnforcer, QuotaReport, monthly_limit_for_plan
from .requests import (
    CancelBookingRequest,
    CreateBookingRequest,
    JoinWaitlistRequest,
    RescheduleBookingRequest,
)
from .slots import SLOT_STEP_MINUTES, Slot, generate_slots
from .waitlist import WaitlistCoordinator, WaitlistOutcome

__all__ = [
    "AuditAction",
    "AvailabilityResolver",
    "BookingEngine",
    "CancelBookingRequest",
    "CollisionDetector",
    "CreateBookingRequest",
    "FREE_PLAN_MONTHLY_LIMIT",
    "InProcessStaffLocks",
    "JoinWaitlistRequest",
    "MinuteWindow",
    "QuotaEnforcer",
    "QuotaReport",
    "RescheduleBookingRequest",
    "ResolvedAvailability",
    "SLOT_STEP_MINUTES",
    "SchedulingStore",
    "Slot",
    "TenantSettings",
    "WaitlistCoordinator",
    "WaitlistOutcome",
    "expand_by_buffer",
    "find_collisions",
    "generate_slots",
    "has_collision",
    "monthly_limit_for_plan",
    "resolve_windows",
    "staff_locks",
]
