"""
Booking quotas.

Three caps, evaluated in this order (the first exceeded one is reported):
    1. monthly plan cap   - only the free plan has one (50 active bookings per UTC month)
    2. daily cap          - tenant max_bookings_per_day, UTC day
    3. weekly cap         - tenant max_bookings_per_week, ISO week starting Monday

Counts are of active bookings (pending / confirmed / rescheduled) by start_at,
across all staff of the tenant.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from ..errors import QuotaExceededError, QuotaLimit
from ..models import Plan
from .time_window import utc_day_bounds, utc_month_bounds, utc_week_bounds

logger = logging.getLogger(__name__)

FREE_PLAN_MONTHLY_LIMIT = 50


def monthly_limit_for_plan(plan) -> Optional[int]:
    if Plan(plan) == Plan.FREE:
        return FREE_PLAN_MONTHLY_LIMIT
    return None


@dataclass(frozen=True)
class QuotaCheck:
    limit: QuotaLimit
    cap: int
    count: int

    @property
    def exceeded(self) -> bool:
        return self.count >= self.cap


@dataclass
class QuotaReport:
    checks: list[QuotaCheck] = field(default_factory=list)

    @property
    def first_exceeded(self) -> Optional[QuotaCheck]:
        for check in self.checks:
            if check.exceeded:
                return check
        return None

    @property
    def ok(self) -> bool:
        return self.first_exceeded is None


def has_caps(settings) -> bool:
    """True when any cap applies, i.e. writes must be serialized tenant-wide."""
    return (
        monthly_limit_for_plan(settings.plan) is not None
        or bool(settings.max_bookings_per_day)
        or bool(settings.max_bookings_per_week)
    )


class QuotaEnforcer:
    def __init__(self, bookings):
        self.bookings = bookings

    async def evaluate(
        self,
        settings,
        tenant_id: int,
        target: datetime,
        exclude_booking_id: Optional[UUID] = None,
    ) -> QuotaReport:
        """Count every configured cap for the period containing `target`."""
        report = QuotaReport()

        monthly_cap = monthly_limit_for_plan(settings.plan)
        if monthly_cap is not None:
            start, end = utc_month_bounds(target)
            count = await self.bookings.count_active_starting_between(tenant_id, start, end, exclude_booking_id)
            report.checks.append(QuotaCheck(QuotaLimit.MONTHLY, monthly_cap, count))

        if settings.max_bookings_per_day:
            start, end = utc_day_bounds(target)
            count = await self.bookings.count_active_starting_between(tenant_id, start, end, exclude_booking_id)
            report.checks.append(QuotaCheck(QuotaLimit.DAILY, settings.max_bookings_per_day, count))

        if settings.max_bookings_per_week:
            start, end = utc_week_bounds(target)
            count = await self.bookings.count_active_starting_between(tenant_id, start, end, exclude_booking_id)
            report.checks.append(QuotaCheck(QuotaLimit.WEEKLY, settings.max_bookings_per_week, count))

        return report

    async def enforce(
        self,
        settings,
        tenant_id: int,
        target: datetime,
        exclude_booking_id: Optional[UUID] = None,
    ) -> QuotaReport:
        report = await self.evaluate(settings, tenant_id, target, exclude_booking_id)
        exceeded = report.first_exceeded
        if exceeded is not None:
            logger.info(
                f"Tenant {tenant_id} hit {exceeded.limit.value} booking cap "
                f"({exceeded.count}/{exceeded.cap}) for {target.isoformat()}"
            )
            raise QuotaExceededError(exceeded.limit, exceeded.cap, exceeded.count)
        return report

    async def can_accept_more_bookings(self, settings, tenant_id: int, target: datetime) -> bool:
        report = await self.evaluate(settings, tenant_id, target)
        return report.ok
