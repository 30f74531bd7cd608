"""
Booking API.

Public routes (slots, bookings, waitlist) share the per-IP rate limiter.
Every route is tenant-scoped through /tenants/{tenant_id}; ids belonging to
another tenant answer 404 exactly like unknown ids.

Engine errors are turned into the standard error envelope by the handler
registered in main.py.
"""

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from .core.responses import ErrorResponse
from .dependencies import get_booking_engine, get_reminder_dispatcher
from .models import BookingStatus
from .rate_limiter import enforce_public_rate_limit
from .reminders import ReminderDispatcher
from .scheduling.engine import BookingEngine
from .scheduling.requests import (
    CancelBookingRequest,
    CreateBookingRequest,
    JoinWaitlistRequest,
    RescheduleBookingRequest,
)
from .scheduling.waitlist import WaitlistOutcome
from .tenancy.context import TenantContext, get_tenant_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}", tags=["bookings"])

_public = [Depends(enforce_public_rate_limit)]


# ────────────────────────────────────────────────────────────────
# Request / Response Models
# ────────────────────────────────────────────────────────────────

class CreateBookingBody(CreateBookingRequest):
    auto_waitlist: bool = False


class SlotResponse(BaseModel):
    start_at: datetime
    end_at: datetime


class SlotsResponse(BaseModel):
    date: str
    service_id: int
    staff_id: int
    slots: list[SlotResponse]


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: int
    service_id: int
    staff_id: int
    customer_id: Optional[str] = None
    customer_name: str
    customer_email: str
    start_at: datetime
    end_at: datetime
    status: BookingStatus
    notes: Optional[str] = None
    custom_fields: Optional[dict[str, Any]] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class WaitlistResponse(BaseModel):
    waitlist_entry_id: UUID
    status: str
    queue_position: int
    estimated_start_at: datetime
    estimated_end_at: datetime
    created: bool

    @classmethod
    def from_outcome(cls, outcome: WaitlistOutcome) -> "WaitlistResponse":
        data = outcome.to_dict()
        return cls(
            waitlist_entry_id=outcome.entry.id,
            status=data["status"],
            queue_position=outcome.queue_position,
            estimated_start_at=outcome.estimated_start_at,
            estimated_end_at=outcome.estimated_end_at,
            created=outcome.created,
        )


def _waitlist_accepted(outcome: WaitlistOutcome) -> JSONResponse:
    body = WaitlistResponse.from_outcome(outcome).model_dump(mode="json")
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=body)


# ────────────────────────────────────────────────────────────────
# Slots
# ────────────────────────────────────────────────────────────────

@router.get("/slots", response_model=SlotsResponse, dependencies=_public,
            responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}})
async def list_slots(
    service_id: int = Query(..., gt=0),
    staff_id: int = Query(..., gt=0),
    date: str = Query(..., description="YYYY-MM-DD (UTC calendar day)"),
    ctx: TenantContext = Depends(get_tenant_context),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Bookable start times for one staff member on one day."""
    slots = await engine.list_available_slots(ctx.tenant_id, service_id, staff_id, date)
    return SlotsResponse(
        date=date,
        service_id=service_id,
        staff_id=staff_id,
        slots=[SlotResponse(start_at=slot.start_at, end_at=slot.end_at) for slot in slots],
    )


# ────────────────────────────────────────────────────────────────
# Bookings
# ────────────────────────────────────────────────────────────────

@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED,
             dependencies=_public,
             responses={
                 202: {"model": WaitlistResponse},
                 400: {"model": ErrorResponse},
                 409: {"model": ErrorResponse},
                 422: {"model": ErrorResponse},
             })
async def create_booking(
    payload: CreateBookingBody,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """
    Book an exact start time.

    With auto_waitlist=true an occupied slot answers 202 with the waitlist
    entry instead of 409.
    """
    result = await engine.create_booking(
        ctx.tenant_id,
        payload,
        auto_waitlist_on_occupied=payload.auto_waitlist,
        actor_id=ctx.actor_id,
    )
    if isinstance(result, WaitlistOutcome):
        return _waitlist_accepted(result)
    return BookingResponse.model_validate(result)


@router.get("/bookings/{booking_id}", response_model=BookingResponse,
            responses={404: {"model": ErrorResponse}})
async def get_booking(
    booking_id: str,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: BookingEngine = Depends(get_booking_engine),
):
    booking = await engine.get_booking(ctx.tenant_id, booking_id)
    return BookingResponse.model_validate(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse, dependencies=_public,
             responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}})
async def cancel_booking(
    booking_id: str,
    payload: Optional[CancelBookingRequest] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Cancel a booking. Cancelling twice returns the cancelled booking unchanged."""
    reason = payload.reason if payload else None
    booking = await engine.cancel_booking(ctx.tenant_id, booking_id, reason=reason, actor_id=ctx.actor_id)
    return BookingResponse.model_validate(booking)


@router.post("/bookings/{booking_id}/reschedule", response_model=BookingResponse, dependencies=_public,
             responses={
                 404: {"model": ErrorResponse},
                 409: {"model": ErrorResponse},
                 422: {"model": ErrorResponse},
             })
async def reschedule_booking(
    booking_id: str,
    payload: RescheduleBookingRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: BookingEngine = Depends(get_booking_engine),
):
    booking = await engine.reschedule_booking(ctx.tenant_id, booking_id, payload.start_at, actor_id=ctx.actor_id)
    return BookingResponse.model_validate(booking)


# ────────────────────────────────────────────────────────────────
# Waitlist
# ────────────────────────────────────────────────────────────────

@router.post("/waitlist", response_model=WaitlistResponse, status_code=status.HTTP_202_ACCEPTED,
             dependencies=_public, responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}})
async def join_waitlist(
    payload: JoinWaitlistRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: BookingEngine = Depends(get_booking_engine),
):
    outcome = await engine.join_waitlist(ctx.tenant_id, payload, actor_id=ctx.actor_id)
    return WaitlistResponse.from_outcome(outcome)


@router.get("/waitlist/{entry_id}", response_model=WaitlistResponse,
            responses={404: {"model": ErrorResponse}})
async def get_waitlist_entry(
    entry_id: str,
    ctx: TenantContext = Depends(get_tenant_context),
    engine: BookingEngine = Depends(get_booking_engine),
):
    outcome = await engine.get_waitlist_feedback(ctx.tenant_id, entry_id)
    return WaitlistResponse.from_outcome(outcome)


# ────────────────────────────────────────────────────────────────
# Reminders
# ────────────────────────────────────────────────────────────────

@router.post("/reminders/run", responses={404: {"model": ErrorResponse}})
async def run_reminders(
    ctx: TenantContext = Depends(get_tenant_context),
    dispatcher: ReminderDispatcher = Depends(get_reminder_dispatcher),
):
    """Send the reminders due right now for this tenant."""
    report = await dispatcher.run_due_reminders_for_tenant(ctx.tenant_id, ctx.actor_id or "system:reminders")
    return report.to_dict()
