"""
Availability administration.

CRUD for weekly rules and date exceptions, scoped to one tenant.

Rules:
    - start_time / end_time in HH:mm, end later than start
    - day_of_week 0..6 (0 = Sunday)
    - staff_id optional (absent = every staff member); must belong to the tenant
Exceptions:
    - start_time / end_time given together, or both omitted for a full day
    - is_unavailable defaults to true

Unknown ids, and ids owned by another tenant, raise NotFoundError.
"""

import logging
from datetime import date as date_type, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, ConfigDict, Field

from .core.responses import ErrorResponse
from .dependencies import get_store
from .errors import NotFoundError, ValidationError
from .models import AvailabilityException, AvailabilityRule
from .scheduling.time_window import validate_optional_time_window, validate_time_window
from .tenancy.context import TenantContext, get_tenant_context

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────
# Request / Response Models
# ────────────────────────────────────────────────────────────────

class RuleCreate(BaseModel):
    day_of_week: int
    start_time: str = Field(..., description="HH:mm")
    end_time: str = Field(..., description="HH:mm")
    staff_id: Optional[int] = None
    is_active: bool = True


class RuleUpdate(BaseModel):
    day_of_week: Optional[int] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    staff_id: Optional[int] = None
    is_active: Optional[bool] = None


class RuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    staff_id: Optional[int]
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool


class ExceptionCreate(BaseModel):
    date: date_type
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_unavailable: bool = True
    staff_id: Optional[int] = None
    note: Optional[str] = Field(None, max_length=255)


class ExceptionUpdate(BaseModel):
    date: Optional[date_type] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_unavailable: Optional[bool] = None
    staff_id: Optional[int] = None
    note: Optional[str] = Field(None, max_length=255)


class ExceptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    staff_id: Optional[int]
    date: date_type
    start_time: Optional[str]
    end_time: Optional[str]
    is_unavailable: bool
    note: Optional[str]
    created_at: Optional[datetime] = None


# ────────────────────────────────────────────────────────────────
# Service
# ────────────────────────────────────────────────────────────────

def _validate_day_of_week(value: int) -> None:
    if not isinstance(value, int) or not 0 <= value <= 6:
        raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday).", {"day_of_week": value})


class AvailabilityAdmin:
    def __init__(self, store):
        self.store = store

    async def _ensure_staff_in_tenant(self, tenant_id: int, staff_id: Optional[int]) -> None:
        if staff_id is None:
            return
        if await self.store.staff.get(tenant_id, staff_id) is None:
            raise ValidationError("Staff member does not belong to this tenant.", {"staff_id": staff_id})

    async def _rule(self, tenant_id: int, rule_id: int) -> AvailabilityRule:
        rule = await self.store.rules.get(tenant_id, rule_id)
        if rule is None:
            raise NotFoundError("Availability rule not found.")
        return rule

    async def _exception(self, tenant_id: int, exception_id: int) -> AvailabilityException:
        exception = await self.store.exceptions.get(tenant_id, exception_id)
        if exception is None:
            raise NotFoundError("Availability exception not found.")
        return exception

    # Rules

    async def list_rules(self, tenant_id: int, staff_id: Optional[int] = None):
        return await self.store.rules.list_for_tenant(tenant_id, staff_id)

    async def create_rule(self, tenant_id: int, payload: RuleCreate) -> AvailabilityRule:
        _validate_day_of_week(payload.day_of_week)
        validate_time_window(payload.start_time, payload.end_time)
        await self._ensure_staff_in_tenant(tenant_id, payload.staff_id)

        rule = await self.store.rules.add(
            AvailabilityRule(
                tenant_id=tenant_id,
                staff_id=payload.staff_id,
                day_of_week=payload.day_of_week,
                start_time=payload.start_time,
                end_time=payload.end_time,
                is_active=payload.is_active,
            )
        )
        await self.store.commit()
        logger.info(f"Created availability rule {rule.id} for tenant {tenant_id}")
        return rule

    async def update_rule(self, tenant_id: int, rule_id: int, payload: RuleUpdate) -> AvailabilityRule:
        rule = await self._rule(tenant_id, rule_id)
        changes = payload.model_dump(exclude_unset=True)

        day_of_week = changes.get("day_of_week", rule.day_of_week)
        start_time = changes.get("start_time") or rule.start_time
        end_time = changes.get("end_time") or rule.end_time
        _validate_day_of_week(day_of_week)
        validate_time_window(start_time, end_time)
        if "staff_id" in changes:
            await self._ensure_staff_in_tenant(tenant_id, changes["staff_id"])

        rule.day_of_week = day_of_week
        rule.start_time = start_time
        rule.end_time = end_time
        if "staff_id" in changes:
            rule.staff_id = changes["staff_id"]
        if changes.get("is_active") is not None:
            rule.is_active = changes["is_active"]

        await self.store.rules.save(rule)
        await self.store.commit()
        return rule

    async def delete_rule(self, tenant_id: int, rule_id: int) -> None:
        rule = await self._rule(tenant_id, rule_id)
        await self.store.rules.delete(rule)
        await self.store.commit()
        logger.info(f"Deleted availability rule {rule_id} for tenant {tenant_id}")

    # Exceptions

    async def list_exceptions(self, tenant_id: int, staff_id: Optional[int] = None):
        return await self.store.exceptions.list_for_tenant(tenant_id, staff_id)

    async def create_exception(self, tenant_id: int, payload: ExceptionCreate) -> AvailabilityException:
        validate_optional_time_window(payload.start_time, payload.end_time)
        await self._ensure_staff_in_tenant(tenant_id, payload.staff_id)

        exception = await self.store.exceptions.add(
            AvailabilityException(
                tenant_id=tenant_id,
                staff_id=payload.staff_id,
                date=payload.date,
                start_time=payload.start_time,
                end_time=payload.end_time,
                is_unavailable=payload.is_unavailable,
                note=payload.note,
            )
        )
        await self.store.commit()
        logger.info(f"Created availability exception {exception.id} for tenant {tenant_id} on {payload.date}")
        return exception

    async def update_exception(
        self, tenant_id: int, exception_id: int, payload: ExceptionUpdate
    ) -> AvailabilityException:
        exception = await self._exception(tenant_id, exception_id)
        changes = payload.model_dump(exclude_unset=True)

        start_time = changes["start_time"] if "start_time" in changes else exception.start_time
        end_time = changes["end_time"] if "end_time" in changes else exception.end_time
        validate_optional_time_window(start_time, end_time)
        if "staff_id" in changes:
            await self._ensure_staff_in_tenant(tenant_id, changes["staff_id"])

        exception.start_time = start_time
        exception.end_time = end_time
        if changes.get("date") is not None:
            exception.date = changes["date"]
        if changes.get("is_unavailable") is not None:
            exception.is_unavailable = changes["is_unavailable"]
        if "staff_id" in changes:
            exception.staff_id = changes["staff_id"]
        if "note" in changes:
            exception.note = changes["note"]

        await self.store.exceptions.save(exception)
        await self.store.commit()
        return exception

    async def delete_exception(self, tenant_id: int, exception_id: int) -> None:
        exception = await self._exception(tenant_id, exception_id)
        await self.store.exceptions.delete(exception)
        await self.store.commit()


# ────────────────────────────────────────────────────────────────
# Routes
# ────────────────────────────────────────────────────────────────

router = APIRouter(prefix="/tenants/{tenant_id}/availability", tags=["availability"])

_errors = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


async def get_availability_admin(store=Depends(get_store)) -> AvailabilityAdmin:
    return AvailabilityAdmin(store)


@router.get("/rules", response_model=list[RuleResponse])
async def list_rules(
    staff_id: Optional[int] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    admin: AvailabilityAdmin = Depends(get_availability_admin),
):
    return await admin.list_rules(ctx.tenant_id, staff_id)


@router.post("/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED, responses=_errors)
async def create_rule(
    payload: RuleCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    admin: AvailabilityAdmin = Depends(get_availability_admin),
):
    return await admin.create_rule(ctx.tenant_id, payload)


@router.patch("/rules/{rule_id}", response_model=RuleResponse, responses=_errors)
async def update_rule(
    rule_id: int,
    payload: RuleUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    admin: AvailabilityAdmin = Depends(get_availability_admin),
):
    return await admin.update_rule(ctx.tenant_id, rule_id, payload)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT, responses=_errors)
async def delete_rule(
    rule_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    admin: AvailabilityAdmin = Depends(get_availability_admin),
):
    await admin.delete_rule(ctx.tenant_id, rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/exceptions", response_model=list[ExceptionResponse])
async def list_exceptions(
    staff_id: Optional[int] = None,
    ctx: TenantContext = Depends(get_tenant_context),
    admin: AvailabilityAdmin = Depends(get_availability_admin),
):
    return await admin.list_exceptions(ctx.tenant_id, staff_id)


@router.post("/exceptions", response_model=ExceptionResponse, status_code=status.HTTP_201_CREATED, responses=_errors)
async def create_exception(
    payload: ExceptionCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    admin: AvailabilityAdmin = Depends(get_availability_admin),
):
    return await admin.create_exception(ctx.tenant_id, payload)


@router.patch("/exceptions/{exception_id}", response_model=ExceptionResponse, responses=_errors)
async def update_exception(
    exception_id: int,
    payload: ExceptionUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    admin: AvailabilityAdmin = Depends(get_availability_admin),
):
    return await admin.update_exception(ctx.tenant_id, exception_id, payload)


@router.delete("/exceptions/{exception_id}", status_code=status.HTTP_204_NO_CONTENT, responses=_errors)
async def delete_exception(
    exception_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    admin: AvailabilityAdmin = Depends(get_availability_admin),
):
    await admin.delete_exception(ctx.tenant_id, exception_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
