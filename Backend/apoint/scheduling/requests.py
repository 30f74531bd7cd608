"""Request models accepted by the booking engine."""

import re
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .time_window import ensure_utc

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _normalize_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Customer name is required")
    return v


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Customer email is not valid")
    return v


class CreateBookingRequest(BaseModel):
    """Request to book a service with a staff member at an exact start time."""
    service_id: int = Field(..., gt=0)
    staff_id: int = Field(..., gt=0)
    start_at: datetime = Field(..., description="ISO 8601 instant; naive values are taken as UTC")
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: str = Field(..., max_length=255)
    customer_id: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = Field(None, max_length=2000)
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    @field_validator('start_at')
    @classmethod
    def normalize_start(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator('customer_name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _normalize_name(v)

    @field_validator('customer_email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)


class CancelBookingRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RescheduleBookingRequest(BaseModel):
    start_at: datetime

    @field_validator('start_at')
    @classmethod
    def normalize_start(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class JoinWaitlistRequest(BaseModel):
    """Request to wait for a specific start time with a staff member."""
    service_id: int = Field(..., gt=0)
    staff_id: int = Field(..., gt=0)
    preferred_start_at: datetime
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: str = Field(..., max_length=255)
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator('preferred_start_at')
    @classmethod
    def normalize_start(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator('customer_name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _normalize_name(v)

    @field_validator('customer_email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)
