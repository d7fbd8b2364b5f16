"""Booking policy records and the request/response shapes of the policy API."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from fareguard.schemas.travel import normalize_cabin

EVENT_TYPES = ("policy_applied", "policy_violated")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class PolicyRecord:
    organization_id: str
    name: str
    role: str
    id: str = field(default_factory=_new_id)
    description: str | None = None
    priority: int = 0
    is_active: bool = True
    effective_from: datetime | None = None
    effective_to: datetime | None = None
    flight_max_amount: Decimal | None = None
    hotel_max_amount_per_night: Decimal | None = None
    hotel_max_amount_total: Decimal | None = None
    monthly_limit: Decimal | None = None
    annual_limit: Decimal | None = None
    allowed_flight_classes: tuple[str, ...] | None = None
    requires_approval_above: Decimal | None = None
    auto_approve_below: Decimal | None = None
    advance_booking_days: int | None = None
    max_trip_duration: int | None = None
    allow_manager_override: bool = False
    created_by: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    deleted_at: datetime | None = None


@dataclass(frozen=True)
class PolicyExceptionRecord:
    policy_id: str
    user_id: str
    id: str = field(default_factory=_new_id)
    is_active: bool = True
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    # Only these three limits can be overridden per user
    flight_max_amount: Decimal | None = None
    hotel_max_amount_per_night: Decimal | None = None
    hotel_max_amount_total: Decimal | None = None
    reason: str | None = None
    approved_by: str | None = None
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class UsageLogEntry:
    organization_id: str
    user_id: str
    event_type: str  # policy_applied | policy_violated
    was_allowed: bool
    requires_approval: bool
    id: str = field(default_factory=_new_id)
    policy_id: str | None = None
    booking_id: str | None = None
    policy_snapshot: dict | None = None
    booking_type: str | None = None
    requested_amount: Decimal | None = None
    policy_limit: Decimal | None = None
    currency: str | None = None
    details: str | None = None
    metadata: dict | None = None
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class UsageLogFilters:
    user_id: str | None = None
    policy_id: str | None = None
    event_type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


# ─── API shapes ───


class PolicyCheckRequest(BaseModel):
    booking_type: Literal["flight", "hotel"]
    amount: Decimal = Field(ge=0)
    currency: str = "USD"
    flight_class: str | None = None
    number_of_nights: int | None = Field(default=None, ge=1)
    total_amount: Decimal | None = Field(default=None, ge=0)
    departure_date: datetime | None = None
    return_date: datetime | None = None
    booking_id: str | None = None

    @field_validator("flight_class")
    @classmethod
    def _normalize_flight_class(cls, v: str | None) -> str | None:
        return normalize_cabin(v) if v else v


class PolicyCreate(BaseModel):
    name: str
    role: str
    description: str | None = None
    priority: int = 0
    is_active: bool = True
    effective_from: datetime | None = None
    effective_to: datetime | None = None
    flight_max_amount: Decimal | None = None
    hotel_max_amount_per_night: Decimal | None = None
    hotel_max_amount_total: Decimal | None = None
    monthly_limit: Decimal | None = None
    annual_limit: Decimal | None = None
    allowed_flight_classes: list[str] | None = None
    requires_approval_above: Decimal | None = None
    auto_approve_below: Decimal | None = None
    advance_booking_days: int | None = None
    max_trip_duration: int | None = None
    allow_manager_override: bool = False


class PolicyUpdate(BaseModel):
    name: str | None = None
    role: str | None = None
    description: str | None = None
    priority: int | None = None
    is_active: bool | None = None
    effective_from: datetime | None = None
    effective_to: datetime | None = None
    flight_max_amount: Decimal | None = None
    hotel_max_amount_per_night: Decimal | None = None
    hotel_max_amount_total: Decimal | None = None
    monthly_limit: Decimal | None = None
    annual_limit: Decimal | None = None
    allowed_flight_classes: list[str] | None = None
    requires_approval_above: Decimal | None = None
    auto_approve_below: Decimal | None = None
    advance_booking_days: int | None = None
    max_trip_duration: int | None = None
    allow_manager_override: bool | None = None


class ExceptionCreate(BaseModel):
    user_id: str
    reason: str | None = None
    is_active: bool = True
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    flight_max_amount: Decimal | None = None
    hotel_max_amount_per_night: Decimal | None = None
    hotel_max_amount_total: Decimal | None = None
