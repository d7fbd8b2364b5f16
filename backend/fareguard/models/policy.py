import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from fareguard.database import Base


class BookingPolicy(Base):
    __tablename__ = "booking_policies"
    __table_args__ = (
        Index("idx_booking_policies_lookup", "organization_id", "role", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    role: Mapped[str] = mapped_column(String(30), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    effective_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    effective_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    flight_max_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    hotel_max_amount_per_night: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    hotel_max_amount_total: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    monthly_limit: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    annual_limit: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    allowed_flight_classes: Mapped[list | None] = mapped_column(JSONB)
    requires_approval_above: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    auto_approve_below: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    advance_booking_days: Mapped[int | None] = mapped_column(Integer)
    max_trip_duration: Mapped[int | None] = mapped_column(Integer)
    allow_manager_override: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class PolicyException(Base):
    __tablename__ = "policy_exceptions"
    __table_args__ = (
        Index("idx_policy_exceptions_lookup", "policy_id", "user_id", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    policy_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("booking_policies.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    flight_max_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    hotel_max_amount_per_night: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    hotel_max_amount_total: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    reason: Mapped[str | None] = mapped_column(Text)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class PolicyUsageLog(Base):
    __tablename__ = "policy_usage_logs"
    __table_args__ = (
        Index("idx_policy_usage_logs_org_created", "organization_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    policy_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("booking_policies.id")
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    booking_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    policy_snapshot: Mapped[dict | None] = mapped_column(JSONB)
    booking_type: Mapped[str | None] = mapped_column(String(20))
    requested_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    policy_limit: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    currency: Mapped[str | None] = mapped_column(String(3))
    was_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False)
    details: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
