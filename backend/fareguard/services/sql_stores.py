"""PostgreSQL-backed policy store, spend ledger and audit sink (SQLAlchemy async)."""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fareguard.errors import NotFoundError
from fareguard.models.booking import Booking
from fareguard.models.policy import BookingPolicy, PolicyException, PolicyUsageLog
from fareguard.models.user import User
from fareguard.schemas.policy import (
    PolicyExceptionRecord,
    PolicyRecord,
    UsageLogEntry,
    UsageLogFilters,
)
from fareguard.services.audit_recorder import USAGE_LOG_LIMIT, AuditSink
from fareguard.services.policy_store import PolicyStore
from fareguard.services.spend_ledger import SpendLedger

logger = logging.getLogger(__name__)

POLICY_FIELDS = (
    "name", "description", "role", "priority", "is_active", "effective_from", "effective_to",
    "flight_max_amount", "hotel_max_amount_per_night", "hotel_max_amount_total",
    "monthly_limit", "annual_limit", "allowed_flight_classes", "requires_approval_above",
    "auto_approve_below", "advance_booking_days", "max_trip_duration", "allow_manager_override",
)


def _uuid(value: str | None) -> uuid.UUID | None:
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _str(value) -> str | None:
    return str(value) if value is not None else None


def policy_to_record(p: BookingPolicy) -> PolicyRecord:
    return PolicyRecord(
        id=str(p.id),
        organization_id=str(p.organization_id),
        name=p.name,
        description=p.description,
        role=p.role,
        priority=p.priority or 0,
        is_active=bool(p.is_active),
        effective_from=p.effective_from,
        effective_to=p.effective_to,
        flight_max_amount=p.flight_max_amount,
        hotel_max_amount_per_night=p.hotel_max_amount_per_night,
        hotel_max_amount_total=p.hotel_max_amount_total,
        monthly_limit=p.monthly_limit,
        annual_limit=p.annual_limit,
        allowed_flight_classes=tuple(p.allowed_flight_classes) if p.allowed_flight_classes is not None else None,
        requires_approval_above=p.requires_approval_above,
        auto_approve_below=p.auto_approve_below,
        advance_booking_days=p.advance_booking_days,
        max_trip_duration=p.max_trip_duration,
        allow_manager_override=bool(p.allow_manager_override),
        created_by=_str(p.created_by),
        created_at=p.created_at,
        deleted_at=p.deleted_at,
    )


def exception_to_record(e: PolicyException) -> PolicyExceptionRecord:
    return PolicyExceptionRecord(
        id=str(e.id),
        policy_id=str(e.policy_id),
        user_id=str(e.user_id),
        is_active=bool(e.is_active),
        valid_from=e.valid_from,
        valid_to=e.valid_to,
        flight_max_amount=e.flight_max_amount,
        hotel_max_amount_per_night=e.hotel_max_amount_per_night,
        hotel_max_amount_total=e.hotel_max_amount_total,
        reason=e.reason,
        approved_by=_str(e.approved_by),
        created_at=e.created_at,
    )


def usage_log_to_entry(log: PolicyUsageLog) -> UsageLogEntry:
    return UsageLogEntry(
        id=str(log.id),
        organization_id=str(log.organization_id),
        user_id=str(log.user_id),
        event_type=log.event_type,
        was_allowed=log.was_allowed,
        requires_approval=log.requires_approval,
        policy_id=_str(log.policy_id),
        booking_id=_str(log.booking_id),
        policy_snapshot=log.policy_snapshot,
        booking_type=log.booking_type,
        requested_amount=log.requested_amount,
        policy_limit=log.policy_limit,
        currency=log.currency,
        details=log.details,
        metadata=log.metadata_,
        created_at=log.created_at,
    )


class SqlPolicyStore(PolicyStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_user_role(self, user_id: str) -> str | None:
        uid = _uuid(user_id)
        if uid is None:
            return None
        async with self._session_factory() as db:
            result = await db.execute(select(User.role).where(User.id == uid))
            return result.scalar_one_or_none()

    async def find_effective_policy_candidate(self, organization_id, role, now):
        org_id = _uuid(organization_id)
        if org_id is None:
            return None
        async with self._session_factory() as db:
            result = await db.execute(
                select(BookingPolicy)
                .where(
                    BookingPolicy.organization_id == org_id,
                    BookingPolicy.role == role,
                    BookingPolicy.is_active == True,
                    BookingPolicy.deleted_at.is_(None),
                    or_(BookingPolicy.effective_from.is_(None), BookingPolicy.effective_from <= now),
                    or_(BookingPolicy.effective_to.is_(None), BookingPolicy.effective_to >= now),
                )
                .order_by(BookingPolicy.priority.desc(), BookingPolicy.created_at.desc())
                .limit(1)
            )
            policy = result.scalar_one_or_none()
            return policy_to_record(policy) if policy else None

    async def find_active_exception(self, policy_id, user_id, now):
        pid, uid = _uuid(policy_id), _uuid(user_id)
        if pid is None or uid is None:
            return None
        async with self._session_factory() as db:
            result = await db.execute(
                select(PolicyException)
                .where(
                    PolicyException.policy_id == pid,
                    PolicyException.user_id == uid,
                    PolicyException.is_active == True,
                    or_(PolicyException.valid_from.is_(None), PolicyException.valid_from <= now),
                    or_(PolicyException.valid_to.is_(None), PolicyException.valid_to >= now),
                )
                .order_by(PolicyException.created_at.desc())
                .limit(1)
            )
            exception = result.scalar_one_or_none()
            return exception_to_record(exception) if exception else None

    async def list_policies(self, organization_id: str) -> list[PolicyRecord]:
        org_id = _uuid(organization_id)
        if org_id is None:
            return []
        async with self._session_factory() as db:
            result = await db.execute(
                select(BookingPolicy)
                .where(BookingPolicy.organization_id == org_id, BookingPolicy.deleted_at.is_(None))
                .order_by(BookingPolicy.priority.desc(), BookingPolicy.created_at.desc())
            )
            return [policy_to_record(p) for p in result.scalars().all()]

    async def _load_policy(self, db: AsyncSession, policy_id: str) -> BookingPolicy:
        pid = _uuid(policy_id)
        policy = await db.get(BookingPolicy, pid) if pid else None
        if policy is None or policy.deleted_at is not None:
            raise NotFoundError(f"Policy {policy_id} not found")
        return policy

    async def get_policy(self, policy_id: str) -> PolicyRecord | None:
        async with self._session_factory() as db:
            try:
                return policy_to_record(await self._load_policy(db, policy_id))
            except NotFoundError:
                return None

    async def create_policy(self, policy: PolicyRecord) -> PolicyRecord:
        async with self._session_factory() as db:
            row = BookingPolicy(
                id=_uuid(policy.id),
                organization_id=_uuid(policy.organization_id),
                created_by=_uuid(policy.created_by),
                **{name: getattr(policy, name) for name in POLICY_FIELDS},
            )
            if policy.allowed_flight_classes is not None:
                row.allowed_flight_classes = list(policy.allowed_flight_classes)
            db.add(row)
            await db.commit()
            await db.refresh(row)
            logger.info(f"Created policy {row.id} ({row.name}) for role {row.role}")
            return policy_to_record(row)

    async def update_policy(self, policy_id: str, changes: dict) -> PolicyRecord:
        async with self._session_factory() as db:
            row = await self._load_policy(db, policy_id)
            for name, value in changes.items():
                if name == "allowed_flight_classes" and value is not None:
                    value = list(value)
                setattr(row, name, value)
            await db.commit()
            await db.refresh(row)
            return policy_to_record(row)

    async def delete_policy(self, policy_id: str) -> PolicyRecord:
        return await self.update_policy(
            policy_id, {"deleted_at": datetime.now(timezone.utc), "is_active": False}
        )

    async def create_exception(self, exception: PolicyExceptionRecord) -> PolicyExceptionRecord:
        async with self._session_factory() as db:
            await self._load_policy(db, exception.policy_id)
            user_id = _uuid(exception.user_id)
            if user_id is None:
                raise NotFoundError(f"User {exception.user_id} not found")
            row = PolicyException(
                id=_uuid(exception.id),
                policy_id=_uuid(exception.policy_id),
                user_id=user_id,
                is_active=exception.is_active,
                valid_from=exception.valid_from,
                valid_to=exception.valid_to,
                flight_max_amount=exception.flight_max_amount,
                hotel_max_amount_per_night=exception.hotel_max_amount_per_night,
                hotel_max_amount_total=exception.hotel_max_amount_total,
                reason=exception.reason,
                approved_by=_uuid(exception.approved_by),
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return exception_to_record(row)

    async def list_exceptions(self, policy_id: str) -> list[PolicyExceptionRecord]:
        pid = _uuid(policy_id)
        if pid is None:
            return []
        async with self._session_factory() as db:
            result = await db.execute(
                select(PolicyException)
                .where(PolicyException.policy_id == pid)
                .order_by(PolicyException.created_at.desc())
            )
            return [exception_to_record(e) for e in result.scalars().all()]


class SqlSpendLedger(SpendLedger):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def sum_booking_amount(self, user_id, organization_id, statuses, start, end) -> Decimal:
        uid, org_id = _uuid(user_id), _uuid(organization_id)
        if uid is None or org_id is None:
            return Decimal("0")
        async with self._session_factory() as db:
            result = await db.execute(
                select(func.coalesce(func.sum(Booking.total_price), 0)).where(
                    Booking.user_id == uid,
                    Booking.organization_id == org_id,
                    Booking.status.in_(list(statuses)),
                    Booking.created_at >= start,
                    Booking.created_at < end,
                )
            )
            return Decimal(str(result.scalar_one()))


class SqlAuditSink(AuditSink):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, entry: UsageLogEntry) -> None:
        async with self._session_factory() as db:
            db.add(PolicyUsageLog(
                id=_uuid(entry.id),
                policy_id=_uuid(entry.policy_id),
                organization_id=_uuid(entry.organization_id),
                user_id=_uuid(entry.user_id),
                booking_id=_uuid(entry.booking_id),
                event_type=entry.event_type,
                policy_snapshot=entry.policy_snapshot,
                booking_type=entry.booking_type,
                requested_amount=entry.requested_amount,
                policy_limit=entry.policy_limit,
                currency=entry.currency,
                was_allowed=entry.was_allowed,
                requires_approval=entry.requires_approval,
                details=entry.details,
                metadata_=entry.metadata,
            ))
            await db.commit()

    async def list_entries(self, organization_id, filters=None, limit=USAGE_LOG_LIMIT):
        org_id = _uuid(organization_id)
        if org_id is None:
            return []
        filters = filters or UsageLogFilters()
        query = select(PolicyUsageLog).where(PolicyUsageLog.organization_id == org_id)
        if filters.user_id:
            query = query.where(PolicyUsageLog.user_id == _uuid(filters.user_id))
        if filters.policy_id:
            query = query.where(PolicyUsageLog.policy_id == _uuid(filters.policy_id))
        if filters.event_type:
            query = query.where(PolicyUsageLog.event_type == filters.event_type)
        if filters.start_date:
            query = query.where(PolicyUsageLog.created_at >= filters.start_date)
        if filters.end_date:
            query = query.where(PolicyUsageLog.created_at <= filters.end_date)

        async with self._session_factory() as db:
            result = await db.execute(query.order_by(PolicyUsageLog.created_at.desc()).limit(limit))
            return [usage_log_to_entry(log) for log in result.scalars().all()]
