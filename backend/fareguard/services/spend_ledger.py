"""Spend ledger: sums a user's booking spend over a calendar window."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

# Bookings in these statuses count against monthly/annual limits
QUALIFYING_STATUSES = frozenset({"confirmed", "completed", "pending_approval", "approved"})


def month_window(now: datetime) -> tuple[datetime, datetime]:
    """[first of this month 00:00 UTC, first of next month 00:00 UTC)."""
    now = now.astimezone(timezone.utc) if now.tzinfo else now.replace(tzinfo=timezone.utc)
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return start, end


def year_window(now: datetime) -> tuple[datetime, datetime]:
    now = now.astimezone(timezone.utc) if now.tzinfo else now.replace(tzinfo=timezone.utc)
    return (
        datetime(now.year, 1, 1, tzinfo=timezone.utc),
        datetime(now.year + 1, 1, 1, tzinfo=timezone.utc),
    )


class SpendLedger(ABC):
    @abstractmethod
    async def sum_booking_amount(
        self,
        user_id: str,
        organization_id: str,
        statuses: Iterable[str],
        start: datetime,
        end: datetime,
    ) -> Decimal:
        """Total booking price created in [start, end). Zero when nothing matches."""


@dataclass(frozen=True)
class LedgerBooking:
    user_id: str
    organization_id: str
    total_price: Decimal
    status: str
    created_at: datetime


class InMemorySpendLedger(SpendLedger):
    def __init__(self, bookings: Iterable[LedgerBooking] = ()):
        self._bookings = list(bookings)

    def record(
        self,
        user_id: str,
        organization_id: str,
        total_price: Decimal,
        status: str = "confirmed",
        created_at: datetime | None = None,
    ) -> LedgerBooking:
        booking = LedgerBooking(
            user_id=user_id,
            organization_id=organization_id,
            total_price=Decimal(str(total_price)),
            status=status,
            created_at=created_at or datetime.now(timezone.utc),
        )
        self._bookings.append(booking)
        return booking

    async def sum_booking_amount(self, user_id, organization_id, statuses, start, end) -> Decimal:
        statuses = set(statuses)
        return sum(
            (
                b.total_price for b in self._bookings
                if b.user_id == user_id
                and b.organization_id == organization_id
                and b.status in statuses
                and start <= b.created_at < end
            ),
            Decimal("0"),
        )
