"""Usage audit: one append-only record per compliance evaluation."""

import asyncio
import logging
from abc import ABC, abstractmethod
from decimal import Decimal

from fareguard.schemas.policy import UsageLogEntry, UsageLogFilters

logger = logging.getLogger(__name__)

USAGE_LOG_LIMIT = 100
NO_POLICY_DETAILS = "No policy defined for user role"


class AuditSink(ABC):
    @abstractmethod
    async def append(self, entry: UsageLogEntry) -> None:
        ...

    @abstractmethod
    async def list_entries(
        self, organization_id: str, filters: UsageLogFilters | None = None, limit: int = USAGE_LOG_LIMIT
    ) -> list[UsageLogEntry]:
        """Newest first."""


def matches(entry: UsageLogEntry, organization_id: str, filters: UsageLogFilters) -> bool:
    if entry.organization_id != organization_id:
        return False
    if filters.user_id and entry.user_id != filters.user_id:
        return False
    if filters.policy_id and entry.policy_id != filters.policy_id:
        return False
    if filters.event_type and entry.event_type != filters.event_type:
        return False
    if filters.start_date and entry.created_at < filters.start_date:
        return False
    if filters.end_date and entry.created_at > filters.end_date:
        return False
    return True


class InMemoryAuditSink(AuditSink):
    def __init__(self):
        self.entries: list[UsageLogEntry] = []

    async def append(self, entry: UsageLogEntry) -> None:
        self.entries.append(entry)

    async def list_entries(self, organization_id, filters=None, limit=USAGE_LOG_LIMIT):
        filters = filters or UsageLogFilters()
        found = [e for e in self.entries if matches(e, organization_id, filters)]
        found.sort(key=lambda e: e.created_at, reverse=True)
        return found[:limit]


class UsageAuditRecorder:
    """Builds usage log entries and hands them to the sink.

    A failing sink is logged and otherwise ignored: a lost audit row must
    never change or block a booking decision. With ``background=True`` the
    append runs as a tracked task so a slow sink adds no latency; ``drain()``
    waits for the pending appends.
    """

    def __init__(self, sink: AuditSink, background: bool = False):
        self._sink = sink
        self._background = background
        self._pending: set[asyncio.Task] = set()

    async def record(
        self,
        *,
        organization_id: str,
        user_id: str,
        was_allowed: bool,
        requires_approval: bool,
        violations: list[str],
        policy_id: str | None = None,
        booking_id: str | None = None,
        policy_snapshot: dict | None = None,
        booking_type: str | None = None,
        requested_amount: Decimal | None = None,
        policy_limit: Decimal | None = None,
        currency: str | None = None,
    ) -> UsageLogEntry | None:
        if policy_id is None:
            details = NO_POLICY_DETAILS
        else:
            details = "; ".join(violations)

        entry = UsageLogEntry(
            organization_id=organization_id,
            user_id=user_id,
            # Follows the final verdict; overridden violations stay visible in details
            event_type="policy_applied" if was_allowed else "policy_violated",
            was_allowed=was_allowed,
            requires_approval=requires_approval,
            policy_id=policy_id,
            booking_id=booking_id,
            policy_snapshot=policy_snapshot,
            booking_type=booking_type,
            requested_amount=requested_amount,
            policy_limit=policy_limit,
            currency=currency,
            details=details,
        )
        if self._background:
            task = asyncio.create_task(self._append(entry))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return entry
        return entry if await self._append(entry) else None

    async def _append(self, entry: UsageLogEntry) -> bool:
        try:
            await self._sink.append(entry)
        except Exception as e:
            logger.error(f"Error logging policy usage for user {entry.user_id}: {e}")
            return False
        return True

    async def drain(self):
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def list_usage_logs(
        self, organization_id: str, filters: UsageLogFilters | None = None
    ) -> list[UsageLogEntry]:
        return await self._sink.list_entries(organization_id, filters, limit=USAGE_LOG_LIMIT)
