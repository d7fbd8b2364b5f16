"""Policy store contract, the candidate-selection rules every store must honor, and an in-memory store."""

import dataclasses
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone

from fareguard.errors import NotFoundError
from fareguard.schemas.policy import PolicyExceptionRecord, PolicyRecord

logger = logging.getLogger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes are taken as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def window_contains(start: datetime | None, end: datetime | None, now: datetime) -> bool:
    """Inclusive on both ends; a missing bound is open-ended."""
    now = as_utc(now)
    if start is not None and as_utc(start) > now:
        return False
    if end is not None and as_utc(end) < now:
        return False
    return True


def select_policy(
    candidates: Iterable[PolicyRecord], organization_id: str, role: str, now: datetime
) -> PolicyRecord | None:
    """Highest priority wins, then the most recently created."""
    matching = [
        p for p in candidates
        if p.organization_id == organization_id
        and p.role == role
        and p.is_active
        and p.deleted_at is None
        and window_contains(p.effective_from, p.effective_to, now)
    ]
    if not matching:
        return None
    return max(matching, key=lambda p: (p.priority, as_utc(p.created_at)))


def select_exception(
    candidates: Iterable[PolicyExceptionRecord], policy_id: str, user_id: str, now: datetime
) -> PolicyExceptionRecord | None:
    matching = [
        e for e in candidates
        if e.policy_id == policy_id
        and e.user_id == user_id
        and e.is_active
        and window_contains(e.valid_from, e.valid_to, now)
    ]
    if not matching:
        return None
    return max(matching, key=lambda e: as_utc(e.created_at))


class PolicyStore(ABC):
    """Read side used by the resolver plus the admin CRUD the policy API exposes."""

    @abstractmethod
    async def get_user_role(self, user_id: str) -> str | None:
        """None when the user is unknown."""

    @abstractmethod
    async def find_effective_policy_candidate(
        self, organization_id: str, role: str, now: datetime
    ) -> PolicyRecord | None:
        ...

    @abstractmethod
    async def find_active_exception(
        self, policy_id: str, user_id: str, now: datetime
    ) -> PolicyExceptionRecord | None:
        ...

    @abstractmethod
    async def list_policies(self, organization_id: str) -> list[PolicyRecord]:
        ...

    @abstractmethod
    async def get_policy(self, policy_id: str) -> PolicyRecord | None:
        ...

    @abstractmethod
    async def create_policy(self, policy: PolicyRecord) -> PolicyRecord:
        ...

    @abstractmethod
    async def update_policy(self, policy_id: str, changes: dict) -> PolicyRecord:
        ...

    @abstractmethod
    async def delete_policy(self, policy_id: str) -> PolicyRecord:
        """Soft delete: stamps deleted_at and deactivates."""

    @abstractmethod
    async def create_exception(self, exception: PolicyExceptionRecord) -> PolicyExceptionRecord:
        ...

    @abstractmethod
    async def list_exceptions(self, policy_id: str) -> list[PolicyExceptionRecord]:
        ...


class InMemoryPolicyStore(PolicyStore):
    """Dict-backed store for development and tests."""

    def __init__(
        self,
        users: dict[str, str] | None = None,
        policies: Iterable[PolicyRecord] = (),
        exceptions: Iterable[PolicyExceptionRecord] = (),
    ):
        self._roles = dict(users or {})
        self._policies = {p.id: p for p in policies}
        self._exceptions = {e.id: e for e in exceptions}

    def add_user(self, user_id: str, role: str):
        self._roles[user_id] = role

    async def get_user_role(self, user_id: str) -> str | None:
        return self._roles.get(user_id)

    async def find_effective_policy_candidate(self, organization_id, role, now):
        return select_policy(self._policies.values(), organization_id, role, now)

    async def find_active_exception(self, policy_id, user_id, now):
        return select_exception(self._exceptions.values(), policy_id, user_id, now)

    async def list_policies(self, organization_id: str) -> list[PolicyRecord]:
        policies = [
            p for p in self._policies.values()
            if p.organization_id == organization_id and p.deleted_at is None
        ]
        return sorted(policies, key=lambda p: (p.priority, as_utc(p.created_at)), reverse=True)

    async def get_policy(self, policy_id: str) -> PolicyRecord | None:
        policy = self._policies.get(policy_id)
        if policy is None or policy.deleted_at is not None:
            return None
        return policy

    async def create_policy(self, policy: PolicyRecord) -> PolicyRecord:
        self._policies[policy.id] = policy
        logger.info(f"Created policy {policy.id} ({policy.name}) for role {policy.role}")
        return policy

    async def update_policy(self, policy_id: str, changes: dict) -> PolicyRecord:
        policy = await self.get_policy(policy_id)
        if policy is None:
            raise NotFoundError(f"Policy {policy_id} not found")
        updated = dataclasses.replace(policy, **changes)
        self._policies[policy_id] = updated
        return updated

    async def delete_policy(self, policy_id: str) -> PolicyRecord:
        return await self.update_policy(
            policy_id, {"deleted_at": datetime.now(timezone.utc), "is_active": False}
        )

    async def create_exception(self, exception: PolicyExceptionRecord) -> PolicyExceptionRecord:
        if exception.policy_id not in self._policies:
            raise NotFoundError(f"Policy {exception.policy_id} not found")
        self._exceptions[exception.id] = exception
        return exception

    async def list_exceptions(self, policy_id: str) -> list[PolicyExceptionRecord]:
        exceptions = [e for e in self._exceptions.values() if e.policy_id == policy_id]
        return sorted(exceptions, key=lambda e: as_utc(e.created_at), reverse=True)
