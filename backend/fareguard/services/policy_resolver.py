"""Policy resolution: layers a user's currently-valid exception over their role's base policy."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from decimal import Decimal

from fareguard.errors import UserNotFoundError
from fareguard.schemas.policy import PolicyExceptionRecord, PolicyRecord
from fareguard.services.policy_store import PolicyStore

logger = logging.getLogger(__name__)

# Limits a per-user exception may override
OVERRIDABLE_LIMITS = ("flight_max_amount", "hotel_max_amount_per_night", "hotel_max_amount_total")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_value(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, tuple):
        return list(value)
    return value


@dataclass(frozen=True)
class EffectivePolicy:
    """The single ruleset one evaluation runs against. None on a limit means no limit."""

    policy: PolicyRecord
    exception: PolicyExceptionRecord | None
    flight_max_amount: Decimal | None
    hotel_max_amount_per_night: Decimal | None
    hotel_max_amount_total: Decimal | None

    @property
    def policy_id(self) -> str:
        return self.policy.id

    @property
    def exception_id(self) -> str | None:
        return self.exception.id if self.exception else None

    @property
    def monthly_limit(self) -> Decimal | None:
        return self.policy.monthly_limit

    @property
    def annual_limit(self) -> Decimal | None:
        return self.policy.annual_limit

    @property
    def allowed_flight_classes(self) -> tuple[str, ...] | None:
        return self.policy.allowed_flight_classes

    @property
    def requires_approval_above(self) -> Decimal | None:
        return self.policy.requires_approval_above

    @property
    def auto_approve_below(self) -> Decimal | None:
        return self.policy.auto_approve_below

    @property
    def advance_booking_days(self) -> int | None:
        return self.policy.advance_booking_days

    @property
    def max_trip_duration(self) -> int | None:
        return self.policy.max_trip_duration

    @property
    def allow_manager_override(self) -> bool:
        return self.policy.allow_manager_override

    def snapshot(self) -> dict:
        """JSON-safe copy of the base policy with the merged limits, for the audit trail."""
        snap = {f.name: _json_value(getattr(self.policy, f.name)) for f in fields(self.policy)}
        snap["exception_id"] = self.exception_id
        snap["effective_limits"] = {
            name: _json_value(getattr(self, name)) for name in OVERRIDABLE_LIMITS
        }
        return snap


def merge_policy(policy: PolicyRecord, exception: PolicyExceptionRecord | None) -> EffectivePolicy:
    """Field by field: the exception's value when it defines one (zero included), else the base policy's."""
    limits = {}
    for name in OVERRIDABLE_LIMITS:
        override = getattr(exception, name) if exception else None
        limits[name] = override if override is not None else getattr(policy, name)
    return EffectivePolicy(policy=policy, exception=exception, **limits)


class PolicyResolver:
    def __init__(self, store: PolicyStore, clock: Callable[[], datetime] = _utcnow):
        self._store = store
        self._clock = clock

    async def resolve_policy(
        self, user_id: str, organization_id: str, now: datetime | None = None
    ) -> EffectivePolicy | None:
        """None means no policy applies to the user's role, which is not an error."""
        now = now or self._clock()

        role = await self._store.get_user_role(user_id)
        if role is None:
            raise UserNotFoundError(user_id)

        policy = await self._store.find_effective_policy_candidate(organization_id, role, now)
        if policy is None:
            logger.info(f"No active policy for role {role} in organization {organization_id}")
            return None

        # An exception that exists but is outside its window resolves exactly like no exception
        exception = await self._store.find_active_exception(policy.id, user_id, now)
        if exception:
            logger.info(f"Applying policy exception {exception.id} for user {user_id} on policy {policy.id}")

        return merge_policy(policy, exception)
