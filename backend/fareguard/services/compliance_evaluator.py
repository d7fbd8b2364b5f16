"""Compliance evaluator: checks a booking request against the user's effective policy."""

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from fareguard.data.currency import format_price
from fareguard.schemas.policy import PolicyCheckRequest
from fareguard.schemas.travel import normalize_cabin
from fareguard.services.audit_recorder import UsageAuditRecorder
from fareguard.services.policy_resolver import EffectivePolicy, PolicyResolver
from fareguard.services.policy_store import as_utc
from fareguard.services.spend_ledger import QUALIFYING_STATUSES, SpendLedger, month_window, year_window

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class ComplianceCheckResult:
    rule_type: str
    status: str  # pass | fail
    details: str


@dataclass
class VerdictLimits:
    flight_max_amount: Decimal | None = None
    hotel_max_amount_per_night: Decimal | None = None
    hotel_max_amount_total: Decimal | None = None
    monthly_limit: Decimal | None = None
    annual_limit: Decimal | None = None
    monthly_spent: Decimal = Decimal("0")
    annual_spent: Decimal = Decimal("0")
    monthly_remaining: Decimal | None = None
    annual_remaining: Decimal | None = None


@dataclass
class ComplianceVerdict:
    allowed: bool
    requires_approval: bool
    violations: list[str] = field(default_factory=list)
    checks: list[ComplianceCheckResult] = field(default_factory=list)
    limits: VerdictLimits = field(default_factory=VerdictLimits)
    policy_id: str | None = None
    exception_id: str | None = None


def _ceil_days(later: datetime, earlier: datetime) -> int:
    return math.ceil((as_utc(later) - as_utc(earlier)).total_seconds() / SECONDS_PER_DAY)


class ComplianceChecker(ABC):
    rule_type: str = ""

    @abstractmethod
    def check(
        self, policy: EffectivePolicy, request: PolicyCheckRequest, now: datetime
    ) -> ComplianceCheckResult | None:
        """None when the rule does not apply to this request."""

    def _result(self, passed: bool, details: str) -> ComplianceCheckResult:
        return ComplianceCheckResult(rule_type=self.rule_type, status="pass" if passed else "fail", details=details)


class FlightMaxAmountChecker(ComplianceChecker):
    rule_type = "flight_max_amount"

    def check(self, policy, request, now):
        limit = policy.flight_max_amount
        if request.booking_type != "flight" or limit is None:
            return None
        amount_display = format_price(request.amount, request.currency)
        limit_display = format_price(limit, request.currency)
        if request.amount > limit:
            return self._result(False, f"Flight amount ({amount_display}) exceeds maximum allowed ({limit_display})")
        return self._result(True, f"{amount_display} within limit {limit_display}")


class FlightClassChecker(ComplianceChecker):
    rule_type = "flight_class"

    def check(self, policy, request, now):
        allowed = policy.allowed_flight_classes
        if request.booking_type != "flight" or not request.flight_class or allowed is None:
            return None
        allowed_classes = [normalize_cabin(c) for c in allowed]
        if request.flight_class not in allowed_classes:
            return self._result(
                False,
                f"Flight class {request.flight_class} not allowed. Allowed classes: {', '.join(allowed_classes)}",
            )
        return self._result(True, f"Flight class {request.flight_class} allowed")


class HotelPerNightChecker(ComplianceChecker):
    rule_type = "hotel_max_amount_per_night"

    def check(self, policy, request, now):
        limit = policy.hotel_max_amount_per_night
        if request.booking_type != "hotel" or limit is None or not request.number_of_nights:
            return None
        per_night = (request.amount / request.number_of_nights).quantize(Decimal("0.01"))
        per_night_display = format_price(per_night, request.currency)
        limit_display = format_price(limit, request.currency)
        if per_night > limit:
            return self._result(
                False, f"Hotel per-night amount ({per_night_display}) exceeds maximum allowed ({limit_display})"
            )
        return self._result(True, f"{per_night_display} per night within limit {limit_display}")


class HotelTotalChecker(ComplianceChecker):
    rule_type = "hotel_max_amount_total"

    def check(self, policy, request, now):
        limit = policy.hotel_max_amount_total
        if request.booking_type != "hotel" or limit is None or request.total_amount is None:
            return None
        total_display = format_price(request.total_amount, request.currency)
        limit_display = format_price(limit, request.currency)
        if request.total_amount > limit:
            return self._result(False, f"Hotel total amount ({total_display}) exceeds maximum allowed ({limit_display})")
        return self._result(True, f"{total_display} within limit {limit_display}")


class AdvanceBookingChecker(ComplianceChecker):
    rule_type = "advance_booking"

    def check(self, policy, request, now):
        min_days = policy.advance_booking_days
        if min_days is None or request.departure_date is None:
            return None
        days_ahead = _ceil_days(request.departure_date, now)
        if days_ahead < min_days:
            return self._result(
                False,
                f"Booking must be made at least {min_days} days in advance (departure in {days_ahead} days)",
            )
        return self._result(True, f"Booked {days_ahead} days in advance (min: {min_days})")


class TripDurationChecker(ComplianceChecker):
    rule_type = "max_trip_duration"

    def check(self, policy, request, now):
        max_days = policy.max_trip_duration
        if max_days is None or request.departure_date is None or request.return_date is None:
            return None
        duration = _ceil_days(request.return_date, request.departure_date)
        if duration > max_days:
            return self._result(False, f"Trip duration ({duration} days) exceeds maximum allowed ({max_days} days)")
        return self._result(True, f"Trip duration {duration} days (max: {max_days})")


CHECKERS: list[ComplianceChecker] = [
    FlightMaxAmountChecker(),
    FlightClassChecker(),
    HotelPerNightChecker(),
    HotelTotalChecker(),
    AdvanceBookingChecker(),
    TripDurationChecker(),
]


class ComplianceEvaluator:
    """Runs every applicable check, never short-circuiting, then applies approval gating.

    Failed checks come back as violations; only store or ledger failures raise.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        ledger: SpendLedger,
        recorder: UsageAuditRecorder,
        clock: Callable[[], datetime] | None = None,
    ):
        self._resolver = resolver
        self._ledger = ledger
        self._recorder = recorder
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def evaluate(
        self,
        user_id: str,
        organization_id: str,
        request: PolicyCheckRequest,
        now: datetime | None = None,
    ) -> ComplianceVerdict:
        now = as_utc(now or self._clock())
        policy = await self._resolver.resolve_policy(user_id, organization_id, now)

        if policy is None:
            await self._recorder.record(
                organization_id=organization_id,
                user_id=user_id,
                was_allowed=True,
                requires_approval=False,
                violations=[],
                booking_id=request.booking_id,
                booking_type=request.booking_type,
                requested_amount=request.amount,
                currency=request.currency,
            )
            return ComplianceVerdict(allowed=True, requires_approval=False)

        checks: list[ComplianceCheckResult] = []
        for checker in CHECKERS:
            result = checker.check(policy, request, now)
            if result is not None:
                checks.append(result)

        limits = VerdictLimits(
            flight_max_amount=policy.flight_max_amount,
            hotel_max_amount_per_night=policy.hotel_max_amount_per_night,
            hotel_max_amount_total=policy.hotel_max_amount_total,
            monthly_limit=policy.monthly_limit,
            annual_limit=policy.annual_limit,
        )

        if policy.monthly_limit is not None:
            start, end = month_window(now)
            limits.monthly_spent = await self._ledger.sum_booking_amount(
                user_id, organization_id, QUALIFYING_STATUSES, start, end
            )
            limits.monthly_remaining = policy.monthly_limit - limits.monthly_spent - request.amount
            checks.append(self._spend_check("Monthly", policy.monthly_limit, limits.monthly_spent, request))

        if policy.annual_limit is not None:
            start, end = year_window(now)
            limits.annual_spent = await self._ledger.sum_booking_amount(
                user_id, organization_id, QUALIFYING_STATUSES, start, end
            )
            limits.annual_remaining = policy.annual_limit - limits.annual_spent - request.amount
            checks.append(self._spend_check("Annual", policy.annual_limit, limits.annual_spent, request))

        violations = [c.details for c in checks if c.status == "fail"]
        allowed = not violations
        requires_approval = False

        if allowed and policy.requires_approval_above is not None and request.amount > policy.requires_approval_above:
            requires_approval = True

        # Auto-approve wins over the approval threshold
        if policy.auto_approve_below is not None and request.amount < policy.auto_approve_below:
            requires_approval = False

        # Override changes the verdict but keeps the violations for the reviewer
        if not allowed and policy.allow_manager_override:
            allowed = True
            requires_approval = True

        if violations:
            logger.info(
                f"Policy {policy.policy_id} flagged {len(violations)} violation(s) for user {user_id}: "
                f"allowed={allowed}, requires_approval={requires_approval}"
            )

        await self._recorder.record(
            organization_id=organization_id,
            user_id=user_id,
            was_allowed=allowed,
            requires_approval=requires_approval,
            violations=violations,
            policy_id=policy.policy_id,
            booking_id=request.booking_id,
            policy_snapshot=policy.snapshot(),
            booking_type=request.booking_type,
            requested_amount=request.amount,
            policy_limit=policy.flight_max_amount if request.booking_type == "flight" else policy.hotel_max_amount_per_night,
            currency=request.currency,
        )

        return ComplianceVerdict(
            allowed=allowed,
            requires_approval=requires_approval,
            violations=violations,
            checks=checks,
            limits=limits,
            policy_id=policy.policy_id,
            exception_id=policy.exception_id,
        )

    @staticmethod
    def _spend_check(
        period: str, limit: Decimal, spent: Decimal, request: PolicyCheckRequest
    ) -> ComplianceCheckResult:
        rule_type = f"{period.lower()}_limit"
        spent_display = format_price(spent, request.currency)
        limit_display = format_price(limit, request.currency)
        if spent + request.amount > limit:
            return ComplianceCheckResult(
                rule_type=rule_type,
                status="fail",
                details=f"{period} limit exceeded. Spent: {spent_display}, Limit: {limit_display}",
            )
        return ComplianceCheckResult(
            rule_type=rule_type,
            status="pass",
            details=f"{period} spend {spent_display} of {limit_display}",
        )
