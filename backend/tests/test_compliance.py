import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fareguard.errors import UserNotFoundError
from fareguard.schemas.policy import PolicyCheckRequest, PolicyExceptionRecord, PolicyRecord
from fareguard.services.audit_recorder import NO_POLICY_DETAILS, InMemoryAuditSink, UsageAuditRecorder
from fareguard.services.compliance_evaluator import ComplianceEvaluator
from fareguard.services.policy_resolver import PolicyResolver
from fareguard.services.policy_store import InMemoryPolicyStore
from fareguard.services.spend_ledger import InMemorySpendLedger, SpendLedger

from payloads import ORG_ID, USER_ID

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class ExplodingLedger(SpendLedger):
    def __init__(self):
        self.calls = 0

    async def sum_booking_amount(self, user_id, organization_id, statuses, start, end):
        self.calls += 1
        raise RuntimeError("ledger offline")


class Harness:
    def __init__(self, policy=None, exceptions=(), role="traveler", ledger=None):
        users = {USER_ID: role} if role else {}
        self.store = InMemoryPolicyStore(users, [policy] if policy else [], exceptions)
        self.ledger = ledger or InMemorySpendLedger()
        self.sink = InMemoryAuditSink()
        self.evaluator = ComplianceEvaluator(
            PolicyResolver(self.store),
            self.ledger,
            UsageAuditRecorder(self.sink),
            clock=lambda: NOW,
        )

    def check(self, **request):
        return asyncio.run(self.evaluator.evaluate(USER_ID, ORG_ID, PolicyCheckRequest(**request)))


def policy(**overrides):
    values = dict(organization_id=ORG_ID, name="Travelers", role="traveler", created_at=NOW - timedelta(days=90))
    values.update(overrides)
    return PolicyRecord(**values)


def test_flight_over_maximum_is_denied():
    harness = Harness(policy(flight_max_amount=Decimal("500")))

    verdict = harness.check(booking_type="flight", amount=Decimal("600"))

    assert verdict.allowed is False
    assert verdict.requires_approval is False
    assert verdict.violations == ["Flight amount ($600) exceeds maximum allowed ($500)"]
    entry = harness.sink.entries[0]
    assert entry.event_type == "policy_violated"
    assert entry.was_allowed is False
    assert entry.policy_limit == Decimal("500")
    assert entry.details == verdict.violations[0]


def test_manager_override_allows_but_keeps_violations():
    harness = Harness(policy(flight_max_amount=Decimal("500"), allow_manager_override=True))

    verdict = harness.check(booking_type="flight", amount=Decimal("600"))

    assert verdict.allowed is True
    assert verdict.requires_approval is True
    assert len(verdict.violations) == 1
    entry = harness.sink.entries[0]
    assert entry.event_type == "policy_applied"
    assert entry.details == verdict.violations[0]


def test_exception_raises_the_flight_limit():
    base = policy(flight_max_amount=Decimal("500"))
    exception = PolicyExceptionRecord(policy_id=base.id, user_id=USER_ID, flight_max_amount=Decimal("800"))
    harness = Harness(base, exceptions=[exception])

    verdict = harness.check(booking_type="flight", amount=Decimal("600"))

    assert verdict.allowed is True
    assert verdict.exception_id == exception.id
    assert verdict.limits.flight_max_amount == Decimal("800")


def test_monthly_limit_counts_only_qualifying_bookings_this_month():
    harness = Harness(policy(monthly_limit=Decimal("1000")))
    harness.ledger.record(USER_ID, ORG_ID, Decimal("600"), status="confirmed", created_at=NOW - timedelta(days=10))
    harness.ledger.record(USER_ID, ORG_ID, Decimal("300"), status="pending_approval", created_at=NOW - timedelta(days=1))
    harness.ledger.record(USER_ID, ORG_ID, Decimal("700"), status="cancelled", created_at=NOW - timedelta(days=2))
    harness.ledger.record(USER_ID, ORG_ID, Decimal("700"), status="confirmed", created_at=NOW - timedelta(days=30))
    harness.ledger.record("user-2", ORG_ID, Decimal("700"), status="confirmed", created_at=NOW - timedelta(days=2))

    within = harness.check(booking_type="flight", amount=Decimal("50"))
    over = harness.check(booking_type="flight", amount=Decimal("150"))

    assert within.allowed is True
    assert within.limits.monthly_spent == Decimal("900")
    assert within.limits.monthly_remaining == Decimal("50")
    assert over.allowed is False
    assert over.violations == ["Monthly limit exceeded. Spent: $900, Limit: $1,000"]
    assert over.limits.monthly_remaining == Decimal("-50")


def test_annual_limit():
    harness = Harness(policy(annual_limit=Decimal("5000")))
    harness.ledger.record(USER_ID, ORG_ID, Decimal("4800"), created_at=datetime(2024, 1, 5, tzinfo=timezone.utc))
    harness.ledger.record(USER_ID, ORG_ID, Decimal("4800"), created_at=datetime(2023, 12, 31, tzinfo=timezone.utc))

    verdict = harness.check(booking_type="flight", amount=Decimal("300"))

    assert verdict.violations == ["Annual limit exceeded. Spent: $4,800, Limit: $5,000"]
    assert verdict.limits.annual_spent == Decimal("4800")


def test_zero_monthly_limit_is_enforced():
    harness = Harness(policy(monthly_limit=Decimal("0")))
    verdict = harness.check(booking_type="flight", amount=Decimal("1"))
    assert verdict.allowed is False


def test_ledger_is_not_queried_without_spend_limits():
    ledger = ExplodingLedger()
    harness = Harness(policy(flight_max_amount=Decimal("500")), ledger=ledger)

    verdict = harness.check(booking_type="flight", amount=Decimal("100"))

    assert verdict.allowed is True
    assert verdict.limits.monthly_remaining is None
    assert ledger.calls == 0


def test_ledger_failure_propagates():
    harness = Harness(policy(monthly_limit=Decimal("1000")), ledger=ExplodingLedger())
    with pytest.raises(RuntimeError):
        harness.check(booking_type="flight", amount=Decimal("100"))
    assert harness.sink.entries == []


def test_repeated_evaluation_gives_the_same_verdict():
    harness = Harness(policy(flight_max_amount=Decimal("500"), monthly_limit=Decimal("1000")))

    first = harness.check(booking_type="flight", amount=Decimal("600"))
    second = harness.check(booking_type="flight", amount=Decimal("600"))

    assert first == second
    assert len(harness.sink.entries) == 2


def test_approval_threshold_and_auto_approve():
    harness = Harness(policy(requires_approval_above=Decimal("300"), auto_approve_below=Decimal("400")))

    assert harness.check(booking_type="flight", amount=Decimal("250")).requires_approval is False
    # Auto-approve wins when both thresholds apply
    assert harness.check(booking_type="flight", amount=Decimal("350")).requires_approval is False
    assert harness.check(booking_type="flight", amount=Decimal("450")).requires_approval is True


def test_flight_class_check_normalizes_cabins():
    harness = Harness(policy(allowed_flight_classes=("economy", "premium_economy")))

    denied = harness.check(booking_type="flight", amount=Decimal("100"), flight_class="Business")
    allowed = harness.check(booking_type="flight", amount=Decimal("100"), flight_class="PREMIUM_ECONOMY")

    assert denied.violations == ["Flight class business not allowed. Allowed classes: economy, premium_economy"]
    assert allowed.allowed is True


def test_hotel_per_night_and_total():
    harness = Harness(policy(
        hotel_max_amount_per_night=Decimal("200"),
        hotel_max_amount_total=Decimal("700"),
        flight_max_amount=Decimal("1"),
    ))

    verdict = harness.check(
        booking_type="hotel", amount=Decimal("750"), number_of_nights=3, total_amount=Decimal("750")
    )

    assert verdict.violations == [
        "Hotel per-night amount ($250) exceeds maximum allowed ($200)",
        "Hotel total amount ($750) exceeds maximum allowed ($700)",
    ]
    assert harness.sink.entries[0].policy_limit == Decimal("200")


def test_advance_booking_and_trip_duration():
    harness = Harness(policy(advance_booking_days=14, max_trip_duration=5))
    departure = NOW + timedelta(days=5)

    verdict = harness.check(
        booking_type="flight",
        amount=Decimal("100"),
        departure_date=departure,
        return_date=departure + timedelta(days=7),
    )

    assert verdict.violations == [
        "Booking must be made at least 14 days in advance (departure in 5 days)",
        "Trip duration (7 days) exceeds maximum allowed (5 days)",
    ]
    assert [c.rule_type for c in verdict.checks] == ["advance_booking", "max_trip_duration"]


def test_no_policy_allows_and_audits():
    harness = Harness(policy(flight_max_amount=Decimal("500")), role="contractor")

    verdict = harness.check(booking_type="flight", amount=Decimal("9000"))

    assert verdict.allowed is True
    assert verdict.requires_approval is False
    assert verdict.violations == []
    entry = harness.sink.entries[0]
    assert entry.details == NO_POLICY_DETAILS
    assert entry.event_type == "policy_applied"
    assert entry.policy_id is None


def test_unknown_user_is_not_audited():
    harness = Harness(policy(), role=None)
    with pytest.raises(UserNotFoundError):
        harness.check(booking_type="flight", amount=Decimal("100"))
    assert harness.sink.entries == []
