import uuid
from datetime import datetime, timezone
from decimal import Decimal

from fareguard.models.policy import BookingPolicy, PolicyException, PolicyUsageLog
from fareguard.services.sql_stores import (
    _uuid,
    exception_to_record,
    policy_to_record,
    usage_log_to_entry,
)

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_non_uuid_ids_never_reach_the_database():
    assert _uuid("not-a-uuid") is None
    assert _uuid(None) is None
    value = uuid.uuid4()
    assert _uuid(str(value)) == value


def test_policy_row_conversion():
    row = BookingPolicy(
        id=uuid.uuid4(),
        organization_id=uuid.uuid4(),
        name="Travelers",
        role="traveler",
        priority=3,
        is_active=True,
        flight_max_amount=Decimal("500.00"),
        allowed_flight_classes=["economy"],
        allow_manager_override=False,
        created_at=CREATED,
    )

    record = policy_to_record(row)

    assert record.id == str(row.id)
    assert record.allowed_flight_classes == ("economy",)
    assert record.flight_max_amount == Decimal("500.00")
    assert record.monthly_limit is None
    assert record.created_by is None


def test_exception_row_conversion():
    row = PolicyException(
        id=uuid.uuid4(),
        policy_id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        is_active=True,
        hotel_max_amount_per_night=Decimal("0"),
        created_at=CREATED,
    )

    record = exception_to_record(row)

    assert record.user_id == str(row.user_id)
    assert record.hotel_max_amount_per_night == Decimal("0")
    assert record.flight_max_amount is None


def test_usage_log_row_conversion():
    row = PolicyUsageLog(
        id=uuid.uuid4(),
        organization_id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        event_type="policy_applied",
        was_allowed=True,
        requires_approval=False,
        metadata_={"source": "check"},
        created_at=CREATED,
    )

    entry = usage_log_to_entry(row)

    assert entry.metadata == {"source": "check"}
    assert entry.policy_id is None
    assert entry.created_at == CREATED
