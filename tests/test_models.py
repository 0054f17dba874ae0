#!/usr/bin/env python3
"""
Subscription and Devotional Model Tests

Covers the plan catalogue, calendar-month arithmetic and the activity
window of payment records.
"""

import pytest
from datetime import datetime, timezone

from models.devotional import ContentItem, Favorite, parse_date
from subscription.models import (
    PLANS,
    FeatureAccess,
    PaymentRecord,
    PaymentStatus,
    UnknownPlanError,
    add_months,
    get_plan,
    paid_plans,
    parse_timestamp,
)
from tests.conftest import make_payment


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ============================================================================
# CALENDAR MONTHS
# ============================================================================

class TestAddMonths:
    """Calendar-month addition with end-of-month clamping"""

    def test_simple(self):
        assert add_months(utc(2025, 1, 1), 3) == utc(2025, 4, 1)

    def test_crosses_year(self):
        assert add_months(utc(2025, 11, 15), 3) == utc(2026, 2, 15)

    def test_twelve_months(self):
        assert add_months(utc(2025, 3, 10, 8, 30), 12) == utc(2026, 3, 10, 8, 30)

    def test_clamps_to_month_end(self):
        assert add_months(utc(2025, 1, 31), 1) == utc(2025, 2, 28)

    def test_clamps_to_leap_day(self):
        assert add_months(utc(2023, 11, 30), 3) == utc(2024, 2, 29)

    def test_zero_months(self):
        assert add_months(utc(2025, 5, 5), 0) == utc(2025, 5, 5)


# ============================================================================
# PLAN CATALOGUE
# ============================================================================

class TestPlans:

    def test_catalogue(self):
        assert set(PLANS) == {"free", "three_months", "six_months", "yearly"}
        assert PLANS["three_months"].price == 1.50
        assert PLANS["six_months"].price == 2.00
        assert PLANS["yearly"].price == 3.00

    def test_durations(self):
        assert [p.duration_months for p in paid_plans()] == [3, 6, 12]

    def test_free_plan_is_free(self):
        assert PLANS["free"].is_free
        assert PLANS["free"].duration_display == "Forever"
        assert PLANS["free"].price_display == "Free"

    def test_lookup_by_id_or_name(self):
        assert get_plan("yearly") is PLANS["yearly"]
        assert get_plan("3-Month Premium") is PLANS["three_months"]
        assert get_plan("6-month premium") is PLANS["six_months"]

    def test_unknown_plan(self):
        with pytest.raises(UnknownPlanError) as exc_info:
            get_plan("lifetime")
        assert exc_info.value.plan == "lifetime"

    def test_plan_expiry(self):
        assert PLANS["six_months"].expires_at(utc(2025, 1, 1)) == utc(2025, 7, 1)

    def test_to_dict(self):
        data = PLANS["yearly"].to_dict()
        assert data["duration_display"] == "1 Year"
        assert data["price_per_month"] == 0.25
        assert data["tier"] == "yearly"


# ============================================================================
# FEATURE ACCESS
# ============================================================================

class TestFeatureAccess:

    def test_free_has_nothing(self):
        assert not any(FeatureAccess.for_entitlement(False).to_dict().values())

    def test_premium_has_everything(self):
        assert all(FeatureAccess.for_entitlement(True).to_dict().values())


# ============================================================================
# PAYMENT RECORDS
# ============================================================================

class TestPaymentRecord:

    def test_three_month_window(self):
        record = make_payment("user_1", utc(2025, 1, 1))
        assert record.expires_at == utc(2025, 4, 1)
        assert record.is_active(utc(2025, 3, 31, 23, 59, 59))
        assert not record.is_active(utc(2025, 4, 1, 0, 0, 1))

    def test_expiry_instant_is_exclusive(self):
        record = make_payment("user_1", utc(2025, 1, 1))
        assert not record.is_active(utc(2025, 4, 1))

    def test_pending_and_failed_never_active(self):
        created = utc(2025, 1, 1)
        for status in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            record = make_payment("user_1", created, status=status)
            assert not record.is_active(utc(2025, 1, 2))

    def test_naive_datetimes_are_utc(self):
        record = make_payment("user_1", datetime(2025, 1, 1))
        assert record.created_at.tzinfo == timezone.utc

    def test_tx_ref_defaults_to_transaction_id(self):
        record = make_payment("user_1", utc(2025, 1, 1), transaction_id="DEVOTIONAL_1_AB")
        assert record.tx_ref == "DEVOTIONAL_1_AB"

    def test_from_remote_row(self):
        row = {
            "id": 42,
            "user_id": "user_1",
            "user_email": "reader@example.com",
            "transaction_id": "DEVOTIONAL_1_AB",
            "amount": "2.00",
            "currency": "NGN",
            "plan_id": "six_months",
            "status": "successful",
            "created_at": "2025-01-01T00:00:00Z",
            "verified_at": None,
            "metadata": '{"gateway": "paystack"}',
        }
        record = PaymentRecord.from_dict(row)
        assert record.id == "42"
        assert record.amount == 2.0
        assert record.plan_duration_months == 6
        assert record.status == PaymentStatus.SUCCESSFUL
        assert record.created_at == utc(2025, 1, 1)
        assert record.metadata == {"gateway": "paystack"}

    def test_row_keeps_metadata_as_json(self):
        record = make_payment("user_1", utc(2025, 1, 1))
        record.metadata = {"gateway": "paystack"}
        assert record.to_row()["metadata"] == '{"gateway": "paystack"}'
        assert record.to_dict()["metadata"] == {"gateway": "paystack"}


class TestTimestamps:

    def test_parse_timestamp_z_suffix(self):
        assert parse_timestamp("2025-04-01T00:00:00Z") == utc(2025, 4, 1)

    def test_parse_timestamp_empty(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_parse_timestamp_invalid(self):
        with pytest.raises(ValueError):
            parse_timestamp("not a date")


# ============================================================================
# DEVOTIONAL CONTENT
# ============================================================================

class TestContentItem:

    def test_weekday_from_date(self):
        item = ContentItem(id="1", date=datetime(2025, 1, 5))
        assert item.weekday == 6
        assert item.day_of_week == "sunday"

    def test_missing_date(self):
        item = ContentItem.from_dict({"id": 7, "title": None, "content": None, "date": "garbage"})
        assert item.id == "7"
        assert item.title == ""
        assert item.date is None
        assert item.weekday is None

    def test_parse_date_plain(self):
        assert parse_date("2025-01-05") == datetime(2025, 1, 5)

    def test_favorite_from_dict(self):
        favorite = Favorite.from_dict({
            "user_id": "user_1",
            "type": "verse",
            "reference_id": 316,
            "title": "John 3:16",
        })
        assert favorite.reference_id == "316"
        assert favorite.content == ""
