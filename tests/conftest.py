#!/usr/bin/env python3
"""
Pytest Configuration and Shared Fixtures

Provides fakes for every external collaborator (cloud store, payment
gateway, notification platform), a controllable clock and a fully wired
AppSession built on top of them.
"""

import pytest
import tempfile
import sys
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from backend.local_store import LocalRecordStore
from backend.preferences import Preferences
from backend.remote_store import RemoteRecordStore, RemoteStoreError
from config import Settings
from core.notification_scheduler import (
    NotificationPermissionError,
    NotificationPlatform,
    ScheduledNotification,
)
from models.devotional import ContentItem, Favorite
from subscription.gateway import (
    ChargeRequest,
    GatewayError,
    GatewayOutcome,
    GatewayResult,
    PaymentGateway,
)
from subscription.models import PaymentRecord, PaymentStatus, SubscriptionPlan, get_plan


# ============================================================================
# ASYNCIO CONFIGURATION
# ============================================================================
# Note: pytest-asyncio is configured with asyncio_mode = "auto" in pyproject.toml


# ============================================================================
# CLOCK
# ============================================================================

class FixedClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime):
        self.now = now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


# Monday
START = datetime(2025, 1, 6, 12, 0, 0, tzinfo=timezone.utc)
SUNDAY = datetime(2025, 1, 5)
MONDAY = datetime(2025, 1, 6)


@pytest.fixture
def clock():
    return FixedClock(START)


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FakeRemoteStore(RemoteRecordStore):
    """
    In-memory cloud store with the same uniqueness rules as the real
    tables. Set `fail = True` to simulate being offline.
    """

    def __init__(self):
        self.fail = False
        self.devotionals: List[ContentItem] = []
        self.payments: Dict[str, PaymentRecord] = {}
        self.subscriptions: Dict[str, dict] = {}
        self.favorites: Dict[Tuple[str, str, str], Favorite] = {}
        self.calls: List[str] = []

    def _call(self, operation: str):
        self.calls.append(operation)
        if self.fail:
            raise RemoteStoreError(operation, "connection refused")

    def fetch_devotionals(self):
        self._call("fetch_devotionals")
        return list(self.devotionals)

    def fetch_payments(self, user_id):
        self._call("fetch_payments")
        return [p for p in self.payments.values() if p.user_id == user_id]

    def upsert_payment(self, record):
        self._call("upsert_payment")
        self.payments[record.transaction_id] = PaymentRecord.from_dict(record.to_dict())

    def upsert_subscription(self, user_id, plan: SubscriptionPlan, purchased_at, expires_at):
        self._call("upsert_subscription")
        self.subscriptions[user_id] = {
            "plan_id": plan.plan_id,
            "purchase_date": purchased_at,
            "expiry_date": expires_at,
        }

    def fetch_favorites(self, user_id):
        self._call("fetch_favorites")
        return [f for key, f in self.favorites.items() if key[0] == user_id]

    def upsert_favorite(self, favorite):
        self._call("upsert_favorite")
        self.favorites[(favorite.user_id, favorite.type, favorite.reference_id)] = favorite

    def delete_favorite(self, user_id, type, reference_id):
        self._call("delete_favorite")
        self.favorites.pop((user_id, type, reference_id), None)

    def delete_user_data(self, user_id):
        self._call("delete_user_data")
        self.payments = {k: p for k, p in self.payments.items() if p.user_id != user_id}
        self.subscriptions.pop(user_id, None)
        self.favorites = {k: f for k, f in self.favorites.items() if k[0] != user_id}
        return {"payments": True, "user_favorites": True, "subscriptions": True, "users": True}


class FakeGateway(PaymentGateway):
    """Gateway answering immediately with a configured outcome"""

    def __init__(self, outcome: GatewayOutcome = GatewayOutcome.SUCCESS):
        self.outcome = outcome
        self.error: Optional[GatewayError] = None
        self.requests: List[ChargeRequest] = []

    async def charge(self, request: ChargeRequest) -> GatewayResult:
        self.requests.append(request)
        if request.on_authorization_url:
            request.on_authorization_url(f"https://checkout.test/{request.reference}")
        if self.error:
            raise self.error
        return GatewayResult(
            outcome=self.outcome,
            reference=request.reference,
            message=f"fake {self.outcome.value}",
            gateway_transaction_id="4099260516",
        )


class FakeNotificationPlatform(NotificationPlatform):
    """Records scheduled notifications; permissions are switchable"""

    def __init__(self):
        self.scheduled: Dict[str, ScheduledNotification] = {}
        self.exact_available = True
        self.deny_exact = False
        self.deny_all = False

    def schedule_daily(self, notification_id, hour, minute, title, body, exact):
        if self.deny_all:
            raise NotificationPermissionError("notifications disabled by user")
        if exact and self.deny_exact:
            raise NotificationPermissionError("exact alarms not permitted")
        self.scheduled[notification_id] = ScheduledNotification(
            notification_id, hour, minute, exact, title, body
        )

    def cancel(self, notification_id):
        self.scheduled.pop(notification_id, None)

    def pending(self):
        return list(self.scheduled.values())

    def can_schedule_exact(self):
        return self.exact_available


@pytest.fixture
def remote_store():
    return FakeRemoteStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notification_platform():
    return FakeNotificationPlatform()


# ============================================================================
# STORAGE
# ============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def local_store():
    store = LocalRecordStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def preferences():
    """Memory-only preferences"""
    return Preferences()


@pytest.fixture
def settings(temp_dir):
    return Settings(
        STORAGE_DIR=str(temp_dir),
        DATABASE_PATH=":memory:",
        PREFERENCES_PATH=str(temp_dir / "preferences.json"),
        SUPABASE_URL="",
        SUPABASE_ANON_KEY="",
    )


@pytest.fixture
def app_session(settings, remote_store, gateway, notification_platform, clock):
    from core.app_session import AppSession

    session = AppSession(
        settings,
        remote_store=remote_store,
        gateway=gateway,
        notification_platform=notification_platform,
        clock=clock,
    )
    yield session
    session.close()


# ============================================================================
# SAMPLE DATA
# ============================================================================

def make_item(item_id: str, date: Optional[datetime], title: str = None) -> ContentItem:
    return ContentItem(
        id=item_id,
        title=title or f"Devotional {item_id}",
        content=f"Body of devotional {item_id}",
        date=date,
    )


def make_payment(
    user_id: str,
    created_at: datetime,
    plan: str = "three_months",
    status: PaymentStatus = PaymentStatus.SUCCESSFUL,
    transaction_id: str = None,
) -> PaymentRecord:
    return PaymentRecord.for_plan(
        get_plan(plan),
        user_id=user_id,
        user_email="reader@example.com",
        transaction_id=transaction_id or f"TX_{user_id}_{int(created_at.timestamp())}",
        currency="NGN",
        created_at=created_at,
        status=status,
    )


@pytest.fixture
def sunday_item():
    return make_item("sun-1", SUNDAY)


@pytest.fixture
def monday_item():
    return make_item("mon-1", MONDAY)


@pytest.fixture
def undated_item():
    return make_item("undated-1", None)


def grant_premium(session, created_at: datetime):
    """Store a successful purchase for the session's user"""
    record = make_payment(session.user_id, created_at)
    session.local_store.save_payment(record)
    session.entitlements.invalidate()
    return record


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================

def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (may require network)"
    )
