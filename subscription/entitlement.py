"""
Entitlement Resolver - decides whether a user currently holds premium access

Entitlement is never stored as a record. It is derived on demand from the
user's payment records:

- Local store first (fast path, works offline)
- Cloud store refresh when nothing active is found locally
- Fail open to the last known state when the cloud is unreachable,
  bounded by the offline grace period
- Short-lived in-memory cache, invalidated after every successful payment
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Tuple

from backend.local_store import LocalRecordStore, LocalStoreError
from backend.preferences import Preferences
from backend.remote_store import RemoteRecordStore, RemoteStoreError
from subscription.models import (
    PaymentRecord,
    PaymentStatus,
    SubscriptionPlan,
    PLANS,
    ensure_utc,
    parse_timestamp,
    utcnow,
)
from utils.logger import logger


class EntitlementSource(str, Enum):
    """Where an entitlement decision came from"""
    CACHE = "cache"
    LOCAL = "local"
    REMOTE = "remote"
    OFFLINE_GRACE = "offline_grace"
    OFFLINE = "offline"


@dataclass(frozen=True)
class EntitlementStatus:
    user_id: str
    is_premium: bool
    source: EntitlementSource
    checked_at: datetime
    plan: Optional[SubscriptionPlan] = None
    expires_at: Optional[datetime] = None
    transaction_id: Optional[str] = None

    @property
    def days_remaining(self) -> int:
        if not self.is_premium or self.expires_at is None:
            return 0
        return max(0, min(999, (self.expires_at - self.checked_at).days))

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'is_premium': self.is_premium,
            'source': self.source.value,
            'checked_at': self.checked_at.isoformat(),
            'plan': self.plan.to_dict() if self.plan else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'days_remaining': self.days_remaining,
            'transaction_id': self.transaction_id,
        }


def latest_active(records: Iterable[PaymentRecord], now: datetime) -> Optional[PaymentRecord]:
    """The active record that expires last, if any"""
    active = [r for r in records if r.is_active(now)]
    if not active:
        return None
    return max(active, key=lambda r: r.expires_at)


class EntitlementResolver:
    """
    Resolves premium entitlement for a user.

    Read-only and idempotent; safe to call on every render.
    """

    SNAPSHOT_KEY = "entitlement_snapshot"

    def __init__(
        self,
        local_store: LocalRecordStore,
        remote_store: Optional[RemoteRecordStore] = None,
        preferences: Optional[Preferences] = None,
        cache_ttl_seconds: int = 60,
        offline_grace_hours: int = 24,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._local = local_store
        self._remote = remote_store
        self._preferences = preferences or Preferences()
        self._cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._offline_grace = timedelta(hours=offline_grace_hours)
        self._clock = clock
        self._cache: Dict[str, Tuple[EntitlementStatus, datetime]] = {}

    def has_premium_access(self, user_id: str) -> bool:
        return self.get_status(user_id).is_premium

    def get_status(self, user_id: str) -> EntitlementStatus:
        now = ensure_utc(self._clock())

        cached = self._cache.get(user_id)
        if cached:
            status, cached_at = cached
            if now - cached_at < self._cache_ttl:
                return replace(status, source=EntitlementSource.CACHE)

        status = self._resolve(user_id, now)
        self._cache[user_id] = (status, now)
        return status

    def invalidate(self, user_id: Optional[str] = None):
        """Drop cached decisions (all users when user_id is None)"""
        if user_id is None:
            self._cache.clear()
        else:
            self._cache.pop(user_id, None)

    def forget_snapshot(self, user_id: str):
        """Remove the persisted last known state of a user"""
        snapshot = self._preferences.get(self.SNAPSHOT_KEY) or {}
        if snapshot.get('user_id') == user_id:
            self._preferences.remove(self.SNAPSHOT_KEY)

    # ========== Resolution ==========

    def _resolve(self, user_id: str, now: datetime) -> EntitlementStatus:
        try:
            local_records = self._local.get_successful_payments(user_id)
        except LocalStoreError as e:
            logger.warning(f"Local payment records unavailable: {e}")
            local_records = []

        record = latest_active(local_records, now)
        if record:
            status = self._status_for(user_id, record, EntitlementSource.LOCAL, now)
            self._save_snapshot(status)
            return status

        if self._remote is None:
            return EntitlementStatus(user_id, False, EntitlementSource.LOCAL, now)

        try:
            remote_records = self._remote.fetch_payments(user_id)
        except RemoteStoreError as e:
            logger.warning(f"Entitlement refresh failed, using last known state: {e}")
            return self._offline_fallback(user_id, now)

        try:
            added = self._local.merge_payments(remote_records)
            if added:
                logger.info(f"Restored {added} payment record(s) from cloud for {user_id}")
        except LocalStoreError as e:
            logger.warning(f"Could not cache cloud payment records locally: {e}")

        successful = [r for r in remote_records if r.status == PaymentStatus.SUCCESSFUL]
        record = latest_active(successful, now)
        if record:
            status = self._status_for(user_id, record, EntitlementSource.REMOTE, now)
        else:
            status = EntitlementStatus(user_id, False, EntitlementSource.REMOTE, now)
        self._save_snapshot(status)
        return status

    def _status_for(
        self,
        user_id: str,
        record: PaymentRecord,
        source: EntitlementSource,
        now: datetime,
    ) -> EntitlementStatus:
        return EntitlementStatus(
            user_id=user_id,
            is_premium=True,
            source=source,
            checked_at=now,
            plan=PLANS.get(record.plan_id),
            expires_at=record.expires_at,
            transaction_id=record.transaction_id,
        )

    def _offline_fallback(self, user_id: str, now: datetime) -> EntitlementStatus:
        """Last known state if it is premium, unexpired and recent enough"""
        snapshot = self._preferences.get(self.SNAPSHOT_KEY) or {}
        if snapshot.get('user_id') == user_id and snapshot.get('is_premium'):
            try:
                verified_at = parse_timestamp(snapshot.get('verified_at'))
                expires_at = parse_timestamp(snapshot.get('expires_at'))
            except ValueError:
                verified_at = expires_at = None

            if (
                verified_at is not None
                and expires_at is not None
                and now < expires_at
                and now - verified_at <= self._offline_grace
            ):
                return EntitlementStatus(
                    user_id=user_id,
                    is_premium=True,
                    source=EntitlementSource.OFFLINE_GRACE,
                    checked_at=now,
                    plan=PLANS.get(snapshot.get('plan_id')),
                    expires_at=expires_at,
                    transaction_id=snapshot.get('transaction_id'),
                )

        return EntitlementStatus(user_id, False, EntitlementSource.OFFLINE, now)

    def _save_snapshot(self, status: EntitlementStatus):
        self._preferences.set(self.SNAPSHOT_KEY, {
            'user_id': status.user_id,
            'is_premium': status.is_premium,
            'plan_id': status.plan.plan_id if status.plan else None,
            'expires_at': status.expires_at.isoformat() if status.expires_at else None,
            'transaction_id': status.transaction_id,
            'verified_at': status.checked_at.isoformat(),
        })
