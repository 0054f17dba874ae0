"""
Pending remote-write queue

Remote writes that fail (offline, store down) are persisted in the local
`pending_sync` table and replayed on the next app foreground. Entries are
keyed by (kind, natural key), so queuing the same write twice keeps one
entry, and the remote upserts make a replay after a partial success
harmless. Entries are never dropped for exceeding a retry count; a paid
subscription must eventually reach the cloud store.
"""

import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional

from backend.local_store import LocalRecordStore
from backend.remote_store import RemoteRecordStore, RemoteStoreError
from models.devotional import Favorite
from subscription.models import PaymentRecord, get_plan, parse_timestamp
from utils.logger import logger


class SyncKind(str, Enum):
    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"
    FAVORITE = "favorite"
    FAVORITE_DELETE = "favorite_delete"


class PendingSyncQueue:
    """Write-through to the remote store with a durable retry queue"""

    def __init__(self, local_store: LocalRecordStore, remote_store: Optional[RemoteRecordStore] = None):
        self._local = local_store
        self._remote = remote_store
        self._flush_lock = threading.Lock()
        self._handlers: Dict[SyncKind, Callable[[dict], None]] = {
            SyncKind.PAYMENT: self._apply_payment,
            SyncKind.SUBSCRIPTION: self._apply_subscription,
            SyncKind.FAVORITE: self._apply_favorite,
            SyncKind.FAVORITE_DELETE: self._apply_favorite_delete,
        }

    # ========== Write-through ==========

    def push_payment(self, record: PaymentRecord) -> bool:
        """Upsert a payment remotely, queuing it on failure. True if written now."""
        return self._push(record.user_id, SyncKind.PAYMENT, record.transaction_id, record.to_dict())

    def push_subscription(
        self,
        user_id: str,
        plan_id: str,
        purchased_at: datetime,
        expires_at: datetime,
    ) -> bool:
        payload = {
            'user_id': user_id,
            'plan_id': plan_id,
            'purchased_at': purchased_at.isoformat(),
            'expires_at': expires_at.isoformat(),
        }
        return self._push(user_id, SyncKind.SUBSCRIPTION, user_id, payload)

    def push_favorite(self, favorite: Favorite) -> bool:
        return self._push(favorite.user_id, SyncKind.FAVORITE, self._favorite_key(
            favorite.user_id, favorite.type, favorite.reference_id), favorite.to_dict())

    def push_favorite_delete(self, user_id: str, type: str, reference_id: str) -> bool:
        payload = {'user_id': user_id, 'type': type, 'reference_id': reference_id}
        return self._push(user_id, SyncKind.FAVORITE_DELETE,
                          self._favorite_key(user_id, type, reference_id), payload)

    @staticmethod
    def _favorite_key(user_id: str, type: str, reference_id: str) -> str:
        return f"{user_id}:{type}:{reference_id}"

    def _push(self, user_id: str, kind: SyncKind, key: str, payload: dict) -> bool:
        if self._remote is not None:
            try:
                self._handlers[kind](payload)
                return True
            except RemoteStoreError as e:
                logger.warning(f"Remote {kind.value} write failed, queued for retry: {e}")
        else:
            logger.warning(f"Cloud store not configured, queued {kind.value} write")

        # Favorite add/remove for the same item supersede each other
        if kind in (SyncKind.FAVORITE, SyncKind.FAVORITE_DELETE):
            self._drop_opposite(kind, key)
        self._local.enqueue_sync(user_id, kind.value, key, payload)
        return False

    def _drop_opposite(self, kind: SyncKind, key: str):
        opposite = SyncKind.FAVORITE_DELETE if kind == SyncKind.FAVORITE else SyncKind.FAVORITE
        for entry in self._local.get_pending_syncs():
            if entry['kind'] == opposite.value and entry['dedupe_key'] == key:
                self._local.remove_sync(entry['id'])

    # ========== Replay ==========

    def pending_count(self) -> int:
        return len(self._local.get_pending_syncs())

    def flush(self) -> int:
        """Replay queued writes in order. Returns count of successful writes."""
        if self._remote is None:
            return 0

        # Foreground events can overlap; one replay at a time
        if not self._flush_lock.acquire(blocking=False):
            return 0

        flushed = 0
        try:
            for entry in self._local.get_pending_syncs():
                try:
                    kind = SyncKind(entry['kind'])
                except ValueError:
                    logger.error(f"Dropping pending sync of unknown kind: {entry['kind']}")
                    self._local.remove_sync(entry['id'])
                    continue

                try:
                    self._handlers[kind](entry['payload'])
                except RemoteStoreError as e:
                    self._local.mark_sync_failed(entry['id'], str(e))
                    continue

                self._local.remove_sync(entry['id'])
                flushed += 1
        finally:
            self._flush_lock.release()

        if flushed:
            logger.info(f"Flushed {flushed} pending remote write(s)")
        return flushed

    # ========== Handlers ==========

    def _apply_payment(self, payload: dict):
        self._remote.upsert_payment(PaymentRecord.from_dict(payload))

    def _apply_subscription(self, payload: dict):
        self._remote.upsert_subscription(
            payload['user_id'],
            get_plan(payload['plan_id']),
            parse_timestamp(payload['purchased_at']),
            parse_timestamp(payload['expires_at']),
        )

    def _apply_favorite(self, payload: dict):
        self._remote.upsert_favorite(Favorite.from_dict(payload))

    def _apply_favorite_delete(self, payload: dict):
        self._remote.delete_favorite(payload['user_id'], payload['type'], payload['reference_id'])
