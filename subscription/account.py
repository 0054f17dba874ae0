"""Account deletion across both stores"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from backend.local_store import LocalRecordStore
from backend.remote_store import RemoteRecordStore, RemoteStoreError
from subscription.entitlement import EntitlementResolver
from subscription.identity import UserIdentity
from utils.logger import logger


@dataclass
class DeletionReport:
    user_id: str
    remote: Dict[str, bool] = field(default_factory=dict)
    local: Dict[str, int] = field(default_factory=dict)

    @property
    def remote_complete(self) -> bool:
        return bool(self.remote) and all(self.remote.values())

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'remote': dict(self.remote),
            'local': dict(self.local),
            'remote_complete': self.remote_complete,
        }


def delete_account(
    user_id: str,
    local_store: LocalRecordStore,
    remote_store: Optional[RemoteRecordStore],
    identity: UserIdentity,
    entitlements: EntitlementResolver,
) -> DeletionReport:
    """
    Delete everything a user owns.

    Remote deletion is best effort and reported per table; local rows,
    queued remote writes and the device identity are always removed.
    """
    report = DeletionReport(user_id=user_id)

    if remote_store is not None:
        try:
            report.remote = remote_store.delete_user_data(user_id)
        except RemoteStoreError as e:
            logger.warning(f"Remote account deletion failed for {user_id}: {e}")
            report.remote = {}
        failed = [table for table, ok in report.remote.items() if not ok]
        if failed:
            logger.warning(f"Remote deletion incomplete for {user_id}: {', '.join(failed)}")

    report.local = {
        'payments': local_store.delete_payments(user_id),
        'favorites': local_store.delete_favorites(user_id),
        'pending_sync': local_store.delete_pending_syncs(user_id),
    }

    identity.clear()
    entitlements.invalidate(user_id)
    entitlements.forget_snapshot(user_id)
    logger.info(f"Account deleted: {user_id}")
    return report
