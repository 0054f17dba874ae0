"""
Devotional Library - published devotionals, offline copies and favorites

Reads go to the cloud store when reachable and are mirrored into the local
store; when the cloud is unreachable the local mirror is served instead.
Everything shown to the user passes through the ContentGate.
"""

from dataclasses import dataclass
from typing import List, Optional

from backend.local_store import LocalRecordStore
from backend.remote_store import RemoteRecordStore, RemoteStoreError
from models.devotional import ContentItem, DownloadedCopy, Favorite
from subscription.entitlement import EntitlementResolver
from subscription.feature_gate import (
    AccessLevel,
    ContentGate,
    RenderedItem,
    feature_required,
)
from subscription.sync_queue import PendingSyncQueue
from utils.logger import logger


class ContentNotFoundError(Exception):
    """Raised when a devotional id is neither cached nor downloaded"""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Devotional not found: {item_id}")


@dataclass(frozen=True)
class LibraryEntry:
    item: ContentItem
    access: AccessLevel
    downloaded: bool = False


class DevotionalLibrary:
    """Devotional catalogue for one device"""

    def __init__(
        self,
        local_store: LocalRecordStore,
        remote_store: Optional[RemoteRecordStore],
        gate: ContentGate,
        entitlements: EntitlementResolver,
        sync_queue: PendingSyncQueue,
    ):
        self._local = local_store
        self._remote = remote_store
        self._gate = gate
        self._entitlements = entitlements
        self._sync = sync_queue

    def is_entitled(self, user_id: str) -> bool:
        return self._entitlements.has_premium_access(user_id)

    # ========== Catalogue ==========

    def refresh(self) -> List[ContentItem]:
        """Fetch the catalogue from the cloud, falling back to the local mirror"""
        if self._remote is None:
            return self._local.get_devotionals()

        try:
            items = self._remote.fetch_devotionals()
        except RemoteStoreError as e:
            logger.warning(f"Could not refresh devotionals, serving local cache: {e}")
            return self._local.get_devotionals()

        self._local.upsert_devotionals(items)
        logger.info(f"Refreshed {len(items)} devotional(s)")
        return items

    def list_devotionals(self, user_id: str) -> List[LibraryEntry]:
        """Cached devotionals with their access level, hidden items omitted"""
        entitled = self.is_entitled(user_id)
        entries = []
        for item in self._local.get_devotionals():
            access = self._gate.is_accessible(item, entitled)
            if access == AccessLevel.HIDDEN:
                continue
            entries.append(LibraryEntry(item, access, self._local.is_downloaded(item.id)))
        return entries

    def get(self, item_id: str) -> ContentItem:
        item = self._local.get_devotional(item_id)
        if item is None:
            copy = self._local.get_download(item_id)
            if copy is None:
                raise ContentNotFoundError(item_id)
            item = copy.as_item()
        return item

    def open(self, item_id: str, user_id: str) -> RenderedItem:
        return self._gate.render(self.get(item_id), self.is_entitled(user_id))

    # ========== Offline copies ==========

    @feature_required('offline_download', lambda self, item_id, user_id: self.is_entitled(user_id))
    def download(self, item_id: str, user_id: str) -> DownloadedCopy:
        """Keep an offline copy of a devotional (premium only)"""
        copy = DownloadedCopy.of(self.get(item_id))
        self._local.save_download(copy)
        logger.info(f"Downloaded devotional {item_id} for offline reading")
        return copy

    def downloads(self) -> List[DownloadedCopy]:
        return self._local.get_downloads()

    def is_downloaded(self, item_id: str) -> bool:
        return self._local.is_downloaded(item_id)

    def delete_download(self, item_id: str) -> bool:
        return self._local.delete_download(item_id)

    # ========== Favorites ==========

    def add_favorite(self, user_id: str, type: str, reference_id: str,
                     title: str, content: str = "") -> Favorite:
        favorite = Favorite(user_id=user_id, type=type, reference_id=reference_id,
                            title=title, content=content)
        self._local.save_favorite(favorite)
        self._sync.push_favorite(favorite)
        return favorite

    def remove_favorite(self, user_id: str, type: str, reference_id: str) -> bool:
        removed = self._local.delete_favorite(user_id, type, reference_id)
        self._sync.push_favorite_delete(user_id, type, reference_id)
        return removed

    def favorites(self, user_id: str, type: Optional[str] = None) -> List[Favorite]:
        return self._local.get_favorites(user_id, type)

    def sync_favorites(self, user_id: str) -> int:
        """
        Pull cloud favorites missing locally. Local additions and removals
        reach the cloud through the pending-sync queue. Returns count pulled.
        """
        if self._remote is None:
            return 0

        self._sync.flush()
        try:
            remote = self._remote.fetch_favorites(user_id)
        except RemoteStoreError as e:
            logger.warning(f"Favorites sync skipped: {e}")
            return 0

        local_keys = {(f.type, f.reference_id) for f in self._local.get_favorites(user_id)}
        pulled = 0
        for favorite in remote:
            if (favorite.type, favorite.reference_id) not in local_keys:
                self._local.save_favorite(favorite)
                pulled += 1
        return pulled
