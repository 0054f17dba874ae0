"""
Local Record Store - embedded sqlite database on the device

Holds the cached devotional projections, downloaded-for-offline copies,
payment records, favorites and the queue of remote writes still owed to
the cloud store. Every table is keyed so that writes are upserts.
"""

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from models.devotional import ContentItem, DownloadedCopy, Favorite, parse_date
from subscription.models import PaymentRecord, PaymentStatus
from utils.logger import logger


SCHEMA = """
CREATE TABLE IF NOT EXISTS devotionals (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    date TEXT
);

CREATE TABLE IF NOT EXISTS downloads (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    date TEXT,
    downloaded_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS payments (
    id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    user_email TEXT NOT NULL,
    user_name TEXT NOT NULL DEFAULT '',
    transaction_id TEXT NOT NULL UNIQUE,
    tx_ref TEXT NOT NULL,
    amount REAL NOT NULL,
    currency TEXT NOT NULL,
    plan_id TEXT NOT NULL,
    plan_name TEXT NOT NULL DEFAULT '',
    plan_duration_months INTEGER NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    verified_at TEXT,
    metadata TEXT
);
CREATE INDEX IF NOT EXISTS idx_payments_user_id ON payments(user_id);
CREATE INDEX IF NOT EXISTS idx_payments_user_email ON payments(user_email);

CREATE TABLE IF NOT EXISTS favorites (
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    reference_id TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    UNIQUE(user_id, type, reference_id)
);

CREATE TABLE IF NOT EXISTS pending_sync (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    dedupe_key TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    UNIQUE(kind, dedupe_key)
);
"""

_PAYMENT_COLUMNS = (
    'id', 'user_id', 'user_email', 'user_name', 'transaction_id', 'tx_ref',
    'amount', 'currency', 'plan_id', 'plan_name', 'plan_duration_months',
    'status', 'created_at', 'verified_at', 'metadata',
)


class LocalStoreError(Exception):
    """Raised when the embedded database cannot complete an operation"""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"{operation}: {message}")


class LocalRecordStore:
    """sqlite-backed store; the connection is opened once and reused"""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    def close(self):
        self._conn.close()

    def _execute(self, operation: str, sql: str, params: Iterable = ()) -> sqlite3.Cursor:
        try:
            with self._lock, self._conn:
                return self._conn.execute(sql, tuple(params))
        except sqlite3.Error as e:
            logger.error(f"Local store {operation} failed: {e}")
            raise LocalStoreError(operation, str(e)) from e

    def _query(self, operation: str, sql: str, params: Iterable = ()) -> List[sqlite3.Row]:
        try:
            with self._lock:
                return self._conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Local store {operation} failed: {e}")
            raise LocalStoreError(operation, str(e)) from e

    # ========== Devotionals ==========

    def upsert_devotionals(self, items: Iterable[ContentItem]) -> int:
        count = 0
        for item in items:
            self._execute(
                "upsert_devotional",
                "INSERT OR REPLACE INTO devotionals (id, title, content, date) VALUES (?, ?, ?, ?)",
                (item.id, item.title, item.content, item.date.isoformat() if item.date else None),
            )
            count += 1
        return count

    def get_devotionals(self) -> List[ContentItem]:
        rows = self._query("get_devotionals", "SELECT * FROM devotionals ORDER BY date DESC")
        return [ContentItem.from_dict(dict(row)) for row in rows]

    def get_devotional(self, item_id: str) -> Optional[ContentItem]:
        rows = self._query("get_devotional", "SELECT * FROM devotionals WHERE id = ?", (item_id,))
        return ContentItem.from_dict(dict(rows[0])) if rows else None

    # ========== Downloads ==========

    def save_download(self, copy: DownloadedCopy):
        self._execute(
            "save_download",
            "INSERT OR REPLACE INTO downloads (id, title, content, date, downloaded_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                copy.id, copy.title, copy.content,
                copy.date.isoformat() if copy.date else None,
                copy.downloaded_at.isoformat(),
            ),
        )

    @staticmethod
    def _download_from_row(row: sqlite3.Row) -> DownloadedCopy:
        return DownloadedCopy(
            id=row['id'],
            title=row['title'] or "",
            content=row['content'] or "",
            date=parse_date(row['date']),
            downloaded_at=parse_date(row['downloaded_at']) or datetime.now(timezone.utc),
        )

    def get_downloads(self) -> List[DownloadedCopy]:
        rows = self._query("get_downloads", "SELECT * FROM downloads ORDER BY date DESC")
        return [self._download_from_row(row) for row in rows]

    def get_download(self, item_id: str) -> Optional[DownloadedCopy]:
        rows = self._query("get_download", "SELECT * FROM downloads WHERE id = ?", (item_id,))
        return self._download_from_row(rows[0]) if rows else None

    def is_downloaded(self, item_id: str) -> bool:
        return self.get_download(item_id) is not None

    def delete_download(self, item_id: str) -> bool:
        cursor = self._execute("delete_download", "DELETE FROM downloads WHERE id = ?", (item_id,))
        return cursor.rowcount > 0

    # ========== Payments ==========

    def save_payment(self, record: PaymentRecord):
        """Insert a payment, or update the row with the same transaction id"""
        row = record.to_row()
        columns = ", ".join(_PAYMENT_COLUMNS)
        placeholders = ", ".join("?" for _ in _PAYMENT_COLUMNS)
        updates = ", ".join(
            f"{c} = excluded.{c}" for c in _PAYMENT_COLUMNS if c not in ('id', 'transaction_id')
        )
        self._execute(
            "save_payment",
            f"INSERT INTO payments ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT(transaction_id) DO UPDATE SET {updates}",
            [row[c] for c in _PAYMENT_COLUMNS],
        )

    def update_payment_status(
        self,
        transaction_id: str,
        status: PaymentStatus,
        verified_at: Optional[datetime] = None,
    ) -> bool:
        cursor = self._execute(
            "update_payment_status",
            "UPDATE payments SET status = ?, verified_at = ? WHERE transaction_id = ?",
            (PaymentStatus(status).value, verified_at.isoformat() if verified_at else None, transaction_id),
        )
        return cursor.rowcount > 0

    def get_payment_by_transaction_id(self, transaction_id: str) -> Optional[PaymentRecord]:
        rows = self._query(
            "get_payment",
            "SELECT * FROM payments WHERE transaction_id = ? LIMIT 1",
            (transaction_id,),
        )
        return PaymentRecord.from_dict(dict(rows[0])) if rows else None

    def get_payments(self, user_id: str) -> List[PaymentRecord]:
        rows = self._query(
            "get_payments",
            "SELECT * FROM payments WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        )
        return [PaymentRecord.from_dict(dict(row)) for row in rows]

    def get_payments_by_email(self, email: str) -> List[PaymentRecord]:
        rows = self._query(
            "get_payments_by_email",
            "SELECT * FROM payments WHERE user_email = ? ORDER BY created_at DESC",
            (email,),
        )
        return [PaymentRecord.from_dict(dict(row)) for row in rows]

    def get_successful_payments(self, user_id: str) -> List[PaymentRecord]:
        rows = self._query(
            "get_successful_payments",
            "SELECT * FROM payments WHERE user_id = ? AND status = ? ORDER BY created_at DESC",
            (user_id, PaymentStatus.SUCCESSFUL.value),
        )
        return [PaymentRecord.from_dict(dict(row)) for row in rows]

    def merge_payments(self, records: Iterable[PaymentRecord]) -> int:
        """
        Insert records whose transaction id is not stored locally yet, and
        settle local pending rows the cloud store already has a verdict for.
        """
        added = 0
        for record in records:
            existing = self.get_payment_by_transaction_id(record.transaction_id)
            if existing is None or (
                existing.status == PaymentStatus.PENDING and record.status != PaymentStatus.PENDING
            ):
                self.save_payment(record)
                added += 1
        return added

    def total_spent(self, user_id: str) -> float:
        rows = self._query(
            "total_spent",
            "SELECT SUM(amount) AS total FROM payments WHERE user_id = ? AND status = ?",
            (user_id, PaymentStatus.SUCCESSFUL.value),
        )
        return float(rows[0]['total'] or 0.0)

    def payment_count(self, user_id: str) -> int:
        rows = self._query(
            "payment_count", "SELECT COUNT(*) AS n FROM payments WHERE user_id = ?", (user_id,)
        )
        return int(rows[0]['n'])

    def delete_payments(self, user_id: str) -> int:
        return self._execute(
            "delete_payments", "DELETE FROM payments WHERE user_id = ?", (user_id,)
        ).rowcount

    # ========== Favorites ==========

    def save_favorite(self, favorite: Favorite):
        self._execute(
            "save_favorite",
            "INSERT OR REPLACE INTO favorites (user_id, type, reference_id, title, content, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                favorite.user_id, favorite.type, favorite.reference_id,
                favorite.title, favorite.content, favorite.created_at.isoformat(),
            ),
        )

    def delete_favorite(self, user_id: str, type: str, reference_id: str) -> bool:
        cursor = self._execute(
            "delete_favorite",
            "DELETE FROM favorites WHERE user_id = ? AND type = ? AND reference_id = ?",
            (user_id, type, reference_id),
        )
        return cursor.rowcount > 0

    def get_favorites(self, user_id: str, type: Optional[str] = None) -> List[Favorite]:
        if type:
            rows = self._query(
                "get_favorites",
                "SELECT * FROM favorites WHERE user_id = ? AND type = ? ORDER BY created_at DESC",
                (user_id, type),
            )
        else:
            rows = self._query(
                "get_favorites",
                "SELECT * FROM favorites WHERE user_id = ? ORDER BY created_at DESC",
                (user_id,),
            )
        return [Favorite.from_dict(dict(row)) for row in rows]

    def delete_favorites(self, user_id: str) -> int:
        return self._execute(
            "delete_favorites", "DELETE FROM favorites WHERE user_id = ?", (user_id,)
        ).rowcount

    # ========== Pending remote writes ==========

    def enqueue_sync(self, user_id: str, kind: str, dedupe_key: str, payload: dict):
        """Queue a remote write; a second write with the same key replaces the payload"""
        self._execute(
            "enqueue_sync",
            "INSERT INTO pending_sync (user_id, kind, dedupe_key, payload, created_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(kind, dedupe_key) DO UPDATE SET payload = excluded.payload",
            (user_id, kind, dedupe_key, json.dumps(payload), datetime.now(timezone.utc).isoformat()),
        )

    def get_pending_syncs(self) -> List[dict]:
        rows = self._query("get_pending_syncs", "SELECT * FROM pending_sync ORDER BY id")
        pending = []
        for row in rows:
            entry = dict(row)
            entry['payload'] = json.loads(entry['payload'])
            pending.append(entry)
        return pending

    def remove_sync(self, sync_id: int):
        self._execute("remove_sync", "DELETE FROM pending_sync WHERE id = ?", (sync_id,))

    def mark_sync_failed(self, sync_id: int, error: str):
        self._execute(
            "mark_sync_failed",
            "UPDATE pending_sync SET attempts = attempts + 1, last_error = ? WHERE id = ?",
            (error, sync_id),
        )

    def delete_pending_syncs(self, user_id: str) -> int:
        return self._execute(
            "delete_pending_syncs", "DELETE FROM pending_sync WHERE user_id = ?", (user_id,)
        ).rowcount
