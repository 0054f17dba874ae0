"""
Remote Record Store - managed cloud tables reached over PostgREST

The cloud store mirrors devotional content and payment/subscription
records. Its row-level rules are open, so every access decision is made
by this application before a request is sent.

Writes of payments, subscriptions and favorites are upserts keyed on their
natural unique columns, so a retried write never creates a second row.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

import requests

from models.devotional import ContentItem, Favorite
from subscription.models import PaymentRecord, SubscriptionPlan
from utils.logger import logger


class RemoteStoreError(Exception):
    """Raised when the cloud store is unreachable or rejects a request"""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        self.operation = operation
        self.message = message
        self.status_code = status_code
        super().__init__(f"{operation}: {message}")


class RemoteRecordStore(ABC):
    """Interface of the cloud store used by the rest of the app"""

    @abstractmethod
    def fetch_devotionals(self) -> List[ContentItem]:
        """All published devotionals, newest first"""
        pass

    @abstractmethod
    def fetch_payments(self, user_id: str) -> List[PaymentRecord]:
        """Every payment record of a user, newest first"""
        pass

    @abstractmethod
    def upsert_payment(self, record: PaymentRecord) -> None:
        """Write a payment; rows are unique on transaction_id"""
        pass

    @abstractmethod
    def upsert_subscription(
        self,
        user_id: str,
        plan: SubscriptionPlan,
        purchased_at: datetime,
        expires_at: datetime,
    ) -> None:
        """Write the user's current subscription summary row"""
        pass

    @abstractmethod
    def fetch_favorites(self, user_id: str) -> List[Favorite]:
        pass

    @abstractmethod
    def upsert_favorite(self, favorite: Favorite) -> None:
        pass

    @abstractmethod
    def delete_favorite(self, user_id: str, type: str, reference_id: str) -> None:
        pass

    @abstractmethod
    def delete_user_data(self, user_id: str) -> Dict[str, bool]:
        """Delete every row owned by a user; returns per-table success"""
        pass


# Tables holding user-owned rows, deleted together on account deletion
USER_TABLES = ("payments", "user_favorites", "subscriptions", "users")


class SupabaseRemoteStore(RemoteRecordStore):
    """RemoteRecordStore talking to Supabase's REST interface"""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _headers(self, prefer: Optional[str] = None) -> dict:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        operation: str,
        method: str,
        table: str,
        params: Optional[dict] = None,
        payload=None,
        prefer: Optional[str] = None,
    ) -> requests.Response:
        if not self.is_configured():
            raise RemoteStoreError(operation, "cloud store not configured")

        try:
            response = self._session.request(
                method,
                f"{self.base_url}/rest/v1/{table}",
                params=params,
                json=payload,
                headers=self._headers(prefer),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Cloud store {operation} failed: {e}")
            raise RemoteStoreError(operation, str(e)) from e

        if response.status_code >= 400:
            logger.warning(f"Cloud store {operation} returned {response.status_code}: {response.text}")
            if response.status_code in (401, 403):
                message = "rejected by row level security policy"
            else:
                message = f"HTTP {response.status_code}"
            raise RemoteStoreError(operation, message, status_code=response.status_code)

        return response

    def _fetch_rows(self, operation: str, table: str, params: dict) -> list:
        response = self._request(operation, "GET", table, params=params)
        try:
            rows = response.json()
        except ValueError as e:
            # A captive portal or proxy page answers 200 with HTML
            logger.warning(f"Cloud store {operation} returned a non-JSON body")
            raise RemoteStoreError(operation, "response is not JSON") from e
        if not isinstance(rows, list):
            raise RemoteStoreError(operation, "unexpected response shape")
        return rows

    # ========== Devotionals ==========

    def fetch_devotionals(self) -> List[ContentItem]:
        rows = self._fetch_rows(
            "fetch_devotionals", "devotionals",
            params={"select": "*", "order": "date.desc"},
        )
        items = []
        for row in rows:
            try:
                items.append(ContentItem.from_dict(row))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed devotional row: {e}")
        return items

    # ========== Payments ==========

    def fetch_payments(self, user_id: str) -> List[PaymentRecord]:
        rows = self._fetch_rows(
            "fetch_payments", "payments",
            params={"user_id": f"eq.{user_id}", "select": "*", "order": "created_at.desc"},
        )
        records = []
        for row in rows:
            try:
                records.append(PaymentRecord.from_dict(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed payment row: {e}")
        return records

    def upsert_payment(self, record: PaymentRecord) -> None:
        payload = record.to_dict()
        # The cloud table generates its own primary key
        payload.pop("id", None)
        self._request(
            "upsert_payment", "POST", "payments",
            params={"on_conflict": "transaction_id"},
            payload=payload,
            prefer="resolution=merge-duplicates,return=minimal",
        )
        logger.info(f"Payment synced to cloud: {record.transaction_id}")

    def upsert_subscription(
        self,
        user_id: str,
        plan: SubscriptionPlan,
        purchased_at: datetime,
        expires_at: datetime,
    ) -> None:
        self._request(
            "upsert_subscription", "POST", "subscriptions",
            params={"on_conflict": "user_id"},
            payload={
                "user_id": user_id,
                "tier_name": plan.tier.value,
                "plan_id": plan.plan_id,
                "purchase_date": purchased_at.isoformat(),
                "expiry_date": expires_at.isoformat(),
            },
            prefer="resolution=merge-duplicates,return=minimal",
        )

    # ========== Favorites ==========

    def fetch_favorites(self, user_id: str) -> List[Favorite]:
        rows = self._fetch_rows(
            "fetch_favorites", "user_favorites",
            params={"user_id": f"eq.{user_id}", "select": "*"},
        )
        favorites = []
        for row in rows:
            try:
                favorites.append(Favorite.from_dict(row))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed favorite row: {e}")
        return favorites

    def upsert_favorite(self, favorite: Favorite) -> None:
        self._request(
            "upsert_favorite", "POST", "user_favorites",
            params={"on_conflict": "user_id,type,reference_id"},
            payload=favorite.to_dict(),
            prefer="resolution=merge-duplicates,return=minimal",
        )

    def delete_favorite(self, user_id: str, type: str, reference_id: str) -> None:
        self._request(
            "delete_favorite", "DELETE", "user_favorites",
            params={
                "user_id": f"eq.{user_id}",
                "type": f"eq.{type}",
                "reference_id": f"eq.{reference_id}",
            },
        )

    # ========== Account ==========

    def delete_user_data(self, user_id: str) -> Dict[str, bool]:
        results = {}
        for table in USER_TABLES:
            try:
                self._request(
                    f"delete_{table}", "DELETE", table,
                    params={"user_id": f"eq.{user_id}"},
                )
                results[table] = True
            except RemoteStoreError:
                results[table] = False
        return results
