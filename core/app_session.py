"""
Application session - builds and owns every service for one running app

All mutable state (entitlement cache, notification settings, the active
payment session) lives in objects constructed here from a Settings
instance; nothing reads module globals.
"""

from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from backend.local_store import LocalRecordStore
from backend.preferences import Preferences
from backend.remote_store import RemoteRecordStore, SupabaseRemoteStore
from config import Settings
from core.devotional_library import DevotionalLibrary
from core.notification_scheduler import (
    APSchedulerPlatform,
    NotificationPlatform,
    NotificationScheduler,
)
from subscription.account import DeletionReport, delete_account
from subscription.entitlement import EntitlementResolver, EntitlementStatus
from subscription.feature_gate import ContentGate
from subscription.gateway import PaymentGateway, PaystackGateway
from subscription.identity import UserIdentity
from subscription.models import FeatureAccess, utcnow
from subscription.payment_session import PaymentService
from subscription.sync_queue import PendingSyncQueue
from utils.logger import logger


class LifecycleEvent(str, Enum):
    FOREGROUND = "foreground"
    BACKGROUND = "background"
    CONNECTIVITY_RESTORED = "connectivity_restored"


class LifecycleEvents:
    """Explicit subscription interface for app lifecycle callbacks"""

    def __init__(self):
        self._handlers: Dict[LifecycleEvent, List[Callable[[], None]]] = defaultdict(list)

    def subscribe(self, event: LifecycleEvent, handler: Callable[[], None]) -> Callable[[], None]:
        """Register a handler; returns a function that unsubscribes it"""
        event = LifecycleEvent(event)
        self._handlers[event].append(handler)

        def unsubscribe():
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return unsubscribe

    def emit(self, event: LifecycleEvent) -> int:
        """Run every handler of an event; returns how many ran without error"""
        event = LifecycleEvent(event)
        succeeded = 0
        for handler in list(self._handlers[event]):
            try:
                handler()
                succeeded += 1
            except Exception as e:
                logger.error(f"Lifecycle handler for {event.value} failed: {e}", exc_info=True)
        return succeeded


class AppSession:
    """
    Wires the app's services together.

    Collaborators can be injected (tests pass fakes); otherwise they are
    built from settings. The remote store is omitted when Supabase is not
    configured, which leaves the app in local-only mode.
    """

    def __init__(
        self,
        settings: Settings,
        remote_store: Optional[RemoteRecordStore] = None,
        gateway: Optional[PaymentGateway] = None,
        notification_platform: Optional[NotificationPlatform] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.preferences = Preferences(settings.PREFERENCES_PATH)
        self.local_store = LocalRecordStore(settings.DATABASE_PATH)

        if remote_store is None and settings.remote_configured:
            remote_store = SupabaseRemoteStore(
                settings.SUPABASE_URL,
                settings.SUPABASE_ANON_KEY,
                timeout=settings.REMOTE_TIMEOUT_SECONDS,
            )
        self.remote_store = remote_store
        if remote_store is None:
            logger.warning("Cloud store not configured, running local-only")

        self.identity = UserIdentity(self.preferences, clock=clock)
        self.gate = ContentGate(settings.FREE_DAY, settings.FREE_TRANSLATION)
        self.entitlements = EntitlementResolver(
            self.local_store,
            self.remote_store,
            self.preferences,
            cache_ttl_seconds=settings.ENTITLEMENT_CACHE_TTL_SECONDS,
            offline_grace_hours=settings.OFFLINE_GRACE_HOURS,
            clock=clock,
        )
        self.sync_queue = PendingSyncQueue(self.local_store, self.remote_store)

        self.gateway = gateway or PaystackGateway(
            settings.PAYSTACK_SECRET_KEY,
            base_url=settings.PAYSTACK_BASE_URL,
            poll_interval=settings.VERIFY_POLL_INTERVAL_SECONDS,
            max_polls=settings.VERIFY_MAX_POLLS,
        )
        self.payments = PaymentService(
            self.local_store,
            self.sync_queue,
            self.entitlements,
            self.identity,
            self.gateway,
            currency=settings.PAYMENT_CURRENCY,
            clock=clock,
        )

        self.notification_platform = notification_platform or APSchedulerPlatform(
            jitter_seconds=settings.INEXACT_JITTER_SECONDS,
        )
        self.notifications = NotificationScheduler(
            self.notification_platform,
            self.preferences,
            default_hour=settings.DEFAULT_NOTIFICATION_HOUR,
            default_minute=settings.DEFAULT_NOTIFICATION_MINUTE,
        )

        self.library = DevotionalLibrary(
            self.local_store,
            self.remote_store,
            self.gate,
            self.entitlements,
            self.sync_queue,
        )

        self.events = LifecycleEvents()
        self.events.subscribe(LifecycleEvent.CONNECTIVITY_RESTORED, self.sync_queue.flush)

    # ========== Lifecycle ==========

    def start(self):
        """Process start: restore reminders and catch up on owed writes"""
        if isinstance(self.notification_platform, APSchedulerPlatform):
            self.notification_platform.start()
        if not self.notifications.apply_defaults():
            self.notifications.restore()
        self.on_foreground()
        logger.info(f"App session started for {self.user_id}")

    def on_foreground(self) -> int:
        """Flush pending remote writes; returns how many were written"""
        flushed = self.sync_queue.flush()
        self.events.emit(LifecycleEvent.FOREGROUND)
        return flushed

    def on_background(self):
        self.events.emit(LifecycleEvent.BACKGROUND)

    def on_connectivity_restored(self):
        self.events.emit(LifecycleEvent.CONNECTIVITY_RESTORED)

    def close(self):
        if isinstance(self.notification_platform, APSchedulerPlatform):
            self.notification_platform.shutdown()
        self.local_store.close()

    # ========== Current user ==========

    @property
    def user_id(self) -> str:
        return self.identity.get_user_id()

    def has_premium_access(self) -> bool:
        return self.entitlements.has_premium_access(self.user_id)

    def entitlement_status(self) -> EntitlementStatus:
        return self.entitlements.get_status(self.user_id)

    def features(self) -> FeatureAccess:
        return self.gate.features(self.has_premium_access())

    def delete_account(self) -> DeletionReport:
        return delete_account(
            self.user_id,
            self.local_store,
            self.remote_store,
            self.identity,
            self.entitlements,
        )
