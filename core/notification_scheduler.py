"""
Notification Scheduler - the single daily devotional reminder

One recurring notification with a fixed id. Enabling always cancels
before registering, so at most one reminder is ever pending. The chosen
time is persisted and re-applied at process start.

Scheduling is delegated to a NotificationPlatform. The bundled
APSchedulerPlatform runs a BackgroundScheduler with a cron trigger;
inexact delivery is a cron trigger with jitter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from backend.preferences import Preferences
from utils.logger import logger

NOTIFICATION_ID = "daily_devotional"
NOTIFICATION_TITLE = "Daily Devotional"
NOTIFICATION_BODY = "Your daily devotional is ready! Tap to read today's message"

ENABLED_KEY = "notifications_enabled"
HOUR_KEY = "notification_hour"
MINUTE_KEY = "notification_minute"
DEFAULTS_APPLIED_KEY = "defaults_applied"


class NotificationPermissionError(Exception):
    """Raised by a platform that refuses to schedule"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class ScheduledNotification:
    id: str
    hour: int
    minute: int
    exact: bool
    title: str = NOTIFICATION_TITLE
    body: str = NOTIFICATION_BODY
    next_fire_time: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'hour': self.hour,
            'minute': self.minute,
            'exact': self.exact,
            'title': self.title,
            'body': self.body,
            'next_fire_time': self.next_fire_time.isoformat() if self.next_fire_time else None,
        }


class NotificationPlatform(ABC):
    """Abstract local notification backend"""

    @abstractmethod
    def schedule_daily(self, notification_id: str, hour: int, minute: int,
                       title: str, body: str, exact: bool) -> None:
        """Register (or replace) a daily notification"""
        pass

    @abstractmethod
    def cancel(self, notification_id: str) -> None:
        pass

    @abstractmethod
    def pending(self) -> List[ScheduledNotification]:
        pass

    def pending_ids(self) -> List[str]:
        return [n.id for n in self.pending()]

    def can_schedule_exact(self) -> bool:
        return True


class APSchedulerPlatform(NotificationPlatform):
    """NotificationPlatform on an APScheduler BackgroundScheduler"""

    def __init__(
        self,
        deliver: Optional[Callable[[str, str, str], None]] = None,
        jitter_seconds: int = 900,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.scheduler = scheduler or BackgroundScheduler()
        self.jitter_seconds = jitter_seconds
        self._deliver_callback = deliver
        self._registered: Dict[str, ScheduledNotification] = {}

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Notification scheduler started")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Notification scheduler shutdown")

    def schedule_daily(self, notification_id: str, hour: int, minute: int,
                       title: str, body: str, exact: bool) -> None:
        trigger = CronTrigger(
            hour=hour,
            minute=minute,
            jitter=None if exact else self.jitter_seconds,
        )
        self.scheduler.add_job(
            func=self._deliver,
            trigger=trigger,
            id=notification_id,
            name=title,
            args=[notification_id, title, body],
            replace_existing=True,
        )
        self._registered[notification_id] = ScheduledNotification(
            notification_id, hour, minute, exact, title, body
        )

    def cancel(self, notification_id: str) -> None:
        try:
            self.scheduler.remove_job(notification_id)
        except JobLookupError:
            pass
        self._registered.pop(notification_id, None)

    def pending(self) -> List[ScheduledNotification]:
        pending = []
        for job in self.scheduler.get_jobs():
            registered = self._registered.get(job.id)
            if registered is None:
                continue
            # Jobs added before start() have no next_run_time yet
            next_fire = getattr(job, 'next_run_time', None)
            pending.append(ScheduledNotification(
                registered.id, registered.hour, registered.minute, registered.exact,
                registered.title, registered.body, next_fire,
            ))
        return pending

    def _deliver(self, notification_id: str, title: str, body: str):
        logger.info(f"Delivering notification {notification_id}: {title}")
        if self._deliver_callback:
            self._deliver_callback(notification_id, title, body)


def format_time(hour: int, minute: int) -> str:
    """12-hour clock display, e.g. 0:05 -> '12:05 AM'"""
    period = 'PM' if hour >= 12 else 'AM'
    display_hour = 12 if hour == 0 else (hour - 12 if hour > 12 else hour)
    return f"{display_hour}:{minute:02d} {period}"


def _validate_time(hour: int, minute: int):
    if not 0 <= hour <= 23:
        raise ValueError(f"hour must be between 0 and 23, got {hour}")
    if not 0 <= minute <= 59:
        raise ValueError(f"minute must be between 0 and 59, got {minute}")


class NotificationScheduler:
    """Daily reminder settings and their registration with the platform"""

    def __init__(
        self,
        platform: NotificationPlatform,
        preferences: Preferences,
        default_hour: int = 0,
        default_minute: int = 0,
    ):
        self._platform = platform
        self._preferences = preferences
        self.default_hour = default_hour
        self.default_minute = default_minute

    format_time = staticmethod(format_time)

    def is_enabled(self) -> bool:
        return self._preferences.get_bool(ENABLED_KEY)

    def get_time(self) -> Tuple[int, int]:
        return (
            self._preferences.get_int(HOUR_KEY, self.default_hour),
            self._preferences.get_int(MINUTE_KEY, self.default_minute),
        )

    def enable(self, hour: Optional[int] = None, minute: Optional[int] = None) -> bool:
        """
        Schedule the daily reminder. Returns False when the platform
        refused entirely, leaving notifications disabled.
        """
        saved_hour, saved_minute = self.get_time()
        hour = saved_hour if hour is None else hour
        minute = saved_minute if minute is None else minute
        _validate_time(hour, minute)

        scheduled = self._schedule(hour, minute)
        self._preferences.update({
            ENABLED_KEY: scheduled,
            HOUR_KEY: hour,
            MINUTE_KEY: minute,
        })
        if scheduled:
            logger.info(f"Daily notifications enabled at {format_time(hour, minute)}")
        return scheduled

    def disable(self):
        self._platform.cancel(NOTIFICATION_ID)
        self._preferences.set(ENABLED_KEY, False)
        logger.info("Daily notifications disabled")

    def reschedule(self, hour: int, minute: int) -> bool:
        """Change the reminder time; only re-registers when enabled"""
        _validate_time(hour, minute)
        enabled = self.is_enabled()
        if enabled:
            enabled = self._schedule(hour, minute)
        self._preferences.update({
            ENABLED_KEY: enabled,
            HOUR_KEY: hour,
            MINUTE_KEY: minute,
        })
        logger.info(f"Notification time updated to {format_time(hour, minute)}")
        return enabled

    def restore(self) -> bool:
        """Re-register the persisted reminder at process start"""
        if not self.is_enabled():
            return False
        hour, minute = self.get_time()
        scheduled = self._schedule(hour, minute)
        if not scheduled:
            self._preferences.set(ENABLED_KEY, False)
        else:
            logger.info(f"Restored daily notifications at {format_time(hour, minute)}")
        return scheduled

    def apply_defaults(self) -> bool:
        """First launch only: enable at the default time. True if applied now."""
        if self._preferences.get_bool(DEFAULTS_APPLIED_KEY):
            return False
        if not self.is_enabled():
            self.enable(self.default_hour, self.default_minute)
        self._preferences.set(DEFAULTS_APPLIED_KEY, True)
        return True

    def pending_notifications(self) -> List[ScheduledNotification]:
        return self._platform.pending()

    def _schedule(self, hour: int, minute: int) -> bool:
        self._platform.cancel(NOTIFICATION_ID)

        exact = self._platform.can_schedule_exact()
        if not exact:
            logger.warning("Exact alarms unavailable, scheduling inexact reminder")

        try:
            self._platform.schedule_daily(
                NOTIFICATION_ID, hour, minute, NOTIFICATION_TITLE, NOTIFICATION_BODY, exact
            )
            return True
        except NotificationPermissionError as e:
            if not exact:
                logger.warning(f"Notifications not permitted: {e.message}")
                return False
            logger.warning(f"Exact scheduling refused, falling back to inexact: {e.message}")

        try:
            self._platform.schedule_daily(
                NOTIFICATION_ID, hour, minute, NOTIFICATION_TITLE, NOTIFICATION_BODY, False
            )
            return True
        except NotificationPermissionError as e:
            logger.warning(f"Notifications not permitted: {e.message}")
            return False
