"""Core services of the Daily Devotional app"""

from .app_session import AppSession, LifecycleEvent, LifecycleEvents
from .devotional_library import ContentNotFoundError, DevotionalLibrary, LibraryEntry
from .notification_scheduler import (
    APSchedulerPlatform,
    NotificationPermissionError,
    NotificationPlatform,
    NotificationScheduler,
)

__all__ = [
    "AppSession",
    "LifecycleEvent",
    "LifecycleEvents",
    "ContentNotFoundError",
    "DevotionalLibrary",
    "LibraryEntry",
    "APSchedulerPlatform",
    "NotificationPermissionError",
    "NotificationPlatform",
    "NotificationScheduler",
]
