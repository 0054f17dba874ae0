#!/usr/bin/env python3
"""
Notification Scheduler Tests

At most one daily reminder is ever pending, the chosen time survives a
restart, and a refused exact alarm falls back to an inexact one.
"""

import pytest

from apscheduler.schedulers.background import BackgroundScheduler

from core.notification_scheduler import (
    DEFAULTS_APPLIED_KEY,
    ENABLED_KEY,
    NOTIFICATION_ID,
    APSchedulerPlatform,
    NotificationScheduler,
    format_time,
)


@pytest.fixture
def scheduler(notification_platform, preferences):
    return NotificationScheduler(notification_platform, preferences)


# ============================================================================
# ENABLE / DISABLE
# ============================================================================

class TestEnable:

    def test_enable_registers_one(self, scheduler, notification_platform):
        assert scheduler.enable(7, 30)
        assert scheduler.is_enabled()
        assert scheduler.get_time() == (7, 30)
        assert notification_platform.pending_ids() == [NOTIFICATION_ID]
        assert notification_platform.scheduled[NOTIFICATION_ID].exact

    def test_enable_twice_still_one(self, scheduler, notification_platform):
        scheduler.enable(7, 30)
        scheduler.enable(8, 0)
        pending = notification_platform.pending()
        assert len(pending) == 1
        assert (pending[0].hour, pending[0].minute) == (8, 0)

    def test_enable_uses_saved_time(self, scheduler, notification_platform):
        scheduler.enable(6, 15)
        scheduler.disable()
        scheduler.enable()
        assert scheduler.get_time() == (6, 15)

    def test_disable_cancels(self, scheduler, notification_platform):
        scheduler.enable(7, 30)
        scheduler.disable()
        assert not scheduler.is_enabled()
        assert notification_platform.pending() == []
        # Time kept for the next enable
        assert scheduler.get_time() == (7, 30)

    def test_invalid_time(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.enable(24, 0)
        with pytest.raises(ValueError):
            scheduler.reschedule(12, 60)


# ============================================================================
# PERMISSIONS
# ============================================================================

class TestPermissions:

    def test_exact_refused_falls_back_to_inexact(self, scheduler, notification_platform):
        notification_platform.deny_exact = True
        assert scheduler.enable(7, 0)
        assert not notification_platform.scheduled[NOTIFICATION_ID].exact

    def test_exact_unavailable_schedules_inexact(self, scheduler, notification_platform):
        notification_platform.exact_available = False
        assert scheduler.enable(7, 0)
        assert not notification_platform.scheduled[NOTIFICATION_ID].exact

    def test_all_refused_stays_disabled(self, scheduler, notification_platform):
        notification_platform.deny_all = True
        assert not scheduler.enable(7, 0)
        assert not scheduler.is_enabled()
        assert notification_platform.pending() == []


# ============================================================================
# RESCHEDULE / RESTORE / DEFAULTS
# ============================================================================

class TestPersistence:

    def test_reschedule_when_enabled(self, scheduler, notification_platform):
        scheduler.enable(7, 0)
        assert scheduler.reschedule(21, 45)
        assert notification_platform.scheduled[NOTIFICATION_ID].hour == 21

    def test_reschedule_when_disabled_only_saves(self, scheduler, notification_platform):
        assert not scheduler.reschedule(21, 45)
        assert scheduler.get_time() == (21, 45)
        assert notification_platform.pending() == []

    def test_restore_after_restart(self, notification_platform, preferences):
        NotificationScheduler(notification_platform, preferences).enable(5, 30)
        notification_platform.scheduled.clear()

        restarted = NotificationScheduler(notification_platform, preferences)
        assert restarted.restore()
        assert notification_platform.scheduled[NOTIFICATION_ID].minute == 30

    def test_restore_disabled_does_nothing(self, scheduler, notification_platform):
        assert not scheduler.restore()
        assert notification_platform.pending() == []

    def test_restore_refused_disables(self, scheduler, notification_platform):
        scheduler.enable(5, 30)
        notification_platform.deny_all = True
        assert not scheduler.restore()
        assert not scheduler.is_enabled()

    def test_defaults_applied_once(self, scheduler, notification_platform, preferences):
        assert scheduler.apply_defaults()
        assert scheduler.is_enabled()
        assert scheduler.get_time() == (0, 0)
        assert preferences.get(DEFAULTS_APPLIED_KEY)

        scheduler.disable()
        assert not scheduler.apply_defaults()
        assert not scheduler.is_enabled()

    def test_defaults_keep_existing_choice(self, scheduler, preferences):
        scheduler.enable(9, 0)
        scheduler.apply_defaults()
        assert scheduler.get_time() == (9, 0)
        assert preferences.get(ENABLED_KEY)


class TestFormatTime:

    @pytest.mark.parametrize("hour,minute,expected", [
        (0, 0, "12:00 AM"),
        (0, 5, "12:05 AM"),
        (9, 30, "9:30 AM"),
        (12, 0, "12:00 PM"),
        (23, 59, "11:59 PM"),
    ])
    def test_format(self, hour, minute, expected):
        assert format_time(hour, minute) == expected
        assert NotificationScheduler.format_time(hour, minute) == expected


# ============================================================================
# APSCHEDULER PLATFORM
# ============================================================================

class TestAPSchedulerPlatform:
    """The scheduler is never started, so jobs stay in its pending list"""

    @pytest.fixture
    def platform(self):
        return APSchedulerPlatform(scheduler=BackgroundScheduler(), jitter_seconds=900)

    def test_exact_job(self, platform):
        platform.schedule_daily(NOTIFICATION_ID, 7, 30, "Daily Devotional", "Body", exact=True)
        jobs = platform.scheduler.get_jobs()
        assert [job.id for job in jobs] == [NOTIFICATION_ID]
        assert jobs[0].trigger.jitter is None
        assert platform.pending()[0].exact

    def test_inexact_job_has_jitter(self, platform):
        platform.schedule_daily(NOTIFICATION_ID, 7, 30, "Daily Devotional", "Body", exact=False)
        assert platform.scheduler.get_jobs()[0].trigger.jitter == 900

    def test_through_scheduler_single_job(self, platform, preferences):
        scheduler = NotificationScheduler(platform, preferences)
        scheduler.enable(7, 0)
        scheduler.enable(8, 0)
        scheduler.reschedule(9, 0)
        assert platform.pending_ids() == [NOTIFICATION_ID]
        assert platform.pending()[0].hour == 9

    def test_cancel_missing_job(self, platform):
        platform.cancel(NOTIFICATION_ID)
        assert platform.pending() == []

    def test_deliver_callback(self, preferences):
        delivered = []
        platform = APSchedulerPlatform(
            deliver=lambda *args: delivered.append(args),
            scheduler=BackgroundScheduler(),
        )
        platform._deliver(NOTIFICATION_ID, "Daily Devotional", "Body")
        assert delivered == [(NOTIFICATION_ID, "Daily Devotional", "Body")]
