"""Notification routes: the daily devotional reminder"""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from core.app_session import AppSession
from core.notification_scheduler import format_time
from web_ui.api.middleware.session import get_session

router = APIRouter()


class ReminderTime(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(..., ge=0, le=59)


class NotificationSettingsResponse(BaseModel):
    enabled: bool
    hour: int
    minute: int
    display_time: str
    pending: List[dict]


def _settings_response(session: AppSession) -> NotificationSettingsResponse:
    hour, minute = session.notifications.get_time()
    return NotificationSettingsResponse(
        enabled=session.notifications.is_enabled(),
        hour=hour,
        minute=minute,
        display_time=format_time(hour, minute),
        pending=[n.to_dict() for n in session.notifications.pending_notifications()],
    )


@router.get("", response_model=NotificationSettingsResponse)
def get_notification_settings(session: AppSession = Depends(get_session)):
    return _settings_response(session)


@router.post("/enable", response_model=NotificationSettingsResponse)
def enable_notifications(time: ReminderTime, session: AppSession = Depends(get_session)):
    """
    Enable the daily reminder. If the platform refuses, the response
    reports enabled=false rather than failing.
    """
    session.notifications.enable(time.hour, time.minute)
    return _settings_response(session)


@router.post("/disable", response_model=NotificationSettingsResponse)
def disable_notifications(session: AppSession = Depends(get_session)):
    session.notifications.disable()
    return _settings_response(session)


@router.put("/time", response_model=NotificationSettingsResponse)
def update_notification_time(time: ReminderTime, session: AppSession = Depends(get_session)):
    session.notifications.reschedule(time.hour, time.minute)
    return _settings_response(session)
