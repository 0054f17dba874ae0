"""Devotional API routes: catalogue, reader and offline downloads"""

from fastapi import APIRouter, Depends

from core.app_session import AppSession
from web_ui.api.middleware.session import get_session, require_feature
from web_ui.api.schemas.devotional_schemas import (
    DevotionalListResponse,
    DevotionalSummary,
    DownloadedDevotional,
    DownloadListResponse,
    RefreshResponse,
    RenderedDevotional,
)

router = APIRouter()


def _downloaded(copy) -> DownloadedDevotional:
    return DownloadedDevotional(**copy.to_dict())


@router.get("", response_model=DevotionalListResponse)
def list_devotionals(session: AppSession = Depends(get_session)):
    """
    List cached devotionals with their access level.

    Locked items are listed so the UI can show an upgrade badge.
    """
    entries = session.library.list_devotionals(session.user_id)
    return DevotionalListResponse(
        devotionals=[
            DevotionalSummary(
                id=entry.item.id,
                title=entry.item.title,
                date=entry.item.date.date().isoformat() if entry.item.date else None,
                weekday=entry.item.day_of_week,
                access=entry.access.value,
                downloaded=entry.downloaded,
            )
            for entry in entries
        ],
        is_premium=session.has_premium_access(),
        free_day=session.gate.free_day_name,
    )


@router.post("/refresh", response_model=RefreshResponse)
def refresh_devotionals(session: AppSession = Depends(get_session)):
    """Pull the catalogue from the cloud store (local cache when offline)"""
    return RefreshResponse(count=len(session.library.refresh()))


@router.get("/downloads", response_model=DownloadListResponse)
def list_downloads(session: AppSession = Depends(get_session)):
    return DownloadListResponse(downloads=[_downloaded(c) for c in session.library.downloads()])


@router.delete("/downloads/{item_id}")
def delete_download(item_id: str, session: AppSession = Depends(get_session)):
    return {"deleted": session.library.delete_download(item_id)}


@router.get("/{item_id}", response_model=RenderedDevotional)
def open_devotional(item_id: str, session: AppSession = Depends(get_session)):
    """Open a devotional; locked items come back without their content"""
    return RenderedDevotional(**session.library.open(item_id, session.user_id).to_dict())


@router.get("/{item_id}/share", response_model=RenderedDevotional)
def share_devotional(
    item_id: str,
    session: AppSession = Depends(require_feature("screenshots")),
):
    """Shareable view of a devotional (premium only)"""
    return RenderedDevotional(**session.library.open(item_id, session.user_id).to_dict())


@router.post("/{item_id}/download", response_model=DownloadedDevotional)
def download_devotional(item_id: str, session: AppSession = Depends(get_session)):
    """Keep an offline copy (premium only)"""
    return _downloaded(session.library.download(item_id, session.user_id))
