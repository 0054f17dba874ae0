"""Devotional API schemas"""

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel


class DevotionalSummary(BaseModel):
    """A devotional in the catalogue listing"""
    id: str
    title: str
    date: Optional[str]
    weekday: Optional[str]
    access: Literal["visible", "locked"]
    downloaded: bool


class DevotionalListResponse(BaseModel):
    devotionals: List[DevotionalSummary]
    is_premium: bool
    free_day: str


class RenderedDevotional(BaseModel):
    """A devotional as the reader screen shows it; locked items carry no content"""
    id: str
    title: str
    date: Optional[str]
    weekday: Optional[str]
    access: Literal["visible", "locked", "hidden"]
    content: Optional[str] = None
    badge: Optional[str] = None
    upgrade_message: Optional[str] = None


class RefreshResponse(BaseModel):
    count: int


class DownloadedDevotional(BaseModel):
    id: str
    title: str
    content: str
    date: Optional[str]
    downloaded_at: datetime


class DownloadListResponse(BaseModel):
    downloads: List[DownloadedDevotional]


class FavoriteItem(BaseModel):
    type: Literal["devotional", "verse"]
    reference_id: str
    title: str
    content: str = ""
    created_at: Optional[datetime] = None


class FavoritesResponse(BaseModel):
    favorites: List[FavoriteItem]


class FavoriteAddRequest(BaseModel):
    """Request to add a favorite"""
    type: Literal["devotional", "verse"]
    reference_id: str
    title: str
    content: str = ""


class FavoriteSyncResponse(BaseModel):
    pulled: int
