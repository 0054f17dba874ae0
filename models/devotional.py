"""Devotional content models - published items and offline copies"""

from dataclasses import dataclass, field
from datetime import datetime, date, timezone
from typing import Optional, Union

WEEKDAY_NAMES = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"
)


def parse_date(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """Parse a stored publication date, returning None when unusable"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class ContentItem:
    """
    A published devotional.

    Owned by the remote store; local rows are read-only projections.
    Missing text fields are normalised to empty strings so a damaged row
    still renders as a placeholder.
    """
    id: str
    title: str = ""
    content: str = ""
    date: Optional[datetime] = None

    @property
    def day_of_week(self) -> Optional[str]:
        """Weekday tag derived from the publication date"""
        if self.date is None:
            return None
        return WEEKDAY_NAMES[self.date.weekday()]

    @property
    def weekday(self) -> Optional[int]:
        return self.date.weekday() if self.date else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "date": self.date.isoformat() if self.date else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ContentItem':
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            content=data.get("content") or "",
            date=parse_date(data.get("date")),
        )


@dataclass(frozen=True)
class DownloadedCopy:
    """Local-only duplicate of a ContentItem kept for offline reading"""
    id: str
    title: str
    content: str
    date: Optional[datetime]
    downloaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def of(cls, item: ContentItem) -> 'DownloadedCopy':
        return cls(id=item.id, title=item.title, content=item.content, date=item.date)

    def as_item(self) -> ContentItem:
        return ContentItem(id=self.id, title=self.title, content=self.content, date=self.date)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "date": self.date.isoformat() if self.date else None,
            "downloaded_at": self.downloaded_at.isoformat(),
        }


@dataclass
class Favorite:
    """A devotional or verse the user marked, synced to user_favorites"""
    user_id: str
    type: str
    reference_id: str
    title: str
    content: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "type": self.type,
            "reference_id": self.reference_id,
            "title": self.title,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Favorite':
        created = parse_date(data.get("created_at")) or datetime.now(timezone.utc)
        return cls(
            user_id=data["user_id"],
            type=data["type"],
            reference_id=str(data["reference_id"]),
            title=data.get("title") or "",
            content=data.get("content") or "",
            created_at=created,
        )
