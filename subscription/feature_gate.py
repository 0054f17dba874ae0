"""
Feature Gate System - Controls access to content and features based on entitlement

Implements the access rules in one place:
- Free-day devotionals are visible to everyone
- Every other devotional is locked without premium
- Items without a usable date are hidden
- Feature flags follow the same free/premium split
- Decorator-based enforcement and upgrade messages

Usage:
    gate = ContentGate()

    # Runtime check
    level = gate.is_accessible(item, entitled)

    # Decorator-based (for methods)
    @feature_required('offline_download', lambda self, item_id, user_id: self.is_entitled(user_id))
    def download(self, item_id, user_id):
        ...
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Any, Callable, Iterable, List, Optional

from models.devotional import ContentItem, WEEKDAY_NAMES
from subscription.models import FeatureAccess, SubscriptionTier
from utils.logger import logger


class AccessLevel(str, Enum):
    """How a content item may be presented"""
    VISIBLE = "visible"
    LOCKED = "locked"    # shown with an upgrade affordance, body withheld
    HIDDEN = "hidden"    # cannot be classified, not shown


class FeatureGateError(Exception):
    """Raised when a feature is not available"""

    def __init__(self, feature: str, required_tier: str, message: str):
        self.feature = feature
        self.required_tier = required_tier
        self.message = message
        super().__init__(message)


# Display name and pitch for each premium feature
FEATURE_DESCRIPTIONS = {
    'weekday_devotionals': (
        'Weekday Devotionals',
        'Access devotionals for all 7 days of the week, not just Sundays.',
    ),
    'all_translations': (
        'All Bible Translations',
        'Access every Bible translation beyond ASV.',
    ),
    'offline_download': (
        'Offline Downloads',
        'Download devotionals to read offline without an internet connection.',
    ),
    'screenshots': (
        'Screenshot Permission',
        'Save and share devotionals as images.',
    ),
    'ad_free': (
        'Ad-free Experience',
        'Read without advertisements.',
    ),
    'priority_support': (
        'Priority Support',
        'Get faster response times from our support team.',
    ),
}

ALL_TRANSLATIONS = [
    'ASV', 'KJV', 'NIV', 'ESV', 'NKJV', 'NLT', 'NASB', 'CSB',
    'AMP', 'MSG', 'HCSB', 'RSV', 'CEV', 'GNT', 'WEB', 'YLT',
]


@dataclass(frozen=True)
class RenderedItem:
    """A content item as the UI may present it"""
    id: str
    title: str
    date: Optional[str]
    weekday: Optional[str]
    access: AccessLevel
    content: Optional[str] = None
    badge: Optional[str] = None
    upgrade_message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'title': self.title,
            'date': self.date,
            'weekday': self.weekday,
            'access': self.access.value,
            'content': self.content,
            'badge': self.badge,
            'upgrade_message': self.upgrade_message,
        }


def upgrade_message(feature_name: str) -> str:
    """Get a user-friendly upgrade message for a feature"""
    if feature_name in FEATURE_DESCRIPTIONS:
        display, description = FEATURE_DESCRIPTIONS[feature_name]
        return f"'{display}' requires a Premium subscription. {description}"
    feature_display = feature_name.replace('_', ' ').title()
    return f"'{feature_display}' is not available with your current subscription."


class ContentGate:
    """
    Decides what the current entitlement may see and do.

    Stateless apart from its configuration; one instance is shared by
    every screen and endpoint.
    """

    def __init__(self, free_day: int = 6, free_translation: str = "ASV"):
        # Monday == 0 ... Sunday == 6
        self.free_day = free_day
        self.free_translation = free_translation.upper()

    @property
    def free_day_name(self) -> str:
        return WEEKDAY_NAMES[self.free_day]

    def is_accessible(self, item: ContentItem, entitled: bool) -> AccessLevel:
        day = item.weekday
        if day is None:
            return AccessLevel.HIDDEN
        if day == self.free_day or entitled:
            return AccessLevel.VISIBLE
        return AccessLevel.LOCKED

    def render(self, item: ContentItem, entitled: bool) -> RenderedItem:
        """Presentable view of an item; locked items carry no body text"""
        level = self.is_accessible(item, entitled)
        date = item.date.date().isoformat() if item.date else None

        if level == AccessLevel.VISIBLE:
            badge = 'FREE' if item.weekday == self.free_day else 'PREMIUM'
            return RenderedItem(item.id, item.title, date, item.day_of_week, level,
                                content=item.content, badge=badge)

        if level == AccessLevel.LOCKED:
            return RenderedItem(item.id, item.title, date, item.day_of_week, level,
                                badge='PREMIUM',
                                upgrade_message=upgrade_message('weekday_devotionals'))

        return RenderedItem(item.id, item.title, date, None, level)

    def filter_accessible(self, items: Iterable[ContentItem], entitled: bool) -> List[ContentItem]:
        return [i for i in items if self.is_accessible(i, entitled) == AccessLevel.VISIBLE]

    # ========== Features ==========

    def features(self, entitled: bool) -> FeatureAccess:
        return FeatureAccess.for_entitlement(entitled)

    def has_feature(self, feature_name: str, entitled: bool) -> bool:
        features = self.features(entitled)
        if hasattr(features, feature_name):
            return getattr(features, feature_name)
        # Default to allowed if not restricted
        return True

    def accessible_translations(self, entitled: bool) -> List[str]:
        if entitled:
            return list(ALL_TRANSLATIONS)
        return [self.free_translation]

    def can_access_translation(self, code: str, entitled: bool) -> bool:
        if code.upper() == self.free_translation:
            return True
        return self.features(entitled).all_translations

    def should_show_ads(self, entitled: bool) -> bool:
        return not self.features(entitled).ad_free

    def require(self, feature_name: str, entitled: bool):
        """Raise FeatureGateError unless the feature is available"""
        if not self.has_feature(feature_name, entitled):
            raise FeatureGateError(
                feature=feature_name,
                required_tier=SubscriptionTier.THREE_MONTHS.value,
                message=upgrade_message(feature_name),
            )


def feature_required(
    feature_name: str,
    entitled_getter: Callable[..., bool],
    raise_error: bool = True,
):
    """
    Decorator to require a premium feature for a function.

    Args:
        feature_name: Name of the required FeatureAccess flag
        entitled_getter: Called with the function's arguments, returns
            whether the caller currently holds premium access
        raise_error: If True, raise FeatureGateError. If False, return None.
    """
    def check(*args, **kwargs) -> bool:
        features = FeatureAccess.for_entitlement(entitled_getter(*args, **kwargs))
        if getattr(features, feature_name, True):
            return True

        message = upgrade_message(feature_name)
        if raise_error:
            raise FeatureGateError(
                feature=feature_name,
                required_tier=SubscriptionTier.THREE_MONTHS.value,
                message=message,
            )
        logger.warning(f"Feature '{feature_name}' not available: {message}")
        return False

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            if not check(*args, **kwargs):
                return None
            return await func(*args, **kwargs)

        @wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            if not check(*args, **kwargs):
                return None
            return func(*args, **kwargs)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
