"""
Local user identity

There is no password-based account system. A user is an opaque id
generated on first use ("user_<epoch millis>") and kept in preferences,
optionally paired with an email and display name captured at payment
time. Identity does not travel between devices.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from backend.preferences import Preferences
from utils.logger import logger

USER_ID_KEY = "user_id"
USER_EMAIL_KEY = "user_email"
USER_NAME_KEY = "user_name"

DEFAULT_EMAIL = "user@devotionalapp.com"
DEFAULT_NAME = "Devotional User"


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    email: str
    name: str
    email_linked: bool

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "name": self.name,
            "email_linked": self.email_linked,
        }


class UserIdentity:
    """Reads and writes the device-local identity"""

    def __init__(
        self,
        preferences: Preferences,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._preferences = preferences
        self._clock = clock

    def get_user_id(self) -> str:
        """Return the stored id, generating one on first use"""
        user_id = self._preferences.get(USER_ID_KEY)
        if not user_id:
            user_id = f"user_{int(self._clock().timestamp() * 1000)}"
            self._preferences.set(USER_ID_KEY, user_id)
            logger.info(f"Generated local user id {user_id}")
        return user_id

    def get_email(self) -> str:
        return self._preferences.get(USER_EMAIL_KEY) or DEFAULT_EMAIL

    def get_name(self) -> str:
        return self._preferences.get(USER_NAME_KEY) or DEFAULT_NAME

    def link_email(self, email: str, name: Optional[str] = None):
        """Attach an email (and optionally a name) to the local id"""
        values = {USER_EMAIL_KEY: email.strip()}
        if name:
            values[USER_NAME_KEY] = name.strip()
        self._preferences.update(values)

    def profile(self) -> UserProfile:
        return UserProfile(
            user_id=self.get_user_id(),
            email=self.get_email(),
            name=self.get_name(),
            email_linked=bool(self._preferences.get(USER_EMAIL_KEY)),
        )

    def clear(self):
        self._preferences.remove(USER_ID_KEY, USER_EMAIL_KEY, USER_NAME_KEY)
