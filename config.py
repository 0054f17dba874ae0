"""Configuration management using Pydantic settings"""

import platform
import os
import json
from pathlib import Path
from pydantic_settings import BaseSettings
from typing import Optional


def get_default_storage_path() -> str:
    """
    Get OS-specific default storage path for the devotional app.

    Returns:
        - macOS: ~/Library/Application Support/DailyDevotional
        - Linux: ~/.local/share/daily-devotional
        - Windows: %APPDATA%/DailyDevotional
    """
    system = platform.system()
    home = Path.home()

    if system == "Darwin":  # macOS
        return str(home / "Library" / "Application Support" / "DailyDevotional")
    elif system == "Windows":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return str(Path(appdata) / "DailyDevotional")
        return str(home / "AppData" / "Roaming" / "DailyDevotional")
    else:  # Linux and others
        # Follow XDG Base Directory specification
        xdg_data = os.environ.get("XDG_DATA_HOME")
        if xdg_data:
            return str(Path(xdg_data) / "daily-devotional")
        return str(home / ".local" / "share" / "daily-devotional")


def load_json_file(path: Path) -> dict:
    """Load a JSON object from disk, returning {} when missing or unreadable"""
    if path.exists():
        try:
            with open(path, 'r') as f:
                data = json.load(f)
            if isinstance(data, dict):
                return data
        except (OSError, ValueError):
            pass
    return {}


def save_json_file(path: Path, data: dict) -> bool:
    """Save a JSON object to disk"""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(data, f, indent=2)
        return True
    except OSError:
        return False


class Settings(BaseSettings):
    """Application settings"""

    # Storage paths
    STORAGE_DIR: str = get_default_storage_path()

    # Derived paths (computed from STORAGE_DIR unless set explicitly)
    DATABASE_PATH: Optional[str] = None
    PREFERENCES_PATH: Optional[str] = None

    # Managed backend (Supabase PostgREST)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    REMOTE_TIMEOUT_SECONDS: float = 10.0

    # Payment gateway (Paystack)
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYMENT_CURRENCY: str = "NGN"
    VERIFY_POLL_INTERVAL_SECONDS: float = 3.0
    VERIFY_MAX_POLLS: int = 60

    # Entitlement
    ENTITLEMENT_CACHE_TTL_SECONDS: int = 60
    OFFLINE_GRACE_HOURS: int = 24

    # Content gating
    FREE_DAY: int = 6  # datetime.weekday(): Monday=0 ... Sunday=6
    FREE_TRANSLATION: str = "ASV"

    # Daily notification
    DEFAULT_NOTIFICATION_HOUR: int = 0
    DEFAULT_NOTIFICATION_MINUTE: int = 0
    INEXACT_JITTER_SECONDS: int = 900

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

    def model_post_init(self, __context) -> None:
        """Initialize derived paths after model creation"""
        self._update_derived_paths()

    def _update_derived_paths(self) -> None:
        """Update all derived paths based on STORAGE_DIR"""
        storage = Path(self.STORAGE_DIR)

        # Only set if not explicitly configured via env
        if self.DATABASE_PATH is None:
            object.__setattr__(self, 'DATABASE_PATH', str(storage / "devotional.db"))
        if self.PREFERENCES_PATH is None:
            object.__setattr__(self, 'PREFERENCES_PATH', str(storage / "preferences.json"))

    @property
    def remote_configured(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_ANON_KEY)

    def create_directories(self):
        """Create necessary directories"""
        for dir_path in [
            self.STORAGE_DIR,
            str(Path(self.DATABASE_PATH).parent),
            str(Path(self.PREFERENCES_PATH).parent),
        ]:
            if dir_path:
                Path(dir_path).mkdir(parents=True, exist_ok=True)

    def get_storage_info(self) -> dict:
        """Get storage path information for API"""
        return {
            "storage_path": self.STORAGE_DIR,
            "database_path": self.DATABASE_PATH,
            "preferences_path": self.PREFERENCES_PATH,
            "default_path": get_default_storage_path(),
            "is_default": self.STORAGE_DIR == get_default_storage_path(),
            "platform": platform.system(),
        }


# Global settings instance
settings = Settings()
