"""Persisted key-value settings (survive process restart)"""

import threading
from pathlib import Path
from typing import Any, Optional

from config import load_json_file, save_json_file
from utils.logger import logger


class Preferences:
    """
    Small JSON-file key-value store.

    Holds the notification schedule, the one-time defaults marker, the
    local user identity and the last verified entitlement snapshot.
    Pass path=None for a memory-only instance.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._data = load_json_file(self.path) if self.path else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._data.get(key)
        return bool(value) if value is not None else default

    def get_int(self, key: str, default: int = 0) -> int:
        value = self._data.get(key)
        try:
            return int(value) if value is not None else default
        except (TypeError, ValueError):
            return default

    def set(self, key: str, value: Any):
        self.update({key: value})

    def update(self, values: dict):
        with self._lock:
            self._data.update(values)
            self._flush()

    def remove(self, *keys: str):
        with self._lock:
            for key in keys:
                self._data.pop(key, None)
            self._flush()

    def as_dict(self) -> dict:
        return dict(self._data)

    def _flush(self):
        if self.path and not save_json_file(self.path, self._data):
            logger.error(f"Could not save preferences to {self.path}")
