"""
Tab-scoped key/value storage for the conversation log.

Mirrors the browser's sessionStorage: values are strings, a slot survives a
reload of the same tab (same tab id) and is never shared across tabs.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)

_SAFE_TAB_ID = re.compile(r"[^A-Za-z0-9_.-]")


class SessionStorage(ABC):
    """Base class for storage backends."""

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Return the stored string, or None if the slot is empty."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a string under key."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Clear the slot (no error if already empty)."""


class MemoryStorage(SessionStorage):
    """Storage that lives as long as the process."""

    def __init__(self):
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class FileStorage(SessionStorage):
    """
    Storage backed by one JSON file per tab.

    A client restarted with the same tab id sees the same slots; a
    different tab id gets its own file.
    """

    def __init__(self, directory: Path, tab_id: str):
        self.directory = Path(directory)
        self.tab_id = tab_id
        safe_id = _SAFE_TAB_ID.sub("_", tab_id) or "default"
        self.path = self.directory / f"session-{safe_id}.json"

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.warning(f"Unreadable session storage at {self.path}, starting empty")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, items: dict[str, str]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(items, f)
        tmp_path.replace(self.path)

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._save(items)
