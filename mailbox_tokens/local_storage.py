"""
Local Storage — Unauthenticated key/value storage on the client machine.

Holds the legacy static password and the markers that signal a pending
token migration. Nothing new is ever written here by the token cipher.
"""
import os
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union
from collections.abc import Iterable

import orjson

logger = logging.getLogger("mailbox.tokens")

# Legacy key names; presence of either one means a migration is pending.
LEGACY_PASSWORD_KEY = "dmarc_encryption_key"
LEGACY_SESSION_KEY = "dmarc_session_encryption_key"
LEGACY_MARKER_KEYS = (LEGACY_SESSION_KEY, LEGACY_PASSWORD_KEY)


class LocalStorage(ABC):
    """String key/value store with browser localStorage semantics."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove ``key``; a missing key is not an error."""

    def has_any(self, keys: Iterable[str]) -> bool:
        return any(self.get_item(key) for key in keys)

    def remove_all(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.remove_item(key)


class MemoryLocalStorage(LocalStorage):
    """Process-local storage, mostly useful for tests and tooling."""

    def __init__(self, data: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(data or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class FileLocalStorage(LocalStorage):
    """Local storage persisted as a single JSON object file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, str]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        if not raw.strip():
            return {}
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as err:
            raise ValueError(
                f"Local storage file {self.path} is not valid JSON"
            ) from err
        if not isinstance(data, dict):
            raise ValueError(
                f"Local storage file {self.path} must contain a JSON object"
            )
        return data

    def _dump(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_bytes(orjson.dumps(data))
        os.replace(tmp, self.path)

    def get_item(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return None if value is None else str(value)

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)
            logger.debug("Removed local storage key %s", key)
