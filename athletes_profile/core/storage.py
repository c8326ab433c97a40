"""
Client-side key/value storage, the server-side stand-in for a browser's local storage.

Each client context gets one backend. The platform client persists its session
here and the SessionPolicyStore keeps the remember-me flag and cached link tokens
next to it, so a restart with a file-backed store behaves like a browser reload.
"""

import hashlib
import json
import logging
import os
from typing import Dict, Optional

from athletes_profile.core.config import settings

logger = logging.getLogger(__name__)


class StorageBackend:
    """Abstract base class for client storage backends"""

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string or None"""
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        """Store a string value under key"""
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        """Remove key if present"""
        raise NotImplementedError


class MemoryStorage(StorageBackend):
    """Process-local storage, lost on restart"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage(StorageBackend):
    """One JSON document per client, rewritten on every change"""

    def __init__(self, file_path: str):
        self.file_path = file_path
        directory = os.path.dirname(file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._items = self._load()

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.file_path):
            return {}
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable client storage {self.file_path}: {e}")
            return {}
        return {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}

    def _flush(self) -> None:
        tmp_path = f"{self.file_path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._items, f)
        os.replace(tmp_path, self.file_path)

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if key in self._items:
            del self._items[key]
            self._flush()


def _storage_file_name(client_id: str) -> str:
    """One file per distinct client id, whatever characters the id contains"""
    digest = hashlib.sha256(client_id.encode("utf-8")).hexdigest()
    return f"{digest}.json"


def get_client_storage(client_id: str) -> StorageBackend:
    """Get storage backend for a client based on CLIENT_STORAGE_DIR"""
    if settings.CLIENT_STORAGE_DIR:
        file_path = os.path.join(settings.CLIENT_STORAGE_DIR, _storage_file_name(client_id))
        return JsonFileStorage(file_path)
    return MemoryStorage()
