"""
Design (storage.py)
- Purpose: A local string -> string key-value store persisted as one JSON file,
           standing in for the browser's localStorage.
- Inputs: Path of the backing file; keys and string values.
- Outputs: Stored strings (or None).
- Side effects: Reads the file once on construction; rewrites it on every set/remove.
                An unreadable or corrupt file reads as an empty store.
                A failed write raises StorageError and leaves the in-memory map untouched.
- Thread-safety: None. Single user, single process; read-modify-write is not atomic.
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .config import ApplicationConfig

logger = logging.getLogger(__name__)

STORAGE_FILENAME = "local_storage.json"


class StorageError(Exception):
    """Raised when the backing file cannot be written."""


def get_storage_path() -> Path:
    """
    Resolve the backing file. An explicit STORAGE_PATH wins; otherwise prefer the
    per-user app data dir (APPDATA on Windows, XDG_DATA_HOME elsewhere).
    """
    if ApplicationConfig.STORAGE_PATH:
        return Path(ApplicationConfig.STORAGE_PATH).expanduser()
    if sys.platform == "win32" and os.environ.get("APPDATA"):
        return Path(os.environ["APPDATA"]) / ApplicationConfig.BRAND_NAME / STORAGE_FILENAME
    data_home = os.environ.get("XDG_DATA_HOME") or (Path.home() / ".local" / "share")
    return Path(data_home) / ApplicationConfig.BRAND_KEY / STORAGE_FILENAME


class LocalStorage:
    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else get_storage_path()
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Storage file %s unreadable, starting empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Storage file %s is not a JSON object, starting empty", self.path)
            return {}
        return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}

    def _write(self, data: Dict[str, str]) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error("Failed to write storage file %s: %s", self.path, e)
            raise StorageError(f"Could not write {self.path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        updated = dict(self._data)
        updated[key] = str(value)
        self._write(updated)
        self._data = updated

    def remove(self, key: str) -> None:
        if key not in self._data:
            return
        updated = dict(self._data)
        updated.pop(key)
        self._write(updated)
        self._data = updated

    def keys(self) -> List[str]:
        return list(self._data)
