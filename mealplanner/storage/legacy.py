"""
Legacy Flat-Key Storage

Older versions of the app kept everything in a flat string -> string
key/value area (one JSON file on disk here):

    users                      JSON array of user records
    user                       JSON object of the logged-in user
    weekPlan_<username>        JSON week plan
    groceryList_<username>     JSON grocery list
    foodTracking_<username>    JSON food tracking log
    dbMigrationCompleted       "true" once migrated

After migration only the completion flag is ever written.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional, Union

from mealplanner.storage.interface import LegacyStorageError


LEGACY_USERS_KEY = "users"
LEGACY_CURRENT_USER_KEY = "user"
MIGRATION_FLAG_KEY = "dbMigrationCompleted"


def legacy_field_key(entity: str, username: str) -> str:
    """Per-user legacy key, e.g. weekPlan_luna."""
    return f"{entity}_{username}"


class LegacyFlatStore:
    """
    String key/value store backed by a single JSON object file.

    A missing file reads as empty. Writes replace the file atomically.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise LegacyStorageError(f"Cannot read {self._path}: {e}") from e
        if not text.strip():
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise LegacyStorageError(f"Corrupt legacy storage file {self._path}: {e}") from e
        if not isinstance(payload, dict):
            raise LegacyStorageError(f"Legacy storage file {self._path} is not a JSON object")
        return {
            str(key): value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
            for key, value in payload.items()
        }

    def _write(self, items: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                dir=str(self._path.parent),
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(items, handle, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except OSError as e:
            raise LegacyStorageError(f"Cannot write {self._path}: {e}") from e

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._read()
            items[key] = str(value)
            self._write(items)

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._read()
            if items.pop(key, None) is not None:
                self._write(items)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._read())

    # Migration flag

    def migration_completed(self) -> bool:
        return bool(self.get_item(MIGRATION_FLAG_KEY))

    def mark_migration_completed(self) -> None:
        self.set_item(MIGRATION_FLAG_KEY, "true")
