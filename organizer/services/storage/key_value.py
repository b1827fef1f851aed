"""
Key-Value Blob Storage

A single JSON document of named blobs, e.g. ``data/preferences.json``:

    {"savedNotes": "[...]", "savedFolders": "[...]"}

Each value is itself an encoded JSON array, so one corrupt blob does
not take its neighbours down with it. Notes and folders are kept here.
"""

import json
import os
import threading
from pathlib import Path
from typing import Optional

import structlog
from pydantic import TypeAdapter, ValidationError

from organizer.models.common import utcnow
from organizer.services.storage.interface import (
    CollectionStorage,
    CorruptDataError,
    StorageError,
    T,
)
from organizer.services.storage.json_file import (
    atomic_write,
    quarantine_path,
    write_retrying,
)


logger = structlog.get_logger(__name__)


class KeyValueFile:
    """
    A small thread-safe string store backed by one JSON object.

    Several KeyValueStorage instances can share one file; every
    read-modify-write happens under the file's lock.
    """

    def __init__(self, path: Path, retry_attempts: int = 3):
        self._path = Path(path)
        self._lock = threading.Lock()
        self._retrying = write_retrying(retry_attempts)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read {self._path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptDataError(f"{self._path} is not valid JSON: {e}") from e

        if not isinstance(data, dict) or not all(
            isinstance(v, str) for v in data.values()
        ):
            raise CorruptDataError(f"{self._path} is not a key-value document")
        return data

    def _write(self, data: dict[str, str]) -> None:
        payload = json.dumps(data, indent=2, sort_keys=True).encode("utf-8")
        try:
            self._retrying(atomic_write, self._path, payload)
        except OSError as e:
            raise StorageError(f"Failed to write {self._path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._read())

    def move(self, key: str, new_key: str) -> bool:
        """Rename a blob. Returns False when ``key`` is absent."""
        with self._lock:
            data = self._read()
            if key not in data:
                return False
            data[new_key] = data.pop(key)
            self._write(data)
            return True

    def quarantine(self) -> Optional[str]:
        """Move the whole file aside (used when the document itself is corrupt)."""
        with self._lock:
            if not self._path.exists():
                return None
            target = quarantine_path(self._path)
            try:
                os.replace(self._path, target)
            except OSError as e:
                raise StorageError(f"Failed to quarantine {self._path}: {e}") from e
            return str(target)


class KeyValueStorage(CollectionStorage[T]):
    """One entity family stored as a single blob under ``key``."""

    def __init__(self, store: KeyValueFile, key: str, model: type[T]):
        self._store = store
        self._key = key
        self._adapter = TypeAdapter(list[model])
        self.name = key

    @property
    def key(self) -> str:
        return self._key

    def load_all(self) -> Optional[list[T]]:
        blob = self._store.get(self._key)
        if blob is None:
            return None

        try:
            return self._adapter.validate_json(blob)
        except ValidationError as e:
            raise CorruptDataError(
                f"Blob '{self._key}' could not be decoded: {e.error_count()} errors"
            ) from e

    def save_all(self, items: list[T]) -> None:
        self._store.set(self._key, self._adapter.dump_json(items).decode("utf-8"))
        logger.debug("collection_saved", family=self.name, count=len(items))

    def quarantine(self) -> Optional[str]:
        try:
            self._store.get(self._key)
        except CorruptDataError:
            target = self._store.quarantine()
            logger.warning("store_quarantined", key=self._key, moved_to=target)
            return target

        stamp = utcnow().strftime("%Y%m%dT%H%M%S%f")
        new_key = f"{self._key}.corrupt-{stamp}"
        if not self._store.move(self._key, new_key):
            return None

        logger.warning("blob_quarantined", key=self._key, moved_to=new_key)
        return new_key
