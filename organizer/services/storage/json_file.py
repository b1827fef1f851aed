"""
JSON File Storage Implementation

One JSON array per entity family, e.g. ``data/tasks.json``.

DESIGN DECISION: Writes go to a temporary file in the same directory
and are then renamed over the target. A crash mid-write leaves either
the old file or the new one, never a truncated mix.

TRADEOFFS:
- Every flush rewrites the whole file (fine for personal-scale data)
- No cross-family transactions (each family is saved independently)
"""

import os
import tempfile
from pathlib import Path
from typing import Optional

import structlog
from pydantic import TypeAdapter, ValidationError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from organizer.models.common import utcnow
from organizer.services.storage.interface import (
    CollectionStorage,
    CorruptDataError,
    StorageError,
    T,
)


logger = structlog.get_logger(__name__)


def write_retrying(attempts: int) -> Retrying:
    """Retry policy for local file writes: transient OSErrors only."""
    return Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )


def atomic_write(path: Path, payload: bytes) -> None:
    """Write ``payload`` to ``path`` via a temp file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except Exception:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def quarantine_path(path: Path) -> Path:
    """Sibling path a corrupt file is moved to."""
    stamp = utcnow().strftime("%Y%m%dT%H%M%S%f")
    return path.with_name(f"{path.name}.corrupt-{stamp}")


class JsonFileStorage(CollectionStorage[T]):
    """
    Stores a list of pydantic models as a JSON array.

    Decimals are written as strings and bytes as base64, so
    ``load_all()`` returns records equal to what was saved.
    """

    def __init__(
        self,
        path: Path,
        model: type[T],
        name: Optional[str] = None,
        retry_attempts: int = 3,
    ):
        self._path = Path(path)
        self._adapter = TypeAdapter(list[model])
        self._retrying = write_retrying(retry_attempts)
        self.name = name or self._path.stem

    @property
    def path(self) -> Path:
        return self._path

    def load_all(self) -> Optional[list[T]]:
        if not self._path.exists():
            return None

        try:
            raw = self._path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {self._path}: {e}") from e

        try:
            return self._adapter.validate_json(raw)
        except ValidationError as e:
            raise CorruptDataError(
                f"{self._path} could not be decoded: {e.error_count()} errors"
            ) from e

    def save_all(self, items: list[T]) -> None:
        payload = self._adapter.dump_json(items, indent=2)
        try:
            self._retrying(atomic_write, self._path, payload)
        except OSError as e:
            raise StorageError(f"Failed to write {self._path}: {e}") from e

        logger.debug("collection_saved", family=self.name, count=len(items))

    def quarantine(self) -> Optional[str]:
        if not self._path.exists():
            return None

        target = quarantine_path(self._path)
        try:
            os.replace(self._path, target)
        except OSError as e:
            raise StorageError(f"Failed to quarantine {self._path}: {e}") from e

        logger.warning("collection_quarantined", family=self.name, moved_to=str(target))
        return str(target)
