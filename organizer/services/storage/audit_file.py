"""
Append-only JSON-lines audit storage.

One audit event per line. The file is only ever appended to.
"""

import threading
from pathlib import Path
from uuid import UUID

from organizer.models.audit import AuditEvent
from organizer.services.storage.interface import AuditStorageInterface, StorageError


class JsonLinesAuditStorage(AuditStorageInterface):
    """Audit events in a ``.jsonl`` file."""

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()

    def append_event(self, event: AuditEvent) -> bool:
        line = event.model_dump_json() + "\n"
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as fh:
                    fh.write(line)
            except OSError as e:
                raise StorageError(f"Failed to append to {self._path}: {e}") from e
        return True

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        with self._lock:
            if not self._path.exists():
                return []
            try:
                lines = self._path.read_text(encoding="utf-8").splitlines()
            except OSError as e:
                raise StorageError(f"Failed to read {self._path}: {e}") from e

        events = []
        for line in reversed(lines):
            if not line.strip():
                continue
            try:
                events.append(AuditEvent.model_validate_json(line))
            except ValueError:
                # Partial trailing line from an interrupted append
                continue
            if len(events) >= limit:
                break
        return events

    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        """Events for one entity, oldest first."""
        events = [
            e for e in self.get_recent_events(limit=10_000)
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return list(reversed(events))
