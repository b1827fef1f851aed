"""
Abstract Storage Interface

DESIGN DECISION: Persistence is whole-collection. A manager hands the
store its entire list on every flush and reads the entire list back
on startup. There is no per-record query layer.

This allows us to:
1. Keep JSON files, a key-value blob, or an in-memory fake interchangeable
2. Snapshot state atomically (one write per flush)
3. Keep managers decoupled from file formats
"""

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

from organizer.models.audit import AuditEvent


T = TypeVar("T", bound=BaseModel)


class CollectionStorage(ABC, Generic[T]):
    """
    Typed repository for one entity family.

    Any storage implementation must implement these methods.
    """

    #: Human-readable family name used in logs ("tasks", "notes", ...)
    name: str = "collection"

    @abstractmethod
    def load_all(self) -> Optional[list[T]]:
        """
        Read the whole collection.

        Returns:
            The stored items, or None when nothing has been stored yet

        Raises:
            CorruptDataError: If data exists but cannot be decoded
            StorageError: If the backing store cannot be read
        """
        pass

    @abstractmethod
    def save_all(self, items: list[T]) -> None:
        """
        Replace the stored collection with ``items``.

        Raises:
            StorageError: If the write fails
        """
        pass

    def quarantine(self) -> Optional[str]:
        """
        Move corrupt data aside so the next save cannot overwrite it.

        Returns:
            Where the data was moved, or None if there was nothing to move
        """
        return None


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class CorruptDataError(StorageError):
    """Stored data exists but could not be decoded."""
    pass


class NotFoundError(LookupError):
    """No entity with the requested id exists in the collection."""
    pass
