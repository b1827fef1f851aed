"""
Storage Services Package

Whole-collection repositories over local files, plus the auto-save
policies that decide when a collection is written.
"""

from organizer.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorage,
    CorruptDataError,
    NotFoundError,
    StorageError,
)
from organizer.services.storage.json_file import JsonFileStorage
from organizer.services.storage.key_value import KeyValueFile, KeyValueStorage
from organizer.services.storage.audit_file import JsonLinesAuditStorage
from organizer.services.storage.autosave import DebouncedSaver, ImmediateSaver

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CollectionStorage",
    # Exceptions
    "CorruptDataError",
    "NotFoundError",
    "StorageError",
    # File implementations
    "JsonFileStorage",
    "JsonLinesAuditStorage",
    "KeyValueFile",
    "KeyValueStorage",
    # Auto-save
    "DebouncedSaver",
    "ImmediateSaver",
]
