"""
Collection Manager Base

DESIGN DECISION: A manager is the only writer of its collections.
Callers hand it replacement records (entities are immutable) and the
manager swaps them in under its lock.

Every mutation follows the same order:
1. validate and mutate in memory, under the manager's RLock
2. release the lock, then notify subscribers
3. request a persistence flush and queue notification effects

Persistence and scheduling failures never undo step 1. They are
logged, audited and left on ``error_message`` for the UI to show.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Iterator, Optional, TypeVar, Union
from uuid import UUID

import structlog

from organizer.audit import AuditLogger
from organizer.models.common import Entity
from organizer.services.effects import EffectQueue
from organizer.services.storage import (
    CorruptDataError,
    ImmediateSaver,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)

E = TypeVar("E", bound=Entity)
EntityRef = Union[Entity, UUID]


def entity_id(ref: EntityRef) -> UUID:
    """Accept either an entity or its id."""
    return ref if isinstance(ref, UUID) else ref.id


@dataclass(frozen=True)
class ChangeEvent:
    """Published to subscribers after every mutation."""

    family: str
    action: str
    entity_id: Optional[UUID] = None


Listener = Callable[[ChangeEvent], None]


class EntityCollection(Generic[E]):
    """An ordered list of entities with lookup by id. Not thread-safe."""

    def __init__(self, items: Iterable[E] = (), kind: str = "entity"):
        self._items: list[E] = list(items)
        self._kind = kind

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[E]:
        return iter(self._items)

    def __contains__(self, ref: EntityRef) -> bool:
        return self.find(entity_id(ref)) is not None

    def snapshot(self) -> list[E]:
        return list(self._items)

    def ids(self) -> set[UUID]:
        return {item.id for item in self._items}

    def _index_of(self, item_id: UUID) -> int:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        raise NotFoundError(f"No {self._kind} with id {item_id}")

    def find(self, item_id: UUID) -> Optional[E]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def get(self, item_id: UUID) -> E:
        return self._items[self._index_of(item_id)]

    def add(self, item: E) -> None:
        if self.find(item.id) is not None:
            raise ValueError(f"A {self._kind} with id {item.id} already exists")
        self._items.append(item)

    def replace(self, item: E) -> E:
        """Swap in ``item`` at its existing position. Returns the old record."""
        index = self._index_of(item.id)
        old = self._items[index]
        self._items[index] = item
        return old

    def remove(self, item_id: UUID) -> E:
        return self._items.pop(self._index_of(item_id))

    def reset(self, items: Iterable[E]) -> None:
        self._items = list(items)


class ManagerBase:
    """Locking, observers, error channel and loading shared by all managers."""

    family: str = "collection"

    def __init__(
        self,
        effects: EffectQueue,
        audit: Optional[AuditLogger] = None,
    ):
        self._lock = threading.RLock()
        self._effects = effects
        self._audit = audit or AuditLogger()
        self._listeners: list[Listener] = []
        self._listeners_lock = threading.Lock()
        self._error_message: Optional[str] = None
        self._error_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, action: str, item_id: Optional[UUID] = None) -> None:
        event = ChangeEvent(family=self.family, action=action, entity_id=item_id)
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event)

    # -------------------------------------------------------------------------
    # Error channel
    # -------------------------------------------------------------------------

    @property
    def error_message(self) -> Optional[str]:
        with self._error_lock:
            return self._error_message

    def clear_error(self) -> None:
        with self._error_lock:
            self._error_message = None

    def _report_error(self, message: str) -> None:
        with self._error_lock:
            self._error_message = message
        self._publish("error")

    def _on_save_error(self, error: StorageError) -> None:
        self._audit.log_save_failed(self.family, str(error))
        self._report_error(f"Failed to save {self.family}")

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _load(
        self,
        saver: ImmediateSaver,
        seed: Callable[[], list],
    ) -> tuple[list, bool]:
        """
        Read the collection behind ``saver``.

        Returns:
            (items, needs_save). Absent data is seeded and must be
            written back. Corrupt data is quarantined and replaced
            by an empty collection; the error is surfaced, not hidden.
            Any other read failure also starts empty, but ``saver`` is
            blocked so the unread data is never overwritten. The next
            successful load unblocks it.
        """
        storage = saver.storage
        try:
            items = storage.load_all()
        except CorruptDataError as e:
            quarantined = storage.quarantine()
            saver.unblock()
            logger.error("load_corrupt", family=storage.name, error=str(e), moved_to=quarantined)
            self._audit.log_load_failed(storage.name, str(e), quarantined)
            self._report_error(
                f"Saved {storage.name} could not be read and were set aside; starting empty"
            )
            return [], False
        except StorageError as e:
            logger.error("load_failed", family=storage.name, error=str(e))
            self._audit.log_load_failed(storage.name, str(e))
            saver.block(str(e))
            self._report_error(
                f"Failed to load {storage.name}; changes will not be saved until it loads"
            )
            return [], False

        saver.unblock()

        if items is None:
            seeded = seed()
            self._audit.log_loaded(storage.name, len(seeded), seeded=True)
            return seeded, True

        self._audit.log_loaded(storage.name, len(items))
        return items, False
