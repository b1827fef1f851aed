"""
Auto-save policies.

A manager never writes to storage itself. After each mutation it asks
its saver for a flush; the saver decides when the write happens and
runs it on the effect queue.

- ImmediateSaver: every request produces one write (tasks, finance)
- DebouncedSaver: a burst of requests produces one write once the
  quiet period passes with no further request (notes)

Each write snapshots the collection at execution time, so it always
carries the latest state rather than the state at request time.
"""

import threading
from typing import Any, Callable, Optional

import structlog

from organizer.services.effects import EffectQueue
from organizer.services.storage.interface import CollectionStorage, StorageError


logger = structlog.get_logger(__name__)

Snapshot = Callable[[], list]
ErrorHandler = Callable[[StorageError], None]
TimerFactory = Callable[..., Any]


class ImmediateSaver:
    """Writes the whole collection after every mutation."""

    def __init__(
        self,
        storage: CollectionStorage,
        snapshot: Snapshot,
        effects: EffectQueue,
        on_error: Optional[ErrorHandler] = None,
    ):
        self._storage = storage
        self._snapshot = snapshot
        self._effects = effects
        self._on_error = on_error
        self._write_lock = threading.Lock()
        self._blocked_reason: Optional[str] = None
        self.writes = 0

    @property
    def storage(self) -> CollectionStorage:
        return self._storage

    @property
    def blocked(self) -> bool:
        return self._blocked_reason is not None

    def block(self, reason: str) -> None:
        """Refuse writes until ``unblock``; used while saved data could not be read."""
        self._blocked_reason = reason
        logger.warning("saves_blocked", family=self._storage.name, reason=reason)

    def unblock(self) -> None:
        if self._blocked_reason is not None:
            logger.info("saves_unblocked", family=self._storage.name)
        self._blocked_reason = None

    def request(self) -> None:
        self._effects.submit(f"save:{self._storage.name}", self.save_now)

    def save_now(self) -> bool:
        """Write the current snapshot on the calling thread."""
        with self._write_lock:
            if self._blocked_reason is not None:
                logger.warning(
                    "save_skipped", family=self._storage.name, reason=self._blocked_reason
                )
                return False
            items = self._snapshot()
            try:
                self._storage.save_all(items)
            except StorageError as e:
                logger.error("save_failed", family=self._storage.name, error=str(e))
                if self._on_error:
                    self._on_error(e)
                return False
            self.writes += 1
            return True

    def flush(self) -> None:
        """Nothing is ever pending; wait for queued writes."""
        if self._effects.run_async and not self._effects.closed:
            self._effects.drain()

    def close(self) -> None:
        self.flush()


class DebouncedSaver(ImmediateSaver):
    """
    Trailing-edge debounce around ImmediateSaver.

    Every request cancels the pending timer and starts a new one. Only
    the timer from the latest request may trigger a write; a stale
    timer that was already running when it got cancelled is ignored
    by generation check.
    """

    def __init__(
        self,
        storage: CollectionStorage,
        snapshot: Snapshot,
        effects: EffectQueue,
        delay: float = 1.0,
        on_error: Optional[ErrorHandler] = None,
        timer_factory: TimerFactory = threading.Timer,
    ):
        super().__init__(storage, snapshot, effects, on_error)
        self._delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self._generation = 0
        self._pending = False
        self._closed = False

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending

    def request(self) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("Saver is closed")
            self._cancel_timer()
            self._generation += 1
            self._pending = True
            timer = self._timer_factory(self._delay, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._pending:
                return
            self._timer = None
            self._pending = False

        self._effects.submit(f"save:{self._storage.name}", self.save_now)

    def flush(self) -> None:
        """Write pending state now instead of waiting for the timer."""
        with self._lock:
            self._cancel_timer()
            was_pending = self._pending
            self._pending = False

        super().flush()
        if was_pending:
            self.save_now()

    def close(self) -> None:
        """Flush and refuse further requests."""
        self.flush()
        with self._lock:
            self._closed = True
