"""
Background effect queue.

Persistence flushes and notification calls are fire-and-forget
relative to the CRUD call that caused them. They run here, one at a
time and in submission order, on a single daemon worker thread.

Synchronous mode runs each effect inline on the caller's thread,
which keeps tests deterministic.
"""

import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog


logger = structlog.get_logger(__name__)


@dataclass
class Effect:
    """One queued side effect."""

    name: str
    target: Callable[..., Any]
    args: tuple = ()
    kwargs: dict[str, Any] = field(default_factory=dict)

    def run(self) -> None:
        try:
            self.target(*self.args, **self.kwargs)
        except Exception as exc:
            # Effects report their own domain errors; this is the last line.
            logger.error("effect_failed", effect=self.name, error=str(exc), exc_info=True)


class EffectQueue:
    """Ordered single-worker executor for side effects."""

    def __init__(self, run_async: bool = True, name: str = "organizer-effects"):
        self._run_async = run_async
        self._name = name
        self._queue: "queue.Queue[Optional[Effect]]" = queue.Queue()
        self._lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None
        self._closed = False

    @property
    def run_async(self) -> bool:
        return self._run_async

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, name: str, target: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Queue ``target(*args, **kwargs)``. Returns immediately in async mode."""
        effect = Effect(name=name, target=target, args=args, kwargs=kwargs)

        with self._lock:
            if self._closed:
                raise RuntimeError("Effect queue is closed")
            if self._run_async:
                self._ensure_worker()
                self._queue.put(effect)
                return

        effect.run()

    def _ensure_worker(self) -> None:
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(
                target=self._work, name=self._name, daemon=True
            )
            self._worker.start()

    def _work(self) -> None:
        while True:
            effect = self._queue.get()
            try:
                if effect is None:
                    return
                effect.run()
            finally:
                self._queue.task_done()

    def drain(self) -> None:
        """Block until every effect submitted so far has run."""
        if threading.current_thread() is self._worker:
            raise RuntimeError("drain() called from the effect worker")
        self._queue.join()

    def close(self) -> None:
        """Run what is queued, then stop the worker. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            worker = self._worker

        if worker is not None:
            self._queue.put(None)
            worker.join()
        logger.debug("effect_queue_closed", name=self._name)
