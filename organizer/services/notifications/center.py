"""
Notification Centers

A notification center is the platform side of reminders: it holds
pending alert requests and delivers them when their time comes.
The core only ever talks to it through ``add`` and ``remove``.

Two implementations:
- InMemoryNotificationCenter: pending requests in a dict; delivery is
  triggered explicitly (tests, headless use)
- APSchedulerNotificationCenter: one APScheduler DateTrigger job per
  request; delivery happens on the scheduler's thread
"""

from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Optional
from uuid import UUID

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


logger = structlog.get_logger(__name__)

# Delivered requests kept for inspection; older ones are dropped
DELIVERED_HISTORY = 100


class SchedulingError(Exception):
    """The platform refused or failed to register an alert."""
    pass


class NotificationRequest(BaseModel):
    """A single alert the platform should show at ``fire_at``."""
    model_config = ConfigDict(frozen=True)

    identifier: str = Field(..., min_length=1)
    entity_id: UUID
    fire_at: AwareDatetime
    title: str
    body: str = ""
    actions: tuple[str, ...] = ()


DeliveryHandler = Callable[[NotificationRequest], None]


class NotificationCenter(ABC):
    """Platform collaborator that stores and delivers alerts."""

    @abstractmethod
    def add(self, request: NotificationRequest) -> None:
        """
        Register ``request``, replacing any request with the same identifier.

        Raises:
            SchedulingError: If the platform rejects the request
        """
        pass

    @abstractmethod
    def remove(self, identifier: str) -> None:
        """Drop a pending request. Unknown identifiers are ignored."""
        pass

    @abstractmethod
    def pending_identifiers(self) -> list[str]:
        pass


class InMemoryNotificationCenter(NotificationCenter):
    """Keeps pending requests in memory."""

    def __init__(self, on_deliver: Optional[DeliveryHandler] = None):
        self._pending: dict[str, NotificationRequest] = {}
        self._lock = Lock()
        self._on_deliver = on_deliver
        self.delivered: deque[NotificationRequest] = deque(maxlen=DELIVERED_HISTORY)

    def add(self, request: NotificationRequest) -> None:
        with self._lock:
            self._pending[request.identifier] = request

    def remove(self, identifier: str) -> None:
        with self._lock:
            self._pending.pop(identifier, None)

    def pending_identifiers(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    def get(self, identifier: str) -> Optional[NotificationRequest]:
        with self._lock:
            return self._pending.get(identifier)

    def deliver_due(self, now: datetime) -> list[NotificationRequest]:
        """Deliver every request whose time has come, earliest first."""
        with self._lock:
            due = sorted(
                (r for r in self._pending.values() if r.fire_at <= now),
                key=lambda r: r.fire_at,
            )
            for request in due:
                del self._pending[request.identifier]

        for request in due:
            self.delivered.append(request)
            if self._on_deliver:
                self._on_deliver(request)
        return due


class APSchedulerNotificationCenter(NotificationCenter):
    """
    Delivers alerts with an APScheduler background scheduler.

    The job id is the request identifier, so re-adding a request
    replaces the pending job instead of creating a second one.
    """

    def __init__(
        self,
        on_deliver: Optional[DeliveryHandler] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self._scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)
        self._on_deliver = on_deliver

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self, paused: bool = False) -> None:
        """Start the background scheduler."""
        if self._scheduler.running:
            logger.warning("notification_scheduler_already_running")
            return
        self._scheduler.start(paused=paused)
        logger.info("notification_scheduler_started")

    def shutdown(self) -> None:
        """Stop the scheduler without waiting for running deliveries."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("notification_scheduler_stopped")

    def add(self, request: NotificationRequest) -> None:
        try:
            self._scheduler.add_job(
                func=self._deliver,
                trigger=DateTrigger(run_date=request.fire_at),
                args=[request],
                id=request.identifier,
                name=request.title,
                replace_existing=True,
                misfire_grace_time=None,
            )
        except Exception as e:
            raise SchedulingError(
                f"Failed to schedule {request.identifier}: {e}"
            ) from e

    def remove(self, identifier: str) -> None:
        try:
            self._scheduler.remove_job(identifier)
        except JobLookupError:
            pass

    def pending_identifiers(self) -> list[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    def _deliver(self, request: NotificationRequest) -> None:
        logger.info(
            "notification_delivered",
            identifier=request.identifier,
            title=request.title,
        )
        if self._on_deliver:
            self._on_deliver(request)
