"""
Application Wiring for Personal Organizer

This module builds every component from settings and hands back one
object the presentation layer can hold on to.

DESIGN DECISION: The managers never construct their own collaborators.
Storage, the effect queue, the audit trail and the notification
center are created here, once, so that:
- all managers share one background worker and one audit file
- tests can swap any piece for an in-memory or synchronous one
- shutdown happens in a single, well-defined order
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import structlog

from organizer.audit import AuditLogger
from organizer.config import Settings, get_settings
from organizer.managers import CalendarManager, FinanceManager, NotesManager, TaskManager
from organizer.managers.finance import ACCOUNTS, BILLS, BUDGETS, SAVINGS_GOALS, TRANSACTIONS
from organizer.models.calendar import CalendarEvent
from organizer.models.common import utcnow
from organizer.models.finance import Account, Bill, Budget, SavingsGoal, Transaction
from organizer.models.note import Note, NoteFolder
from organizer.models.task import Task
from organizer.services.effects import EffectQueue
from organizer.services.notifications import (
    DELIVERED_HISTORY,
    APSchedulerNotificationCenter,
    InMemoryNotificationCenter,
    NotificationCenter,
    NotificationRequest,
    NotificationScheduler,
)
from organizer.services.storage import (
    JsonFileStorage,
    JsonLinesAuditStorage,
    KeyValueFile,
    KeyValueStorage,
)


logger = structlog.get_logger(__name__)

EVENT_PREFIX = "event"


@dataclass
class OrganizerApp:
    """Everything the presentation layer talks to."""

    tasks: TaskManager
    notes: NotesManager
    finance: FinanceManager
    calendar: CalendarManager
    scheduler: NotificationScheduler
    event_scheduler: NotificationScheduler
    audit: AuditLogger
    effects: EffectQueue
    delivered: deque[NotificationRequest] = field(
        default_factory=lambda: deque(maxlen=DELIVERED_HISTORY)
    )

    def handle_notification_action(self, action_id: str, identifier: str) -> bool:
        """Route a tapped alert action back to the task or event it belongs to."""
        if identifier.startswith(EVENT_PREFIX + "_"):
            return self.event_scheduler.on_action(action_id, identifier)
        return self.scheduler.on_action(action_id, identifier)

    def flush(self) -> None:
        """Write every pending change now."""
        self.tasks.flush()
        self.notes.flush()
        self.finance.flush()
        self.calendar.flush()
        self.effects.drain()

    def close(self) -> None:
        """
        Shut down in order: the notification center stops firing,
        pending saves are written, then the worker finishes queued
        effects.
        """
        center = self.scheduler.center
        if isinstance(center, APSchedulerNotificationCenter):
            center.shutdown()
        self.tasks.close()
        self.notes.close()
        self.finance.close()
        self.calendar.close()
        self.effects.close()
        logger.info("organizer_closed")


def _build_center(
    settings: Settings,
    on_deliver: Callable[[NotificationRequest], None],
) -> NotificationCenter:
    if settings.notifications.backend == "apscheduler":
        center = APSchedulerNotificationCenter(on_deliver=on_deliver)
        center.start()
        return center
    return InMemoryNotificationCenter(on_deliver=on_deliver)


def create_app_components(
    settings: Optional[Settings] = None,
    center: Optional[NotificationCenter] = None,
    clock: Callable[[], datetime] = utcnow,
    load: bool = True,
) -> OrganizerApp:
    """
    Factory function to create all application components.

    Args:
        settings: Defaults to the cached environment settings
        center: Notification center to use instead of the configured one
        clock: Time source shared by every component
        load: Read saved data before returning

    Returns:
        A wired OrganizerApp. Call ``close()`` when done.
    """
    settings = settings or get_settings()
    storage = settings.storage
    app_settings = settings.app
    notify = settings.notifications

    effects = EffectQueue(run_async=app_settings.async_effects)
    audit = AuditLogger(JsonLinesAuditStorage(storage.path_for(storage.audit_log_filename)))
    retries = storage.write_retry_attempts

    delivered: deque[NotificationRequest] = deque(maxlen=DELIVERED_HISTORY)
    calendar: Optional[CalendarManager] = None

    def on_deliver(request: NotificationRequest) -> None:
        delivered.append(request)
        logger.info("reminder_delivered", identifier=request.identifier)
        if calendar is not None and request.identifier.startswith(EVENT_PREFIX + "_"):
            calendar.alert_delivered(request.entity_id)

    center = center or _build_center(settings, on_deliver)
    scheduler = NotificationScheduler(
        center, snooze_minutes=notify.snooze_minutes, clock=clock
    )
    event_scheduler = NotificationScheduler(
        center, prefix=EVENT_PREFIX, snooze_minutes=notify.snooze_minutes, clock=clock
    )

    tasks = TaskManager(
        JsonFileStorage(storage.path_for(storage.tasks_filename), Task, "tasks", retries),
        effects,
        scheduler=scheduler,
        audit=audit,
        settings=app_settings,
        reminder_title=notify.reminder_title,
        clock=clock,
    )

    preferences = KeyValueFile(storage.path_for(storage.preferences_filename), retries)
    notes = NotesManager(
        KeyValueStorage(preferences, storage.notes_key, Note),
        KeyValueStorage(preferences, storage.folders_key, NoteFolder),
        effects,
        audit=audit,
        debounce_seconds=storage.notes_debounce_seconds,
        clock=clock,
    )

    finance_files = {
        ACCOUNTS: (storage.accounts_filename, Account),
        TRANSACTIONS: (storage.transactions_filename, Transaction),
        BUDGETS: (storage.budgets_filename, Budget),
        BILLS: (storage.bills_filename, Bill),
        SAVINGS_GOALS: (storage.savings_goals_filename, SavingsGoal),
    }
    finance = FinanceManager(
        {
            name: JsonFileStorage(storage.path_for(filename), model, name, retries)
            for name, (filename, model) in finance_files.items()
        },
        effects,
        audit=audit,
        settings=app_settings,
        clock=clock,
    )

    calendar = CalendarManager(
        JsonFileStorage(
            storage.path_for(storage.events_filename), CalendarEvent, "events", retries
        ),
        effects,
        scheduler=event_scheduler,
        audit=audit,
        settings=app_settings,
        clock=clock,
    )

    if load:
        tasks.load()
        notes.load()
        finance.load()
        calendar.load()

    logger.info(
        "organizer_started",
        data_dir=str(storage.data_dir),
        notifications=type(center).__name__,
        async_effects=effects.run_async,
    )
    return OrganizerApp(
        tasks=tasks,
        notes=notes,
        finance=finance,
        calendar=calendar,
        scheduler=scheduler,
        event_scheduler=event_scheduler,
        audit=audit,
        effects=effects,
        delivered=delivered,
    )
