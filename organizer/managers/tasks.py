"""
Task Manager

Owns the task list. Every task edit goes through here so that
timestamps, reminders and persistence stay consistent:

- ``updated_at`` never moves backwards
- a task's pending alert always reflects its current reminder
  (cancelled first, re-added only for open tasks with a future reminder)
- each mutation requests one immediate flush of the whole list
"""

from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

import structlog

from organizer.audit import AuditLogger
from organizer.config import AppSettings, get_settings
from organizer.managers.base import EntityCollection, EntityRef, ManagerBase, entity_id
from organizer.models.audit import AuditEventBuilder
from organizer.models.common import evolve, utcnow
from organizer.models.task import (
    HistoryGroup,
    SubTask,
    Task,
    TaskStats,
    TaskStatus,
    ViewMode,
    sample_tasks,
)
from organizer.queries.tasks import compute_stats, filter_tasks, group_history
from organizer.services.effects import EffectQueue
from organizer.services.notifications import (
    NotificationAction,
    NotificationScheduler,
    SchedulingError,
)
from organizer.services.storage import CollectionStorage, ImmediateSaver, NotFoundError


logger = structlog.get_logger(__name__)


class TaskManager(ManagerBase):
    """In-memory task collection with persistence and reminders."""

    family = "tasks"

    def __init__(
        self,
        storage: CollectionStorage[Task],
        effects: EffectQueue,
        scheduler: Optional[NotificationScheduler] = None,
        audit: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        reminder_title: str = "Task Reminder",
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(effects, audit)
        self._settings = settings or get_settings().app
        self._tasks: EntityCollection[Task] = EntityCollection(kind="task")
        self._saver = ImmediateSaver(
            storage, self._tasks_snapshot, effects, on_error=self._on_save_error
        )
        self._scheduler = scheduler
        self._reminder_title = reminder_title
        self._clock = clock

        self.view_mode = ViewMode.INBOX
        self.search_text = ""
        self.selected_task_id: Optional[UUID] = None

        if scheduler is not None:
            scheduler.set_action_handler(self.handle_notification_action)

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    def _tasks_snapshot(self) -> list[Task]:
        with self._lock:
            return self._tasks.snapshot()

    @property
    def tasks(self) -> list[Task]:
        return self._tasks_snapshot()

    @property
    def saver(self) -> ImmediateSaver:
        return self._saver

    def get_task(self, task_id: UUID) -> Task:
        """Raises NotFoundError for an unknown id."""
        with self._lock:
            return self._tasks.get(task_id)

    def load(self) -> list[Task]:
        """
        Read saved tasks. On first run the sample tasks are written
        (when seeding is enabled). Reminders are re-registered.
        """
        seed = (lambda: sample_tasks(self._clock())) if self._settings.seed_sample_data else list
        items, needs_save = self._load(self._saver, seed)

        with self._lock:
            self._tasks.reset(items)

        if needs_save:
            self._saver.request()
        for task in items:
            self._queue_reminder(task)
        self._publish("loaded")
        return items

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def add_task(self, task: Task) -> Task:
        """Append ``task``. Raises ValueError if its id is already present."""
        with self._lock:
            self._tasks.add(task)

        self._audit.log_created("task", task.id, task.title)
        self._after_change("added", task)
        return task

    def update_task(self, task: Task) -> Task:
        """
        Replace the stored task having ``task.id`` with ``task``.

        Raises:
            NotFoundError: If no task has that id
        """
        with self._lock:
            previous = self._tasks.get(task.id)
            stored = self._stamp(task, previous)
            self._tasks.replace(stored)

        self._audit.log_updated("task", stored.id, _changed_fields(previous, stored))
        self._after_change("updated", stored)
        return stored

    def delete_task(self, task: EntityRef) -> Task:
        """
        Remove a task and cancel its alert.

        Raises:
            NotFoundError: If no task has that id
        """
        task_id = entity_id(task)
        with self._lock:
            removed = self._tasks.remove(task_id)
            if self.selected_task_id == task_id:
                self.selected_task_id = None

        self._audit.log_deleted("task", task_id)
        self._publish("deleted", task_id)
        self._saver.request()
        if self._scheduler is not None:
            self._effects.submit(f"cancel:{task_id}", self._cancel_reminder, task_id)
        return removed

    def _stamp(self, task: Task, previous: Task) -> Task:
        """Keep the original created_at and bump updated_at monotonically."""
        now = self._clock()
        return evolve(
            task,
            created_at=previous.created_at,
            updated_at=max(now, previous.updated_at, previous.created_at),
        )

    def _modify(self, task: EntityRef, **changes) -> Task:
        """Apply ``changes`` to the stored version of ``task``."""
        with self._lock:
            current = self._tasks.get(entity_id(task))
            stored = self._stamp(evolve(current, **changes), current)
            self._tasks.replace(stored)
        return stored

    def _after_change(self, action: str, task: Task) -> None:
        self._publish(action, task.id)
        self._saver.request()
        self._queue_reminder(task)

    # -------------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------------

    def mark_as_completed(self, task: EntityRef) -> Task:
        stored = self._modify(
            task, status=TaskStatus.COMPLETED, completed_at=self._clock()
        )
        self._audit.log_task_status(stored.id, stored.status.value)
        self._after_change("updated", stored)
        return stored

    def mark_as_pending(self, task: EntityRef) -> Task:
        stored = self._modify(task, status=TaskStatus.PENDING, completed_at=None)
        self._audit.log_task_status(stored.id, stored.status.value)
        self._after_change("updated", stored)
        return stored

    def toggle_completion(self, task: EntityRef) -> Task:
        """Completed becomes pending; anything else becomes completed."""
        current = self.get_task(entity_id(task))
        if current.is_completed:
            return self.mark_as_pending(current)
        return self.mark_as_completed(current)

    def archive_task(self, task: EntityRef) -> Task:
        """Move a task to history. Archived tasks carry no completed_at."""
        stored = self._modify(task, status=TaskStatus.ARCHIVED, completed_at=None)
        self._audit.log_task_status(stored.id, stored.status.value)
        self._after_change("updated", stored)
        return stored

    def reschedule_task(self, task: EntityRef, new_date: datetime) -> Task:
        """Move the due date, and the reminder too when reminders are on."""
        current = self.get_task(entity_id(task))
        changes = {"due_date": new_date}
        if current.reminder_enabled:
            changes["reminder_date"] = new_date
        stored = self._modify(current, **changes)
        self._audit.log_updated("task", stored.id, sorted(changes))
        self._after_change("updated", stored)
        return stored

    # -------------------------------------------------------------------------
    # Sub-tasks
    # -------------------------------------------------------------------------

    def add_subtask(self, task: EntityRef, title: str) -> SubTask:
        subtask = SubTask(title=title)
        with self._lock:
            current = self._tasks.get(entity_id(task))
            stored = self._modify(current, subtasks=[*current.subtasks, subtask])
        self._after_change("updated", stored)
        return subtask

    def remove_subtask(self, task: EntityRef, subtask_id: UUID) -> Task:
        with self._lock:
            current = self._tasks.get(entity_id(task))
            remaining = [s for s in current.subtasks if s.id != subtask_id]
            if len(remaining) == len(current.subtasks):
                raise _missing_subtask(subtask_id)
            stored = self._modify(current, subtasks=remaining)
        self._after_change("updated", stored)
        return stored

    def toggle_subtask(self, task: EntityRef, subtask_id: UUID) -> Task:
        with self._lock:
            current = self._tasks.get(entity_id(task))
            if not any(s.id == subtask_id for s in current.subtasks):
                raise _missing_subtask(subtask_id)
            subtasks = [
                evolve(s, is_completed=not s.is_completed) if s.id == subtask_id else s
                for s in current.subtasks
            ]
            stored = self._modify(current, subtasks=subtasks)
        self._after_change("updated", stored)
        return stored

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def filtered_tasks(
        self,
        mode: Optional[ViewMode] = None,
        search_text: Optional[str] = None,
    ) -> list[Task]:
        """Sorted tasks for a view; defaults to the manager's current mode and query."""
        with self._lock:
            items = self._tasks.snapshot()
            mode = mode or self.view_mode
            search_text = self.search_text if search_text is None else search_text
        return filter_tasks(items, mode, search_text)

    def search_tasks(self, query: str) -> list[Task]:
        with self._lock:
            self.search_text = query
            self.view_mode = ViewMode.SEARCH
        self._publish("view")
        return self.filtered_tasks()

    def clear_search(self) -> None:
        with self._lock:
            self.search_text = ""
            self.view_mode = ViewMode.INBOX
        self._publish("view")

    def grouped_history(self) -> list[HistoryGroup]:
        return group_history(
            self.tasks,
            self._settings.tzinfo,
            self._settings.history_date_format,
        )

    def stats(self, now: Optional[datetime] = None) -> TaskStats:
        return compute_stats(self.tasks, now or self._clock())

    # -------------------------------------------------------------------------
    # Reminders
    # -------------------------------------------------------------------------

    def _queue_reminder(self, task: Task) -> None:
        if self._scheduler is None:
            return
        self._effects.submit(f"reminder:{task.id}", self._apply_reminder, task)

    def _apply_reminder(self, task: Task) -> None:
        fire_at = task.active_reminder
        try:
            if fire_at is None or task.is_completed or task.is_archived:
                self._scheduler.cancel(task.id)
                return
            scheduled = self._scheduler.schedule(
                task.id, fire_at, self._reminder_title, task.title
            )
        except SchedulingError as e:
            logger.error("reminder_failed", task_id=str(task.id), error=str(e))
            self._audit.log_scheduling_failed(task.id, str(e))
            self._report_error("Failed to schedule reminder")
            return

        if scheduled:
            self._audit.log(AuditEventBuilder.notification_scheduled(
                task.id, self._scheduler.identifier_for(task.id), fire_at.isoformat()
            ))

    def _cancel_reminder(self, task_id: UUID) -> None:
        try:
            self._scheduler.cancel(task_id)
        except SchedulingError as e:
            logger.error("reminder_cancel_failed", task_id=str(task_id), error=str(e))
            self._report_error("Failed to cancel reminder")
            return
        self._audit.log(AuditEventBuilder.notification_cancelled(
            task_id, self._scheduler.identifier_for(task_id)
        ))

    def handle_notification_action(self, action: NotificationAction, task_id: UUID) -> Task:
        """
        Apply an alert action: complete toggles completion, snooze moves
        the due date (and reminder) to now plus the snooze offset.

        Raises:
            NotFoundError: If the task no longer exists
        """
        self._audit.log(AuditEventBuilder.notification_action(
            task_id, action.kind if action.kind == "complete" else f"snooze-{action.minutes}"
        ))
        if action.kind == "complete":
            return self.toggle_completion(task_id)
        return self.reschedule_task(task_id, self._clock() + timedelta(minutes=action.minutes))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def flush(self) -> None:
        self._saver.flush()

    def close(self) -> None:
        self._saver.close()


def _changed_fields(old: Task, new: Task) -> list[str]:
    before = old.model_dump()
    after = new.model_dump()
    return sorted(k for k in after if k != "updated_at" and after[k] != before.get(k))


def _missing_subtask(subtask_id: UUID) -> NotFoundError:
    return NotFoundError(f"No subtask with id {subtask_id}")
