"""
Calendar Manager

Owns the event list, persisted as one JSON file and flushed
immediately on change.

- every mutation recomputes the set of conflicting events
- an event's pending alert is always its next alert still in the
  future (cancelled first, re-added on every edit and after delivery)
- an event created from a task keeps the task's id in ``task_id``
"""

from datetime import date, datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

import structlog

from organizer.audit import AuditLogger
from organizer.config import AppSettings, get_settings
from organizer.managers.base import EntityCollection, EntityRef, ManagerBase, entity_id
from organizer.models.audit import AuditEventBuilder
from organizer.models.calendar import (
    DEFAULT_EVENT_DURATION,
    CalendarEvent,
    CalendarViewMode,
    EventFilter,
    EventPriority,
    FreeSlot,
    sample_events,
)
from organizer.models.common import evolve, utcnow
from organizer.models.task import Task
from organizer.queries.calendar import (
    conflicts_for,
    current_events,
    events_in_hour,
    events_on,
    filter_events,
    find_conflicts,
    find_free_slot,
    next_event,
    sort_events,
    step_date,
    upcoming_events,
)
from organizer.services.effects import EffectQueue
from organizer.services.notifications import (
    NotificationAction,
    NotificationScheduler,
    SchedulingError,
    snooze_action,
)
from organizer.services.storage import CollectionStorage, ImmediateSaver


logger = structlog.get_logger(__name__)


class CalendarManager(ManagerBase):
    """In-memory event collection with persistence, conflicts and alerts."""

    family = "calendar"

    def __init__(
        self,
        storage: CollectionStorage[CalendarEvent],
        effects: EffectQueue,
        scheduler: Optional[NotificationScheduler] = None,
        audit: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(effects, audit)
        self._settings = settings or get_settings().app
        self._events: EntityCollection[CalendarEvent] = EntityCollection(kind="event")
        self._conflicts: set[UUID] = set()
        self._saver = ImmediateSaver(
            storage, self._events_snapshot, effects, on_error=self._on_save_error
        )
        self._scheduler = scheduler
        self._clock = clock

        today = clock().astimezone(self._settings.tzinfo).date()
        self.selected_date: date = today
        self.view_mode = CalendarViewMode.MONTH
        self.search_text = ""
        self.event_filter = EventFilter()

        if scheduler is not None:
            scheduler.set_action_handler(self.handle_notification_action)

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    def _events_snapshot(self) -> list[CalendarEvent]:
        with self._lock:
            return self._events.snapshot()

    @property
    def events(self) -> list[CalendarEvent]:
        return self._events_snapshot()

    @property
    def saver(self) -> ImmediateSaver:
        return self._saver

    @property
    def scheduler(self) -> Optional[NotificationScheduler]:
        return self._scheduler

    def get_event(self, event_id: UUID) -> CalendarEvent:
        """Raises NotFoundError for an unknown id."""
        with self._lock:
            return self._events.get(event_id)

    @property
    def conflicting_events(self) -> list[CalendarEvent]:
        with self._lock:
            return sort_events(e for e in self._events if e.id in self._conflicts)

    def is_conflicted(self, event: EntityRef) -> bool:
        with self._lock:
            return entity_id(event) in self._conflicts

    def load(self) -> list[CalendarEvent]:
        """Read saved events; sample events are written on first run when seeding is on."""
        seed = (lambda: sample_events(self._clock())) if self._settings.seed_sample_data else list
        items, needs_save = self._load(self._saver, seed)

        with self._lock:
            self._events.reset(items)
            self._conflicts = find_conflicts(items)

        if needs_save:
            self._saver.request()
        for event in items:
            self._queue_alert(event)
        self._publish("loaded")
        return items

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def add_event(self, event: CalendarEvent) -> CalendarEvent:
        """Append ``event``. Raises ValueError if its id is already present."""
        with self._lock:
            self._events.add(event)
            self._conflicts = find_conflicts(self._events)

        self._audit.log_created("event", event.id, event.title)
        self._after_change("added", event)
        return event

    def update_event(self, event: CalendarEvent) -> CalendarEvent:
        """
        Replace the stored event having ``event.id``.

        ``created_date`` keeps the stored value and ``modified_date``
        never moves backwards.

        Raises:
            NotFoundError: If no event has that id
        """
        with self._lock:
            previous = self._events.get(event.id)
            stored = evolve(
                event,
                created_date=previous.created_date,
                modified_date=max(self._clock(), previous.modified_date),
            )
            self._events.replace(stored)
            self._conflicts = find_conflicts(self._events)

        self._audit.log_updated("event", stored.id)
        self._after_change("updated", stored)
        return stored

    def delete_event(self, event: EntityRef) -> CalendarEvent:
        """
        Remove an event and cancel its alert.

        Raises:
            NotFoundError: If no event has that id
        """
        event_id = entity_id(event)
        with self._lock:
            removed = self._events.remove(event_id)
            self._conflicts = find_conflicts(self._events)

        self._audit.log_deleted("event", event_id)
        self._publish("deleted", event_id)
        self._saver.request()
        if self._scheduler is not None:
            self._effects.submit(f"cancel:{event_id}", self._cancel_alert, event_id)
        return removed

    def create_event_from_task(
        self,
        task: Task,
        start: Optional[datetime] = None,
        duration: timedelta = DEFAULT_EVENT_DURATION,
    ) -> CalendarEvent:
        """
        Block out time for a task.

        Starts at ``start``, else the task's due date, else now. Title,
        notes, priority and location are copied from the task.
        """
        start = start or task.due_date or self._clock()
        event = CalendarEvent(
            title=task.title,
            start_date=start,
            end_date=start + duration,
            notes=task.notes,
            priority=EventPriority.from_task(task.priority),
            location=task.location,
            task_id=task.id,
            time_zone=self._settings.display_timezone,
            created_date=self._clock(),
        )
        return self.add_event(event)

    def _after_change(self, action: str, event: CalendarEvent) -> None:
        self._publish(action, event.id)
        self._saver.request()
        self._queue_alert(event)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def _today(self) -> date:
        return self._clock().astimezone(self._settings.tzinfo).date()

    def events_for(self, day: date) -> list[CalendarEvent]:
        return events_on(self.events, day, self._settings.tzinfo)

    def events_for_hour(self, day: date, hour: int) -> list[CalendarEvent]:
        return events_in_hour(self.events, day, hour, self._settings.tzinfo)

    @property
    def todays_events(self) -> list[CalendarEvent]:
        return self.events_for(self._today())

    @property
    def upcoming_events(self) -> list[CalendarEvent]:
        """Events starting in the next seven days."""
        return upcoming_events(self.events, self._clock())

    @property
    def current_events(self) -> list[CalendarEvent]:
        return current_events(self.events, self._clock())

    @property
    def next_event(self) -> Optional[CalendarEvent]:
        return next_event(self.events, self._clock())

    @property
    def badge_count(self) -> int:
        """Events later today that have not started yet."""
        now = self._clock()
        return sum(1 for e in self.todays_events if e.is_upcoming(now))

    def filtered_events(self) -> list[CalendarEvent]:
        return filter_events(self.events, self.event_filter, self.search_text)

    def conflicts_for(self, event: EntityRef) -> list[CalendarEvent]:
        with self._lock:
            target = self._events.get(entity_id(event))
            return conflicts_for(target, self._events)

    def find_free_slot(
        self,
        day: Optional[date] = None,
        duration: timedelta = timedelta(hours=2),
    ) -> Optional[FreeSlot]:
        return find_free_slot(
            self.events, day or self._today(), self._settings.tzinfo, duration
        )

    def apply_filter(self, event_filter: EventFilter) -> None:
        self.event_filter = event_filter
        self._publish("filtered")

    def reset_filter(self) -> None:
        self.apply_filter(EventFilter())

    def clear_search(self) -> None:
        self.search_text = ""
        self._publish("filtered")

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def go_to_today(self) -> date:
        return self.jump_to_date(self._today())

    def jump_to_date(self, day: date) -> date:
        self.selected_date = day
        self._publish("navigated")
        return day

    def go_to_previous(self) -> date:
        return self.jump_to_date(step_date(self.selected_date, self.view_mode, -1))

    def go_to_next(self) -> date:
        return self.jump_to_date(step_date(self.selected_date, self.view_mode, 1))

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    def _time_range_text(self, event: CalendarEvent) -> str:
        tz = self._settings.tzinfo
        start = event.start_date.astimezone(tz)
        if event.is_all_day:
            return start.strftime(self._settings.history_date_format)
        end = event.end_date.astimezone(tz)
        return f"{start:%H:%M} - {end:%H:%M}"

    def _alert_body(self, event: CalendarEvent) -> str:
        body = self._time_range_text(event)
        if event.location is not None and event.location.formatted_address:
            body = f"{body} @ {event.location.formatted_address}"
        return body

    def _queue_alert(self, event: CalendarEvent) -> None:
        if self._scheduler is None:
            return
        self._effects.submit(f"alert:{event.id}", self._apply_alert, event)

    def _apply_alert(self, event: CalendarEvent, fire_at: Optional[datetime] = None) -> None:
        if fire_at is None:
            now = self._clock()
            fire_at = next((t for t in event.alert_times() if t > now), None)
        try:
            if fire_at is None:
                self._scheduler.cancel(event.id)
                return
            scheduled = self._scheduler.schedule(
                event.id,
                fire_at,
                event.title,
                self._alert_body(event),
                actions=(snooze_action(self._scheduler.snooze_minutes),),
            )
        except SchedulingError as e:
            logger.error("event_alert_failed", event_id=str(event.id), error=str(e))
            self._audit.log_scheduling_failed(event.id, str(e))
            self._report_error("Failed to schedule event alert")
            return

        if scheduled:
            self._audit.log(AuditEventBuilder.notification_scheduled(
                event.id, self._scheduler.identifier_for(event.id), fire_at.isoformat()
            ))

    def _cancel_alert(self, event_id: UUID) -> None:
        try:
            self._scheduler.cancel(event_id)
        except SchedulingError as e:
            logger.error("event_alert_cancel_failed", event_id=str(event_id), error=str(e))
            self._report_error("Failed to cancel event alert")
            return
        self._audit.log(AuditEventBuilder.notification_cancelled(
            event_id, self._scheduler.identifier_for(event_id)
        ))

    def alert_delivered(self, event_id: UUID) -> None:
        """Arm the event's next alert after one has fired. Unknown ids are ignored."""
        with self._lock:
            event = self._events.find(event_id)
        if event is not None:
            self._queue_alert(event)

    def handle_notification_action(
        self,
        action: NotificationAction,
        event_id: UUID,
    ) -> CalendarEvent:
        """
        Apply an alert action. Snooze repeats the alert after the snooze
        offset without moving the event; complete only acknowledges it.

        Raises:
            NotFoundError: If the event no longer exists
        """
        event = self.get_event(event_id)
        self._audit.log(AuditEventBuilder.notification_action(
            event_id, action.kind if action.kind == "complete" else f"snooze-{action.minutes}"
        ))
        if action.kind == "snooze" and self._scheduler is not None:
            fire_at = self._clock() + timedelta(minutes=action.minutes)
            self._effects.submit(f"alert:{event_id}", self._apply_alert, event, fire_at)
        return event

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def flush(self) -> None:
        self._saver.flush()

    def close(self) -> None:
        self._saver.close()
