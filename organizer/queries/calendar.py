"""
Calendar Queries

Day, hour and agenda views over events, conflict detection and free
time search. Days and hours are taken in the display timezone.

Conflicts only exist between timed events: an all-day event never
blocks time.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Optional
from uuid import UUID

from organizer.models.calendar import CalendarEvent, CalendarViewMode, EventFilter, FreeSlot
from organizer.models.common import add_months


UPCOMING_DAYS = 7

_TICK = timedelta(microseconds=1)


def sort_events(events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
    return sorted(events, key=lambda e: (e.start_date, e.end_date))


def _local_days(event: CalendarEvent, tz: tzinfo) -> tuple[date, date]:
    start = event.start_date.astimezone(tz)
    end = event.end_date.astimezone(tz)
    if end > start:
        # An event ending exactly at midnight does not spill into the next day
        end -= _TICK
    return start.date(), end.date()


def events_on(
    events: Iterable[CalendarEvent],
    day: date,
    tz: tzinfo = timezone.utc,
) -> list[CalendarEvent]:
    """Events touching ``day``, by start time."""
    selected = []
    for event in events:
        first, last = _local_days(event, tz)
        if first <= day <= last:
            selected.append(event)
    return sort_events(selected)


def events_in_hour(
    events: Iterable[CalendarEvent],
    day: date,
    hour: int,
    tz: tzinfo = timezone.utc,
) -> list[CalendarEvent]:
    """Timed events overlapping the hour starting at ``hour`` on ``day``."""
    if not 0 <= hour <= 23:
        raise ValueError(f"hour must be 0-23, got {hour}")
    hour_start = datetime.combine(day, time(hour), tzinfo=tz)
    hour_end = hour_start + timedelta(hours=1)
    return sort_events(
        e for e in events
        if not e.is_all_day and e.start_date < hour_end and e.end_date > hour_start
    )


def upcoming_events(
    events: Iterable[CalendarEvent],
    now: datetime,
    days: int = UPCOMING_DAYS,
) -> list[CalendarEvent]:
    """Events starting within the next ``days`` days, soonest first."""
    horizon = now + timedelta(days=days)
    return sort_events(e for e in events if now <= e.start_date <= horizon)


def current_events(events: Iterable[CalendarEvent], now: datetime) -> list[CalendarEvent]:
    return sort_events(e for e in events if e.is_happening(now))


def next_event(
    events: Iterable[CalendarEvent],
    now: datetime,
    days: int = UPCOMING_DAYS,
) -> Optional[CalendarEvent]:
    upcoming = upcoming_events(events, now, days)
    return upcoming[0] if upcoming else None


def find_conflicts(events: Iterable[CalendarEvent]) -> set[UUID]:
    """Ids of every event that overlaps at least one other."""
    timed = sort_events(e for e in events if not e.is_all_day)
    conflicted: set[UUID] = set()
    for i, event in enumerate(timed):
        for other in timed[i + 1:]:
            if other.start_date >= event.end_date:
                break
            if event.conflicts_with(other):
                conflicted.update((event.id, other.id))
    return conflicted


def conflicts_for(
    event: CalendarEvent,
    events: Iterable[CalendarEvent],
) -> list[CalendarEvent]:
    """The events ``event`` overlaps, by start time."""
    return sort_events(other for other in events if event.conflicts_with(other))


def filter_events(
    events: Iterable[CalendarEvent],
    event_filter: Optional[EventFilter] = None,
    search_text: str = "",
) -> list[CalendarEvent]:
    event_filter = event_filter or EventFilter()
    return sort_events(e for e in events if event_filter.matches(e, search_text))


def find_free_slot(
    events: Iterable[CalendarEvent],
    day: date,
    tz: tzinfo = timezone.utc,
    duration: timedelta = timedelta(hours=2),
    day_start: time = time(9),
    day_end: time = time(17),
    step: timedelta = timedelta(minutes=30),
) -> Optional[FreeSlot]:
    """
    Earliest gap of ``duration`` between ``day_start`` and ``day_end``.

    Candidate starts advance by ``step``. All-day events do not block.
    """
    timed = [e for e in events if not e.is_all_day]
    start = datetime.combine(day, day_start, tzinfo=tz)
    limit = datetime.combine(day, day_end, tzinfo=tz)
    while start + duration <= limit:
        end = start + duration
        if not any(e.start_date < end and e.end_date > start for e in timed):
            return FreeSlot(start=start, end=end)
        start += step
    return None


def step_date(day: date, mode: CalendarViewMode, steps: int = 1) -> date:
    """Move ``day`` by whole periods of ``mode``; negative steps go back."""
    if mode == CalendarViewMode.DAY:
        return day + timedelta(days=steps)
    if mode == CalendarViewMode.WEEK:
        return day + timedelta(weeks=steps)
    if mode == CalendarViewMode.MONTH:
        return add_months(day, steps)
    return add_months(day, 12 * steps)
