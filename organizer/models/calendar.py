"""
Calendar Models

Events with a start and end, optional alerts, attendees and a
location. An event may be created from a task and keeps the task's id.

INVARIANTS (checked on every construction):
- end_date >= start_date
- modified_date >= created_date
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from organizer.models.common import Entity, Location, StrippedStr, utcnow
from organizer.models.task import TaskPriority


DEFAULT_EVENT_DURATION = timedelta(hours=1)


# =============================================================================
# ENUMS
# =============================================================================

class CalendarViewMode(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class EventPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_task(cls, priority: TaskPriority) -> "EventPriority":
        return cls(priority.value)


class RecurrenceRule(str, Enum):
    """How an event repeats. Stored with the event; occurrences are not expanded."""
    NEVER = "never"
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class AlertTiming(str, Enum):
    """Preset alert offsets before the event starts."""
    AT_TIME = "at_time"
    FIVE_MINUTES = "5_minutes"
    FIFTEEN_MINUTES = "15_minutes"
    THIRTY_MINUTES = "30_minutes"
    ONE_HOUR = "1_hour"
    TWO_HOURS = "2_hours"
    ONE_DAY = "1_day"
    TWO_DAYS = "2_days"
    ONE_WEEK = "1_week"
    CUSTOM = "custom"

    @property
    def lead_time(self) -> timedelta:
        return _ALERT_LEAD_TIMES.get(self, timedelta(0))


_ALERT_LEAD_TIMES = {
    AlertTiming.AT_TIME: timedelta(0),
    AlertTiming.FIVE_MINUTES: timedelta(minutes=5),
    AlertTiming.FIFTEEN_MINUTES: timedelta(minutes=15),
    AlertTiming.THIRTY_MINUTES: timedelta(minutes=30),
    AlertTiming.ONE_HOUR: timedelta(hours=1),
    AlertTiming.TWO_HOURS: timedelta(hours=2),
    AlertTiming.ONE_DAY: timedelta(days=1),
    AlertTiming.TWO_DAYS: timedelta(days=2),
    AlertTiming.ONE_WEEK: timedelta(weeks=1),
}


class AttendeeResponse(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    TENTATIVE = "tentative"


class CalendarColor(str, Enum):
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    PURPLE = "purple"
    PINK = "pink"
    BROWN = "brown"
    GRAY = "gray"


class EventSearchScope(str, Enum):
    ALL = "all"
    TITLE = "title"
    LOCATION = "location"
    ATTENDEES = "attendees"
    NOTES = "notes"


# =============================================================================
# PARTS
# =============================================================================

class EventAlert(Entity):
    """One reminder before an event; ``custom_minutes`` overrides the preset."""

    timing: AlertTiming = AlertTiming.FIFTEEN_MINUTES
    custom_minutes: Optional[int] = Field(default=None, ge=0)
    message: Optional[str] = Field(default=None, max_length=200)

    @property
    def lead_time(self) -> timedelta:
        if self.custom_minutes is not None:
            return timedelta(minutes=self.custom_minutes)
        return self.timing.lead_time

    @property
    def display_text(self) -> str:
        if self.custom_minutes is None:
            if self.timing == AlertTiming.AT_TIME:
                return "At time of event"
            return f"{self.timing.value.replace('_', ' ')} before"
        minutes = self.custom_minutes
        for unit, size in (("day", 1440), ("hour", 60)):
            if minutes >= size:
                count = minutes // size
                return f"{count} {unit}{'' if count == 1 else 's'} before"
        return f"{minutes} minute{'' if minutes == 1 else 's'} before"


class EventAttendee(Entity):
    name: StrippedStr = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=320)
    phone_number: Optional[str] = Field(default=None, max_length=50)
    response: AttendeeResponse = AttendeeResponse.PENDING
    is_organizer: bool = False

    @property
    def display_name(self) -> str:
        return f"{self.name} (Organizer)" if self.is_organizer else self.name


# =============================================================================
# EVENT
# =============================================================================

class CalendarEvent(Entity):
    """
    A scheduled block of time.

    All-day events never conflict with anything; timed events conflict
    when their [start, end) ranges overlap.
    """

    title: StrippedStr = Field(..., min_length=1, max_length=200)
    start_date: AwareDatetime
    end_date: AwareDatetime
    is_all_day: bool = False
    location: Optional[Location] = None
    notes: str = Field(default="", max_length=5000)
    url: Optional[str] = None
    priority: EventPriority = EventPriority.MEDIUM
    recurrence_rule: RecurrenceRule = RecurrenceRule.NEVER
    attendees: list[EventAttendee] = Field(default_factory=list)
    alerts: list[EventAlert] = Field(default_factory=list)
    calendar_color: CalendarColor = CalendarColor.BLUE
    time_zone: str = "UTC"
    travel_minutes: Optional[int] = Field(default=None, ge=0)
    task_id: Optional[UUID] = None

    created_date: AwareDatetime = Field(default_factory=utcnow)
    modified_date: AwareDatetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def default_end(cls, data: Any) -> Any:
        """An event without an end lasts one hour; new events start unmodified."""
        if isinstance(data, dict):
            data = dict(data)
            if data.get("end_date") is None and data.get("start_date") is not None:
                start = data["start_date"]
                if isinstance(start, datetime):
                    data["end_date"] = start + DEFAULT_EVENT_DURATION
            if data.get("created_date") is None:
                data["created_date"] = utcnow()
            if data.get("modified_date") is None:
                data["modified_date"] = data["created_date"]
        return data

    @model_validator(mode="after")
    def validate_range(self) -> "CalendarEvent":
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        if self.modified_date < self.created_date:
            raise ValueError("modified_date cannot be before created_date")
        return self

    @field_validator("time_zone")
    @classmethod
    def validate_time_zone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @property
    def duration(self) -> timedelta:
        return self.end_date - self.start_date

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_rule != RecurrenceRule.NEVER

    def is_happening(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.start_date <= now <= self.end_date

    def is_upcoming(self, now: Optional[datetime] = None) -> bool:
        return self.start_date > (now or utcnow())

    def status_text(self, now: Optional[datetime] = None) -> str:
        now = now or utcnow()
        if self.is_happening(now):
            return "Happening now"
        if self.is_upcoming(now):
            return "Upcoming"
        return "Past"

    def conflicts_with(self, other: "CalendarEvent") -> bool:
        if self.id == other.id or self.is_all_day or other.is_all_day:
            return False
        return self.start_date < other.end_date and self.end_date > other.start_date

    def alert_times(self) -> list[datetime]:
        """Fire times of every alert, earliest first."""
        return sorted({self.start_date - alert.lead_time for alert in self.alerts})

    def matches(self, query: str, scope: EventSearchScope = EventSearchScope.ALL) -> bool:
        """Case-insensitive substring match within ``scope``."""
        needle = query.casefold()
        fields = {
            EventSearchScope.TITLE: [self.title],
            EventSearchScope.NOTES: [self.notes],
            EventSearchScope.LOCATION: [self.location.name or ""] if self.location else [],
            EventSearchScope.ATTENDEES: [a.name for a in self.attendees],
        }
        if scope == EventSearchScope.ALL:
            haystack = [value for values in fields.values() for value in values]
        else:
            haystack = fields[scope]
        return any(needle in value.casefold() for value in haystack)


# =============================================================================
# FILTER
# =============================================================================

class EventFilter(BaseModel):
    """Narrowing options for the event list. The default lets everything through."""
    model_config = ConfigDict(frozen=True)

    window_start: Optional[AwareDatetime] = None
    window_end: Optional[AwareDatetime] = None
    priorities: frozenset[EventPriority] = frozenset(EventPriority)
    colors: frozenset[CalendarColor] = frozenset(CalendarColor)
    include_all_day: bool = True
    include_recurring: bool = True
    search_scope: EventSearchScope = EventSearchScope.ALL

    def matches(self, event: CalendarEvent, search_text: str = "") -> bool:
        if self.window_start is not None and self.window_end is not None:
            inside = (
                self.window_start <= event.start_date <= self.window_end
                or self.window_start <= event.end_date <= self.window_end
            )
            if not inside:
                return False
        if event.priority not in self.priorities or event.calendar_color not in self.colors:
            return False
        if event.is_all_day and not self.include_all_day:
            return False
        if event.is_recurring and not self.include_recurring:
            return False
        query = search_text.strip()
        return not query or event.matches(query, self.search_scope)


class FreeSlot(BaseModel):
    """A gap in the day long enough for the requested duration."""
    model_config = ConfigDict(frozen=True)

    start: AwareDatetime
    end: AwareDatetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def sample_events(now: datetime) -> list[CalendarEvent]:
    """First-run events relative to ``now``."""
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    def fifteen_minutes() -> list[EventAlert]:
        return [EventAlert(timing=AlertTiming.FIFTEEN_MINUTES)]

    return [
        CalendarEvent(
            title="Team Meeting",
            start_date=now + timedelta(hours=2),
            end_date=now + timedelta(hours=3),
            calendar_color=CalendarColor.BLUE,
            alerts=fifteen_minutes(),
            created_date=now,
        ),
        CalendarEvent(
            title="Lunch with Client",
            start_date=today + timedelta(days=1, hours=12),
            end_date=today + timedelta(days=1, hours=13, minutes=30),
            calendar_color=CalendarColor.GREEN,
            alerts=fifteen_minutes(),
            created_date=now,
        ),
        CalendarEvent(
            title="Project Review",
            start_date=today + timedelta(days=2, hours=14),
            end_date=today + timedelta(days=2, hours=16),
            calendar_color=CalendarColor.ORANGE,
            alerts=fifteen_minutes(),
            created_date=now,
        ),
        CalendarEvent(
            title="All-Day Conference",
            start_date=today + timedelta(days=3),
            end_date=today + timedelta(days=3, hours=23, minutes=59),
            is_all_day=True,
            calendar_color=CalendarColor.PURPLE,
            alerts=fifteen_minutes(),
            created_date=now,
        ),
    ]
