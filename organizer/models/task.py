"""
Task Models

Tasks carry a priority, tags, an optional due date and reminder,
an optional location, sub-tasks and attachments.

INVARIANTS (checked on every construction):
- status == COMPLETED  <=>  completed_at is set
- updated_at >= created_at
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from organizer.models.common import Entity, Location, StrippedStr, utcnow


TaskLocation = Location


# =============================================================================
# ENUMS
# =============================================================================

class TaskPriority(str, Enum):
    """Task priority levels, totally ordered high > medium > low."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    TaskPriority.HIGH: 3,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 1,
}


class TaskTag(str, Enum):
    """Built-in task tags. The set is fixed; users cannot add tags."""
    WORK = "work"
    PERSONAL = "personal"
    HEALTH = "health"
    SHOPPING = "shopping"
    TRAVEL = "travel"
    FINANCE = "finance"
    LEARNING = "learning"
    SOCIAL = "social"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class TaskStatus(str, Enum):
    """Task workflow status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ViewMode(str, Enum):
    """Which slice of the task list a view shows."""
    INBOX = "inbox"
    HISTORY = "history"
    SEARCH = "search"


# =============================================================================
# OWNED RECORDS
# =============================================================================

class SubTask(Entity):
    """A checklist item owned by exactly one task."""

    title: StrippedStr = Field(..., min_length=1, max_length=200)
    is_completed: bool = False
    created_at: AwareDatetime = Field(default_factory=utcnow)


IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "heic", "webp"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "m4a", "aac"})


class TaskAttachment(Entity):
    """A file attached to a task. The file itself lives outside the store."""

    file_name: str = Field(..., min_length=1, max_length=255)
    file_type: str = Field(..., min_length=1, max_length=20)
    file_path: str = Field(..., min_length=1)
    created_at: AwareDatetime = Field(default_factory=utcnow)

    @property
    def is_image(self) -> bool:
        return self.file_type.lower() in IMAGE_EXTENSIONS

    @property
    def is_audio(self) -> bool:
        return self.file_type.lower() in AUDIO_EXTENSIONS


# =============================================================================
# TASK
# =============================================================================

class Task(Entity):
    """
    A to-do item.

    Tasks are values: the manager replaces a task with an evolved copy
    on every edit and stamps ``updated_at`` as it does so.
    """

    title: StrippedStr = Field(..., min_length=1, max_length=200)
    notes: str = Field(default="", max_length=5000)
    priority: TaskPriority = TaskPriority.MEDIUM
    tags: frozenset[TaskTag] = Field(default_factory=frozenset)
    status: TaskStatus = TaskStatus.PENDING

    due_date: Optional[AwareDatetime] = None
    reminder_enabled: bool = False
    reminder_date: Optional[AwareDatetime] = None
    location: Optional[Location] = None

    subtasks: list[SubTask] = Field(default_factory=list)
    attachments: list[TaskAttachment] = Field(default_factory=list)
    voice_note_url: Optional[str] = None

    created_at: AwareDatetime = Field(default_factory=utcnow)
    updated_at: AwareDatetime = Field(default_factory=utcnow)
    completed_at: Optional[AwareDatetime] = None

    @model_validator(mode="before")
    @classmethod
    def stamp_timestamps(cls, data: Any) -> Any:
        """A new task starts with updated_at == created_at."""
        if isinstance(data, dict):
            data = dict(data)
            if data.get("created_at") is None:
                data["created_at"] = utcnow()
            if data.get("updated_at") is None:
                data["updated_at"] = data["created_at"]
        return data

    @model_validator(mode="after")
    def validate_lifecycle(self) -> "Task":
        completed = self.status == TaskStatus.COMPLETED
        if completed != (self.completed_at is not None):
            raise ValueError(
                "completed_at must be set exactly when status is completed"
            )
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")
        return self

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def is_archived(self) -> bool:
        return self.status == TaskStatus.ARCHIVED

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """Due date has passed and the task is not completed."""
        if self.due_date is None or self.is_completed:
            return False
        return (now or utcnow()) > self.due_date

    @property
    def completed_subtasks_count(self) -> int:
        return sum(1 for s in self.subtasks if s.is_completed)

    @property
    def subtasks_progress(self) -> float:
        if not self.subtasks:
            return 0.0
        return self.completed_subtasks_count / len(self.subtasks)

    @property
    def has_location(self) -> bool:
        return self.location is not None

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments) or self.voice_note_url is not None

    @property
    def active_reminder(self) -> Optional[datetime]:
        """The reminder fire time if reminders are on and a date is set."""
        if self.reminder_enabled and self.reminder_date is not None:
            return self.reminder_date
        return None

    @property
    def history_timestamp(self) -> datetime:
        """When the task left the inbox (completion, else last update)."""
        return self.completed_at or self.updated_at


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class TaskStats(BaseModel):
    """Dashboard counters over the whole task collection."""
    model_config = ConfigDict(frozen=True)

    pending: int = Field(ge=0)
    in_progress: int = Field(ge=0)
    completed: int = Field(ge=0)
    overdue: int = Field(ge=0)
    total: int = Field(ge=0)

    @property
    def completion_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.completed / self.total

    @property
    def overdue_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.overdue / self.total


class HistoryGroup(BaseModel):
    """Completed or archived tasks that left the inbox on the same day."""
    model_config = ConfigDict(frozen=True)

    day: date
    label: str
    tasks: list[Task]


def sample_tasks(now: Optional[datetime] = None) -> list[Task]:
    """Starter tasks written on first run."""
    now = now or utcnow()
    hour = timedelta(hours=1)
    day = timedelta(days=1)
    return [
        Task(
            title="Complete project proposal",
            priority=TaskPriority.HIGH,
            tags=frozenset({TaskTag.WORK}),
            due_date=now + day,
            notes="Include budget analysis and timeline",
            created_at=now,
        ),
        Task(
            title="Buy groceries",
            priority=TaskPriority.MEDIUM,
            tags=frozenset({TaskTag.PERSONAL, TaskTag.SHOPPING}),
            due_date=now + hour,
            notes="Milk, bread, eggs",
            created_at=now,
        ),
        Task(
            title="Schedule dentist appointment",
            priority=TaskPriority.LOW,
            tags=frozenset({TaskTag.HEALTH}),
            due_date=now + 7 * day,
            notes="6-month checkup",
            created_at=now,
        ),
        Task(
            title="Plan weekend trip",
            priority=TaskPriority.MEDIUM,
            tags=frozenset({TaskTag.TRAVEL, TaskTag.PERSONAL}),
            due_date=now + 2 * day,
            notes="Research hotels and activities",
            created_at=now,
        ),
        Task(
            title="Review investment portfolio",
            priority=TaskPriority.HIGH,
            tags=frozenset({TaskTag.FINANCE}),
            due_date=now + 3 * day,
            notes="Q4 rebalancing",
            created_at=now,
        ),
    ]
