"""
Data Models Package

All pydantic models used by the organizer. Every record that is
persisted or passed between managers conforms to these schemas.
"""

from organizer.models.common import Entity, Location, add_months, evolve, utcnow
from organizer.models.task import (
    HistoryGroup,
    SubTask,
    Task,
    TaskAttachment,
    TaskLocation,
    TaskPriority,
    TaskStats,
    TaskStatus,
    TaskTag,
    ViewMode,
    sample_tasks,
)
from organizer.models.note import (
    ALL_NOTES,
    PINNED,
    RECENTLY_DELETED,
    RESERVED_FOLDER_NAMES,
    AttachmentType,
    Note,
    NoteAttachment,
    NoteFolder,
    default_folders,
)
from organizer.models.finance import (
    PREDEFINED_CATEGORIES,
    Account,
    AccountType,
    Bill,
    BillStatus,
    Budget,
    BudgetPeriod,
    CategorySpending,
    CategorySummary,
    Contribution,
    FinanceSummary,
    Priority,
    RecurringInterval,
    SavingsGoal,
    SavingsGoalCategory,
    TaxReport,
    Transaction,
    TransactionCategory,
    TransactionDraft,
    TransactionType,
)
from organizer.models.calendar import (
    AlertTiming,
    AttendeeResponse,
    CalendarColor,
    CalendarEvent,
    CalendarViewMode,
    EventAlert,
    EventAttendee,
    EventFilter,
    EventPriority,
    EventSearchScope,
    FreeSlot,
    RecurrenceRule,
    sample_events,
)
from organizer.models.validation import ValidationIssue, ValidationResult
from organizer.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Shared
    "Entity",
    "Location",
    "add_months",
    "evolve",
    "utcnow",
    # Task models
    "HistoryGroup",
    "SubTask",
    "Task",
    "TaskAttachment",
    "TaskLocation",
    "TaskPriority",
    "TaskStats",
    "TaskStatus",
    "TaskTag",
    "ViewMode",
    "sample_tasks",
    # Note models
    "ALL_NOTES",
    "PINNED",
    "RECENTLY_DELETED",
    "RESERVED_FOLDER_NAMES",
    "AttachmentType",
    "Note",
    "NoteAttachment",
    "NoteFolder",
    "default_folders",
    # Finance models
    "PREDEFINED_CATEGORIES",
    "Account",
    "AccountType",
    "Bill",
    "BillStatus",
    "Budget",
    "BudgetPeriod",
    "CategorySpending",
    "CategorySummary",
    "Contribution",
    "FinanceSummary",
    "Priority",
    "RecurringInterval",
    "SavingsGoal",
    "SavingsGoalCategory",
    "TaxReport",
    "Transaction",
    "TransactionCategory",
    "TransactionDraft",
    "TransactionType",
    # Calendar models
    "AlertTiming",
    "AttendeeResponse",
    "CalendarColor",
    "CalendarEvent",
    "CalendarViewMode",
    "EventAlert",
    "EventAttendee",
    "EventFilter",
    "EventPriority",
    "EventSearchScope",
    "FreeSlot",
    "RecurrenceRule",
    "sample_events",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
