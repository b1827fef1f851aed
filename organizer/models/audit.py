"""
Audit Models

Every mutation and every recovered failure produces an audit event.
Events are written to the structured log and, when configured, to an
append-only JSON-lines file.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import AwareDatetime, BaseModel, Field

from organizer.models.common import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""

    # Tasks
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    TASK_COMPLETED = "task_completed"
    TASK_REOPENED = "task_reopened"
    TASK_ARCHIVED = "task_archived"

    # Notes
    NOTE_CREATED = "note_created"
    NOTE_UPDATED = "note_updated"
    NOTE_DELETED = "note_deleted"
    NOTE_RESTORED = "note_restored"
    NOTE_PURGED = "note_purged"
    FOLDER_CREATED = "folder_created"
    FOLDER_DELETED = "folder_deleted"

    # Finance
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_DELETED = "entity_deleted"
    BILL_PAID = "bill_paid"
    VALIDATION_FAILED = "validation_failed"

    # Persistence
    DATA_LOADED = "data_loaded"
    DATA_SEEDED = "data_seeded"
    LOAD_FAILED = "load_failed"
    SAVE_FAILED = "save_failed"

    # Notifications
    NOTIFICATION_SCHEDULED = "notification_scheduled"
    NOTIFICATION_CANCELLED = "notification_cancelled"
    NOTIFICATION_ACTION = "notification_action"
    SCHEDULING_FAILED = "scheduling_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: AwareDatetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'task', 'note', 'transaction')"
    )
    entity_id: Optional[UUID] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entity_created("task", task.id, task.title)
        event = AuditEventBuilder.save_failed("tasks", str(exc))
    """

    _CREATED = {
        "task": AuditEventType.TASK_CREATED,
        "note": AuditEventType.NOTE_CREATED,
        "folder": AuditEventType.FOLDER_CREATED,
    }
    _UPDATED = {
        "task": AuditEventType.TASK_UPDATED,
        "note": AuditEventType.NOTE_UPDATED,
    }
    _DELETED = {
        "task": AuditEventType.TASK_DELETED,
        "note": AuditEventType.NOTE_DELETED,
        "folder": AuditEventType.FOLDER_DELETED,
    }

    @staticmethod
    def entity_created(entity_type: str, entity_id: UUID, label: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventBuilder._CREATED.get(
                entity_type, AuditEventType.ENTITY_CREATED
            ),
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} created: {label}"[:500],
            is_user_action=True,
        )

    @staticmethod
    def entity_updated(
        entity_type: str,
        entity_id: UUID,
        changed: Optional[list[str]] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventBuilder._UPDATED.get(
                entity_type, AuditEventType.ENTITY_UPDATED
            ),
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} updated",
            details={"changed_fields": changed or []},
            is_user_action=True,
        )

    @staticmethod
    def entity_deleted(entity_type: str, entity_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventBuilder._DELETED.get(
                entity_type, AuditEventType.ENTITY_DELETED
            ),
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} deleted",
            is_user_action=True,
        )

    @staticmethod
    def task_status_changed(task_id: UUID, status: str) -> AuditEvent:
        event_type = {
            "completed": AuditEventType.TASK_COMPLETED,
            "archived": AuditEventType.TASK_ARCHIVED,
        }.get(status, AuditEventType.TASK_REOPENED)
        return AuditEvent(
            event_type=event_type,
            entity_type="task",
            entity_id=task_id,
            description=f"Task marked {status}",
            details={"status": status},
            is_user_action=True,
        )

    @staticmethod
    def note_restored(note_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTE_RESTORED,
            entity_type="note",
            entity_id=note_id,
            description="Note restored from Recently Deleted",
            is_user_action=True,
        )

    @staticmethod
    def note_purged(note_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTE_PURGED,
            entity_type="note",
            entity_id=note_id,
            description="Note permanently deleted",
            is_user_action=True,
        )

    @staticmethod
    def bill_paid(bill_id: UUID, name: str, amount: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_PAID,
            entity_type="bill",
            entity_id=bill_id,
            description=f"Bill paid: {name} - {amount}",
            details={"name": name, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        stage: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            description=f"{stage.capitalize()} validation failed with {len(issues)} issues",
            details={"stage": stage, "issues": issues},
        )

    @staticmethod
    def data_loaded(family: str, count: int, seeded: bool = False) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_SEEDED if seeded else AuditEventType.DATA_LOADED,
            entity_type=family,
            description=(
                f"Seeded {count} {family}" if seeded else f"Loaded {count} {family}"
            ),
            details={"count": count},
        )

    @staticmethod
    def load_failed(family: str, error_message: str, quarantined: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAD_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=family,
            description=f"Failed to load {family}",
            error_message=error_message,
            details={"quarantined_to": quarantined},
        )

    @staticmethod
    def save_failed(family: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=family,
            description=f"Failed to save {family}",
            error_message=error_message,
        )

    @staticmethod
    def notification_scheduled(entity_id: UUID, identifier: str, fire_at: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_SCHEDULED,
            entity_type="notification",
            entity_id=entity_id,
            description=f"Reminder scheduled for {fire_at}",
            details={"identifier": identifier, "fire_at": fire_at},
        )

    @staticmethod
    def notification_cancelled(entity_id: UUID, identifier: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_CANCELLED,
            entity_type="notification",
            entity_id=entity_id,
            description="Reminder cancelled",
            details={"identifier": identifier},
        )

    @staticmethod
    def notification_action(entity_id: UUID, action_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_ACTION,
            entity_type="notification",
            entity_id=entity_id,
            description=f"Notification action: {action_id}",
            details={"action_id": action_id},
            is_user_action=True,
        )

    @staticmethod
    def scheduling_failed(entity_id: UUID, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULING_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="notification",
            entity_id=entity_id,
            description="Failed to schedule reminder",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
