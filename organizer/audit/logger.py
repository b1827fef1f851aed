"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability of every mutation
2. A record of every recovered persistence or scheduling failure
3. Debugging capability

The audit logger:
- Is synchronous; managers call it outside their locks
- Gracefully handles failures (doesn't crash the app if logging fails)
"""

from typing import Optional
from uuid import UUID

import structlog

from organizer.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from organizer.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("organizer.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_created(self, entity_type: str, entity_id: UUID, label: str) -> None:
        self.log(AuditEventBuilder.entity_created(entity_type, entity_id, label))

    def log_updated(
        self,
        entity_type: str,
        entity_id: UUID,
        changed: Optional[list[str]] = None,
    ) -> None:
        self.log(AuditEventBuilder.entity_updated(entity_type, entity_id, changed))

    def log_deleted(self, entity_type: str, entity_id: UUID) -> None:
        self.log(AuditEventBuilder.entity_deleted(entity_type, entity_id))

    def log_task_status(self, task_id: UUID, status: str) -> None:
        """Log a completion, reopen or archive."""
        self.log(AuditEventBuilder.task_status_changed(task_id, status))

    def log_loaded(self, family: str, count: int, seeded: bool = False) -> None:
        self.log(AuditEventBuilder.data_loaded(family, count, seeded))

    def log_load_failed(
        self,
        family: str,
        error_message: str,
        quarantined: Optional[str] = None,
    ) -> None:
        """Log a corrupt or unreadable collection."""
        self.log(AuditEventBuilder.load_failed(family, error_message, quarantined))

    def log_save_failed(self, family: str, error_message: str) -> None:
        self.log(AuditEventBuilder.save_failed(family, error_message))

    def log_validation_failed(
        self,
        entity_type: str,
        stage: str,
        issues: list[dict],
    ) -> None:
        """Log validation failure."""
        self.log(AuditEventBuilder.validation_failed(entity_type, stage, issues))

    def log_scheduling_failed(self, entity_id: UUID, error_message: str) -> None:
        self.log(AuditEventBuilder.scheduling_failed(entity_id, error_message))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(error_type, error_message, details))
