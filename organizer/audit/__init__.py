"""Audit logging package."""

from organizer.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
