"""
Collection Managers

Each manager owns the in-memory collections of one entity family
and is the only place that mutates them.
"""

from organizer.managers.base import ChangeEvent, EntityCollection, ManagerBase, entity_id
from organizer.managers.calendar import CalendarManager
from organizer.managers.finance import FinanceManager, next_due_date
from organizer.managers.notes import NotesManager
from organizer.managers.tasks import TaskManager

__all__ = [
    "ChangeEvent",
    "EntityCollection",
    "ManagerBase",
    "entity_id",
    "CalendarManager",
    "FinanceManager",
    "next_due_date",
    "NotesManager",
    "TaskManager",
]
