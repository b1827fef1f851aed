"""
Queries Package

Pure filter, sort, grouping and statistics functions over entity
collections. Managers own the data; these only read it.
"""

from organizer.queries.tasks import (
    compute_stats,
    filter_tasks,
    group_history,
    matches_query,
    sort_tasks,
)
from organizer.queries.notes import filter_notes, notes_for_folder, sort_notes
from organizer.queries.finance import (
    budget_spent,
    build_summary,
    category_spending,
    filter_transactions,
    tax_report,
)

from organizer.queries.calendar import (
    events_in_hour,
    events_on,
    filter_events,
    find_conflicts,
    find_free_slot,
    sort_events,
    step_date,
    upcoming_events,
)

__all__ = [
    "compute_stats",
    "filter_tasks",
    "group_history",
    "matches_query",
    "sort_tasks",
    "filter_notes",
    "notes_for_folder",
    "sort_notes",
    "budget_spent",
    "build_summary",
    "category_spending",
    "filter_transactions",
    "tax_report",
    "events_in_hour",
    "events_on",
    "filter_events",
    "find_conflicts",
    "find_free_slot",
    "sort_events",
    "step_date",
    "upcoming_events",
]
