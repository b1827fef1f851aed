"""
Task Queries

DESIGN DECISION: Every derived view is a pure function of the task
list and its arguments. Nothing here mutates or caches; managers call
these under their lock and hand the result to the caller.

Sort contract (every view mode):
1. priority rank descending (high > medium > low)
2. due date ascending; undated tasks after all dated ones
3. undated ties: created_at descending (newest first)
4. anything still tied keeps collection order (stable sort)
"""

from collections import defaultdict
from datetime import date, datetime, tzinfo
from typing import Iterable, Optional

from organizer.models.common import utcnow
from organizer.models.task import HistoryGroup, Task, TaskStats, TaskStatus, ViewMode


def matches_query(task: Task, query: str) -> bool:
    """Case-insensitive substring match on title, notes, tags and location."""
    needle = query.casefold()
    haystack = [task.title, task.notes]
    haystack.extend(tag.value for tag in task.tags)
    if task.location is not None:
        haystack.extend(p for p in (task.location.address, task.location.name) if p)
    return any(needle in field.casefold() for field in haystack)


def _sort_key(task: Task) -> tuple:
    if task.due_date is not None:
        return (-task.priority.rank, 0, task.due_date.timestamp(), 0.0)
    return (-task.priority.rank, 1, 0.0, -task.created_at.timestamp())


def sort_tasks(tasks: Iterable[Task]) -> list[Task]:
    return sorted(tasks, key=_sort_key)


def in_view(task: Task, mode: ViewMode) -> bool:
    if mode == ViewMode.INBOX:
        return not task.is_completed and not task.is_archived
    if mode == ViewMode.HISTORY:
        return task.is_completed or task.is_archived
    return True


def filter_tasks(
    tasks: Iterable[Task],
    mode: ViewMode,
    search_text: str = "",
) -> list[Task]:
    """
    The tasks a view shows, sorted.

    inbox: not completed and not archived
    history: completed or archived
    search: everything
    A non-blank ``search_text`` further narrows any mode.
    """
    query = search_text.strip()
    selected = [
        t for t in tasks
        if in_view(t, mode) and (not query or matches_query(t, query))
    ]
    return sort_tasks(selected)


def group_history(
    tasks: Iterable[Task],
    tz: tzinfo,
    date_format: str = "%b %d, %Y",
) -> list[HistoryGroup]:
    """
    Completed/archived tasks bucketed by the local calendar day they
    left the inbox. Newest day first; newest task first within a day.
    """
    buckets: dict[date, list[Task]] = defaultdict(list)
    for task in tasks:
        if in_view(task, ViewMode.HISTORY):
            buckets[task.history_timestamp.astimezone(tz).date()].append(task)

    return [
        HistoryGroup(
            day=day,
            label=day.strftime(date_format),
            tasks=sorted(buckets[day], key=lambda t: t.history_timestamp, reverse=True),
        )
        for day in sorted(buckets, reverse=True)
    ]


def compute_stats(tasks: Iterable[Task], now: Optional[datetime] = None) -> TaskStats:
    """Single pass over the collection."""
    now = now or utcnow()
    counts = {TaskStatus.PENDING: 0, TaskStatus.IN_PROGRESS: 0, TaskStatus.COMPLETED: 0}
    overdue = 0
    total = 0
    for task in tasks:
        total += 1
        if task.status in counts:
            counts[task.status] += 1
        if task.is_overdue(now):
            overdue += 1

    return TaskStats(
        pending=counts[TaskStatus.PENDING],
        in_progress=counts[TaskStatus.IN_PROGRESS],
        completed=counts[TaskStatus.COMPLETED],
        overdue=overdue,
        total=total,
    )
