"""
Tests for the pure query functions
"""

from datetime import date, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from organizer.models import (
    ALL_NOTES,
    PINNED,
    RECENTLY_DELETED,
    Budget,
    CalendarEvent,
    CalendarViewMode,
    EventAlert,
    Note,
    NoteFolder,
    Task,
    TaskPriority,
    TaskStatus,
    Transaction,
    TransactionType,
    ViewMode,
)
from organizer.queries import (
    budget_spent,
    category_spending,
    events_on,
    find_conflicts,
    find_free_slot,
    step_date,
    filter_notes,
    filter_tasks,
    group_history,
    notes_for_folder,
    sort_tasks,
)

from tests.conftest import NOW


def completed(title, at):
    return Task(title=title, status=TaskStatus.COMPLETED, completed_at=at, created_at=at - timedelta(days=1))


class TestTaskQueries:
    """Tests for task filtering, sorting and grouping."""

    def test_sort_by_priority_then_due(self):
        """Test the ordering keys in sequence."""
        low_early = Task(title="a", priority=TaskPriority.LOW, due_date=NOW)
        high_late = Task(title="b", priority=TaskPriority.HIGH, due_date=NOW + timedelta(days=2))
        high_early = Task(title="c", priority=TaskPriority.HIGH, due_date=NOW + timedelta(days=1))
        high_undated = Task(title="d", priority=TaskPriority.HIGH)

        ordered = sort_tasks([low_early, high_late, high_undated, high_early])

        assert [t.title for t in ordered] == ["c", "b", "d", "a"]

    def test_inbox_and_history_partition(self):
        """Test that every task lands in exactly one of inbox or history."""
        tasks = [
            Task(title="open"),
            Task(title="busy", status=TaskStatus.IN_PROGRESS),
            completed("done", NOW),
            Task(title="old", status=TaskStatus.ARCHIVED),
        ]

        inbox = {t.title for t in filter_tasks(tasks, ViewMode.INBOX)}
        history = {t.title for t in filter_tasks(tasks, ViewMode.HISTORY)}

        assert inbox == {"open", "busy"}
        assert history == {"done", "old"}
        assert len(filter_tasks(tasks, ViewMode.SEARCH)) == 4

    def test_blank_search_ignored(self):
        """Test that whitespace-only search text does not filter."""
        tasks = [Task(title="a"), Task(title="b")]
        assert len(filter_tasks(tasks, ViewMode.INBOX, "   ")) == 2

    def test_history_grouped_by_local_day(self):
        """Test that day buckets follow the display timezone."""
        # 03:00 UTC on the 16th is still the 15th in New York
        late_evening = completed("late", NOW.replace(day=16, hour=3))
        noon = completed("noon", NOW)

        groups = group_history([noon, late_evening], ZoneInfo("America/New_York"))

        assert [g.day for g in groups] == [date(2024, 3, 15)]
        assert [t.title for t in groups[0].tasks] == ["late", "noon"]


class TestNoteQueries:
    """Tests for folder views over notes."""

    def make_notes(self, folder):
        return [
            Note(title="plain", created_date=NOW),
            Note(title="pinned", is_pinned=True, created_date=NOW - timedelta(days=3)),
            Note(title="filed", folder_id=folder.id, created_date=NOW + timedelta(minutes=1)),
            Note(title="trashed", is_pinned=True, deleted_at=NOW, created_date=NOW),
        ]

    def test_virtual_folders(self):
        """Test All Notes, Pinned and Recently Deleted membership."""
        work = NoteFolder(name="Work")
        notes = self.make_notes(work)

        assert [n.title for n in notes_for_folder(notes, NoteFolder(name=ALL_NOTES))] == ["pinned", "filed", "plain"]
        assert [n.title for n in notes_for_folder(notes, NoteFolder(name=PINNED))] == ["pinned"]
        assert [n.title for n in notes_for_folder(notes, NoteFolder(name=RECENTLY_DELETED))] == ["trashed"]
        assert [n.title for n in notes_for_folder(notes, work)] == ["filed"]

    def test_no_folder_means_all_notes(self):
        """Test the unselected view."""
        notes = self.make_notes(NoteFolder(name="Work"))
        assert len(notes_for_folder(notes, None)) == 3

    def test_search_within_folder(self):
        """Test that search narrows the folder view."""
        notes = self.make_notes(NoteFolder(name="Work"))
        assert [n.title for n in filter_notes(notes, None, "PIN")] == ["pinned"]


class TestFinanceQueries:
    """Tests for budget and category aggregation."""

    def spend(self, amount, category, day):
        return Transaction(amount=Decimal(amount), category=category, merchant="x", date=day)

    def test_budget_spent_respects_window_and_type(self):
        """Test that only in-window expenses of the category count."""
        budget = Budget(
            name="Food", category="Food & Dining", amount=Decimal("300"),
            start_date=date(2024, 3, 1), end_date=date(2024, 3, 31),
        )
        transactions = [
            self.spend("20", "Food & Dining", NOW),
            self.spend("30", "Food & Dining", NOW - timedelta(days=30)),
            self.spend("40", "Shopping", NOW),
            Transaction(
                amount=Decimal("50"), type=TransactionType.INCOME,
                category="Food & Dining", merchant="refund", date=NOW,
            ),
        ]

        assert budget_spent(budget, transactions) == Decimal("20")

    def test_category_spending_against_budgets(self):
        """Test totals, shares and over-budget flags, largest first."""
        transactions = [
            self.spend("150", "Shopping", NOW),
            self.spend("30", "Food & Dining", NOW),
            self.spend("20", "Food & Dining", NOW),
        ]
        budgets = [Budget(name="Shop", category="Shopping", amount=Decimal("100"))]

        rows = category_spending(transactions, budgets, date(2024, 3, 1), date(2024, 3, 31))

        assert [r.category for r in rows] == ["Shopping", "Food & Dining"]
        assert rows[0].percentage == Decimal("0.75")
        assert rows[0].is_over_budget
        assert rows[0].remaining == Decimal("-50")
        assert rows[1].budget is None
        assert not rows[1].is_over_budget


class TestCalendarQueries:

    @staticmethod
    def event(title, start, hours=1, **kwargs):
        return CalendarEvent(
            title=title,
            start_date=start,
            end_date=start + timedelta(hours=hours),
            created_date=NOW,
            **kwargs,
        )

    def test_overnight_event_on_both_days(self):
        """Test that an event crossing midnight shows on each day it touches."""
        late = self.event("Night shift", NOW.replace(hour=22), hours=4)
        until_midnight = self.event("Movie", NOW.replace(hour=22), hours=2)
        utc = ZoneInfo("UTC")

        assert events_on([late, until_midnight], date(2024, 3, 15), utc) == [until_midnight, late]
        assert events_on([late, until_midnight], date(2024, 3, 16), utc) == [late]

    def test_day_is_taken_in_display_timezone(self):
        """Test that a UTC early-morning event belongs to the previous local day."""
        early = self.event("Call", NOW.replace(hour=2))
        new_york = ZoneInfo("America/New_York")

        assert events_on([early], date(2024, 3, 14), new_york) == [early]
        assert events_on([early], date(2024, 3, 15), new_york) == []

    def test_find_conflicts_reports_every_overlap(self):
        """Test that a chain of overlaps marks all its members."""
        a = self.event("A", NOW, hours=2)
        b = self.event("B", NOW + timedelta(hours=1), hours=2)
        c = self.event("C", NOW + timedelta(hours=2, minutes=30))
        d = self.event("D", NOW + timedelta(hours=6))

        assert find_conflicts([d, c, b, a]) == {a.id, b.id, c.id}

    def test_free_slot_ignores_all_day_events(self):
        """Test that an all-day event does not use up the working day."""
        holiday = self.event("Holiday", NOW.replace(hour=0), hours=23, is_all_day=True)

        slot = find_free_slot([holiday], date(2024, 3, 15), ZoneInfo("UTC"), timedelta(hours=8))

        assert slot.start == NOW.replace(hour=9)
        assert slot.end == NOW.replace(hour=17)

    def test_step_date_by_view_mode(self):
        """Test that each view mode steps by its own period."""
        leap_day = date(2024, 2, 29)

        assert step_date(leap_day, CalendarViewMode.DAY) == date(2024, 3, 1)
        assert step_date(leap_day, CalendarViewMode.WEEK, -1) == date(2024, 2, 22)
        assert step_date(leap_day, CalendarViewMode.MONTH) == date(2024, 3, 29)
        assert step_date(leap_day, CalendarViewMode.YEAR) == date(2025, 2, 28)

    def test_alert_text(self):
        """Test that custom alert offsets are shown in the largest whole unit."""
        assert EventAlert(custom_minutes=120).display_text == "2 hours before"
        assert EventAlert(custom_minutes=1440).display_text == "1 day before"
        assert EventAlert(custom_minutes=1).display_text == "1 minute before"
        assert EventAlert().display_text == "15 minutes before"
