"""
Tests for the task manager

Runs against a real JSON file in a temp directory, a synchronous
effect queue and the in-memory notification center.
"""

import pytest
from datetime import timedelta
from pathlib import Path
from uuid import uuid4

from organizer.config import AppSettings
from organizer.managers import TaskManager
from organizer.models import (
    Location,
    Task,
    TaskPriority,
    TaskStatus,
    TaskTag,
    ViewMode,
)
from organizer.models.common import evolve
from organizer.services.notifications import NotificationAction, SchedulingError
from organizer.services.storage import NotFoundError

from tests.conftest import NOW


def make_task(title="Task", **kwargs) -> Task:
    kwargs.setdefault("created_at", NOW)
    return Task(title=title, **kwargs)


class TestTaskCrud:
    """Tests for add, update and delete."""

    def test_add_task_persists_immediately(self, task_manager, task_storage):
        """Test that every add is written to storage at once."""
        writes_before = task_manager.saver.writes
        task = task_manager.add_task(make_task("Write report"))

        saved = task_storage.load_all()
        assert [t.id for t in saved] == [task.id]
        assert task_manager.saver.writes == writes_before + 1

    def test_add_duplicate_id_rejected(self, task_manager):
        """Test that the same id cannot be added twice."""
        task = task_manager.add_task(make_task())
        with pytest.raises(ValueError):
            task_manager.add_task(task)

    def test_update_replaces_in_place(self, task_manager):
        """Test that update keeps the collection order."""
        first = task_manager.add_task(make_task("First"))
        task_manager.add_task(make_task("Second"))

        task_manager.update_task(evolve(first, title="First, edited"))

        assert [t.title for t in task_manager.tasks] == ["First, edited", "Second"]

    def test_update_bumps_updated_at(self, task_manager, clock):
        """Test that updated_at moves forward on every write."""
        task = task_manager.add_task(make_task())
        clock.advance(minutes=5)

        stored = task_manager.update_task(evolve(task, notes="more detail"))

        assert stored.updated_at == NOW + timedelta(minutes=5)
        assert stored.created_at == NOW

    def test_update_keeps_original_created_at(self, task_manager, clock):
        """Test that a caller cannot rewrite when a task was created."""
        task = task_manager.add_task(make_task())
        clock.advance(hours=1)

        stored = task_manager.update_task(
            evolve(task, title="Renamed", created_at=NOW + timedelta(days=30))
        )

        assert stored.created_at == NOW
        assert stored.updated_at == NOW + timedelta(hours=1)
        assert task_manager.get_task(task.id).created_at == NOW

    def test_updated_at_never_moves_backwards(self, task_manager, clock):
        """Test that a clock going backwards does not rewind updated_at."""
        task = task_manager.add_task(make_task())
        clock.advance(minutes=10)
        stored = task_manager.update_task(evolve(task, notes="a"))
        clock.advance(minutes=-20)

        again = task_manager.update_task(evolve(stored, notes="b"))

        assert again.updated_at >= stored.updated_at

    def test_update_unknown_id_raises(self, task_manager):
        """Test that updating a task that was never added is surfaced."""
        with pytest.raises(NotFoundError):
            task_manager.update_task(make_task("Ghost"))

    def test_delete_unknown_id_raises(self, task_manager):
        """Test that deleting an unknown id is surfaced."""
        with pytest.raises(NotFoundError):
            task_manager.delete_task(uuid4())

    def test_delete_clears_selection(self, task_manager):
        """Test that deleting the selected task clears the selection."""
        task = task_manager.add_task(make_task())
        task_manager.selected_task_id = task.id

        task_manager.delete_task(task)

        assert task_manager.selected_task_id is None
        assert task_manager.tasks == []

    def test_subscribers_are_notified(self, task_manager):
        """Test that listeners see each mutation."""
        events = []
        unsubscribe = task_manager.subscribe(events.append)

        task = task_manager.add_task(make_task())
        task_manager.delete_task(task)
        unsubscribe()
        task_manager.add_task(make_task())

        assert [(e.family, e.action) for e in events] == [
            ("tasks", "added"),
            ("tasks", "deleted"),
        ]


class TestTaskStatus:
    """Tests for completion, archiving and rescheduling."""

    def test_pay_rent_scenario(self, task_manager, clock):
        """Test completing a task moves it from the inbox to history."""
        task = task_manager.add_task(make_task(
            "Pay rent",
            priority=TaskPriority.HIGH,
            due_date=NOW + timedelta(days=1),
        ))

        done = task_manager.toggle_completion(task)

        assert done.status == TaskStatus.COMPLETED
        assert done.is_completed
        assert done.completed_at == clock()
        assert done.id in [t.id for t in task_manager.filtered_tasks(ViewMode.HISTORY)]
        assert done.id not in [t.id for t in task_manager.filtered_tasks(ViewMode.INBOX)]

    def test_toggle_twice_reopens(self, task_manager):
        """Test that toggling a completed task makes it pending again."""
        task = task_manager.add_task(make_task())
        task_manager.toggle_completion(task)

        reopened = task_manager.toggle_completion(task)

        assert reopened.status == TaskStatus.PENDING
        assert reopened.completed_at is None

    def test_archive_clears_completed_at(self, task_manager):
        """Test that an archived task carries no completion time."""
        task = task_manager.add_task(make_task())
        task_manager.mark_as_completed(task)

        archived = task_manager.archive_task(task)

        assert archived.status == TaskStatus.ARCHIVED
        assert archived.completed_at is None
        assert archived.id in [t.id for t in task_manager.filtered_tasks(ViewMode.HISTORY)]

    def test_reschedule_moves_reminder_when_enabled(self, task_manager):
        """Test that rescheduling carries the reminder along."""
        task = task_manager.add_task(make_task(
            due_date=NOW + timedelta(hours=1),
            reminder_enabled=True,
            reminder_date=NOW + timedelta(hours=1),
        ))
        new_date = NOW + timedelta(days=2)

        moved = task_manager.reschedule_task(task, new_date)

        assert moved.due_date == new_date
        assert moved.reminder_date == new_date

    def test_reschedule_leaves_reminder_when_disabled(self, task_manager):
        """Test that rescheduling does not invent a reminder."""
        task = task_manager.add_task(make_task(due_date=NOW + timedelta(hours=1)))

        moved = task_manager.reschedule_task(task, NOW + timedelta(days=2))

        assert moved.reminder_date is None


class TestSubtasks:
    """Tests for sub-task editing."""

    def test_add_and_toggle_subtask(self, task_manager):
        """Test that a sub-task can be added and checked off."""
        task = task_manager.add_task(make_task())
        subtask = task_manager.add_subtask(task, "Step one")

        updated = task_manager.toggle_subtask(task, subtask.id)

        assert updated.completed_subtasks_count == 1
        assert updated.subtasks_progress == 1.0

    def test_remove_subtask(self, task_manager):
        """Test that removing a sub-task leaves the others."""
        task = task_manager.add_task(make_task())
        first = task_manager.add_subtask(task, "One")
        task_manager.add_subtask(task, "Two")

        updated = task_manager.remove_subtask(task, first.id)

        assert [s.title for s in updated.subtasks] == ["Two"]

    def test_unknown_subtask_raises(self, task_manager):
        """Test that toggling a missing sub-task is surfaced."""
        task = task_manager.add_task(make_task())
        with pytest.raises(NotFoundError):
            task_manager.toggle_subtask(task, uuid4())


class TestTaskViews:
    """Tests for filtering, sorting, history and stats."""

    def test_inbox_sort_is_stable(self, task_manager):
        """Test priority then due date, with insertion order breaking ties."""
        d1 = NOW + timedelta(days=1)
        d2 = NOW + timedelta(days=2)
        low = task_manager.add_task(make_task("low", priority=TaskPriority.LOW, due_date=d2))
        high_a = task_manager.add_task(make_task("high a", priority=TaskPriority.HIGH, due_date=d1))
        medium = task_manager.add_task(make_task("medium", priority=TaskPriority.MEDIUM))
        high_b = task_manager.add_task(make_task("high b", priority=TaskPriority.HIGH, due_date=d1))

        ordered = task_manager.filtered_tasks(ViewMode.INBOX)

        assert [t.id for t in ordered] == [high_a.id, high_b.id, medium.id, low.id]

    def test_undated_tasks_after_dated(self, task_manager):
        """Test that within a priority, undated tasks come last, newest first."""
        older = task_manager.add_task(make_task("older", created_at=NOW - timedelta(days=2)))
        newer = task_manager.add_task(make_task("newer", created_at=NOW - timedelta(days=1)))
        dated = task_manager.add_task(make_task("dated", due_date=NOW + timedelta(days=30)))

        ordered = task_manager.filtered_tasks(ViewMode.INBOX)

        assert [t.id for t in ordered] == [dated.id, newer.id, older.id]

    def test_search_matches_tags_and_location(self, task_manager):
        """Test that search looks at tags and location too."""
        task_manager.add_task(make_task("Gym", tags=frozenset({TaskTag.HEALTH})))
        task_manager.add_task(make_task(
            "Pick up parcel",
            location=Location(latitude=51.5, longitude=-0.12, name="Post Office"),
        ))
        task_manager.add_task(make_task("Unrelated"))

        assert [t.title for t in task_manager.search_tasks("health")] == ["Gym"]
        assert [t.title for t in task_manager.search_tasks("post office")] == ["Pick up parcel"]
        assert task_manager.view_mode == ViewMode.SEARCH

    def test_search_includes_completed(self, task_manager):
        """Test that search mode spans the inbox and history."""
        task = task_manager.add_task(make_task("Renew passport"))
        task_manager.mark_as_completed(task)

        assert [t.id for t in task_manager.search_tasks("passport")] == [task.id]

    def test_clear_search_returns_to_inbox(self, task_manager):
        """Test that clearing the search resets the view."""
        task_manager.search_tasks("anything")
        task_manager.clear_search()

        assert task_manager.view_mode == ViewMode.INBOX
        assert task_manager.search_text == ""

    def test_grouped_history_newest_day_first(self, task_manager, clock):
        """Test that history is bucketed per day, newest first."""
        first = task_manager.add_task(make_task("Day one"))
        task_manager.mark_as_completed(first)
        clock.advance(days=1)
        second = task_manager.add_task(make_task("Day two"))
        task_manager.mark_as_completed(second)

        groups = task_manager.grouped_history()

        assert [g.day for g in groups] == [
            (NOW + timedelta(days=1)).date(),
            NOW.date(),
        ]
        assert groups[0].tasks[0].id == second.id
        assert groups[1].label == "Mar 15, 2024"

    def test_overdue_counts_only_open_tasks(self, task_manager):
        """Test that a completed task with a past due date is not overdue."""
        past = NOW - timedelta(days=1)
        task_manager.add_task(make_task("Late", due_date=past))
        done = task_manager.add_task(make_task("Late but done", due_date=past))
        task_manager.mark_as_completed(done)
        task_manager.add_task(make_task("Future", due_date=NOW + timedelta(days=1)))

        stats = task_manager.stats()

        assert stats.overdue == 1
        assert stats.completed == 1
        assert stats.pending == 2
        assert stats.total == 3


class TestTaskReminders:
    """Tests for reminder scheduling through the task manager."""

    def test_reminder_scheduled_on_add(self, task_manager, scheduler, center):
        """Test that a future reminder is registered."""
        task = task_manager.add_task(make_task(
            reminder_enabled=True,
            reminder_date=NOW + timedelta(hours=2),
        ))

        assert scheduler.is_scheduled(task.id)
        assert center.get(scheduler.identifier_for(task.id)).body == task.title

    def test_edit_replaces_reminder(self, task_manager, center):
        """Test that editing a reminder never leaves two alerts behind."""
        task = task_manager.add_task(make_task(
            reminder_enabled=True,
            reminder_date=NOW + timedelta(hours=2),
        ))
        later = NOW + timedelta(hours=5)

        task_manager.update_task(evolve(task, reminder_date=later))

        assert len(center.pending_identifiers()) == 1
        assert center.get(center.pending_identifiers()[0]).fire_at == later

    def test_completion_cancels_reminder(self, task_manager, scheduler):
        """Test that a completed task has no pending alert."""
        task = task_manager.add_task(make_task(
            reminder_enabled=True,
            reminder_date=NOW + timedelta(hours=2),
        ))

        task_manager.mark_as_completed(task)

        assert not scheduler.is_scheduled(task.id)

    def test_delete_cancels_reminder(self, task_manager, scheduler):
        """Test that deleting a task cancels its alert."""
        task = task_manager.add_task(make_task(
            reminder_enabled=True,
            reminder_date=NOW + timedelta(hours=2),
        ))

        task_manager.delete_task(task)

        assert not scheduler.is_scheduled(task.id)

    def test_past_reminder_not_scheduled(self, task_manager, scheduler):
        """Test that a reminder in the past is not registered."""
        task = task_manager.add_task(make_task(
            reminder_enabled=True,
            reminder_date=NOW - timedelta(minutes=1),
        ))

        assert not scheduler.is_scheduled(task.id)

    def test_complete_action_toggles(self, task_manager, scheduler):
        """Test that the complete action completes the task."""
        task = task_manager.add_task(make_task())

        assert scheduler.on_action("complete", scheduler.identifier_for(task.id))

        assert task_manager.get_task(task.id).is_completed

    def test_snooze_action_moves_due_date(self, task_manager, scheduler, clock):
        """Test that snoozing pushes the reminder out by the offset."""
        task = task_manager.add_task(make_task(
            due_date=NOW + timedelta(minutes=1),
            reminder_enabled=True,
            reminder_date=NOW + timedelta(minutes=1),
        ))

        scheduler.on_action("snooze-15-minutes", str(task.id))

        snoozed = task_manager.get_task(task.id)
        assert snoozed.due_date == clock() + timedelta(minutes=15)
        assert snoozed.reminder_date == clock() + timedelta(minutes=15)
        assert scheduler.is_scheduled(task.id)

    def test_action_for_deleted_task_raises(self, task_manager):
        """Test that acting on a vanished task is surfaced."""
        with pytest.raises(NotFoundError):
            task_manager.handle_notification_action(NotificationAction.parse("complete"), uuid4())

    def test_scheduling_failure_is_reported(self, task_storage, effects, audit, settings, clock):
        """Test that a rejected alert leaves the task saved and sets the error."""

        class RejectingScheduler:
            def set_action_handler(self, handler):
                pass

            def cancel(self, entity_id):
                pass

            def schedule(self, *args, **kwargs):
                raise SchedulingError("permission denied")

            def identifier_for(self, entity_id):
                return f"task_{entity_id}"

        manager = TaskManager(
            task_storage, effects, scheduler=RejectingScheduler(),
            audit=audit, settings=settings, clock=clock,
        )
        manager.load()

        task = manager.add_task(make_task(
            reminder_enabled=True,
            reminder_date=NOW + timedelta(hours=1),
        ))

        assert manager.get_task(task.id) == task
        assert manager.error_message == "Failed to schedule reminder"


class TestTaskLoading:
    """Tests for first-run seeding and reload."""

    def test_first_run_seeds_sample_tasks(self, task_storage, effects, clock):
        """Test that sample tasks are written when no file exists."""
        seeding = AppSettings(seed_sample_data=True, async_effects=False)
        manager = TaskManager(task_storage, effects, settings=seeding, clock=clock)

        loaded = manager.load()

        assert len(loaded) == 5
        assert len(task_storage.load_all()) == 5

    def test_reload_restores_tasks(self, task_manager, task_storage, effects, settings, clock):
        """Test that a second manager sees what the first saved."""
        task = task_manager.add_task(make_task("Persist me", tags=frozenset({TaskTag.WORK})))

        second = TaskManager(task_storage, effects, settings=settings, clock=clock)
        second.load()

        assert second.tasks == [task]

    def test_corrupt_file_is_quarantined(self, tmp_path, task_storage, effects, settings, clock):
        """Test that unreadable data is set aside, not overwritten."""
        task_storage.path.write_text("{not json", encoding="utf-8")
        manager = TaskManager(task_storage, effects, settings=settings, clock=clock)

        assert manager.load() == []

        assert manager.error_message is not None
        assert not task_storage.path.exists()
        assert len(list(tmp_path.glob("tasks.json.corrupt-*"))) == 1

    def test_unreadable_file_is_not_overwritten(
        self, task_manager, task_storage, effects, settings, clock, monkeypatch
    ):
        """Test that a failed read blocks saves until a load succeeds."""
        for title in ("One", "Two", "Three"):
            task_manager.add_task(make_task(title))

        denied = [True]
        read_bytes = Path.read_bytes

        def guarded_read(path):
            if denied[0] and path == task_storage.path:
                raise PermissionError(13, "Permission denied", str(path))
            return read_bytes(path)

        monkeypatch.setattr(Path, "read_bytes", guarded_read)
        manager = TaskManager(task_storage, effects, settings=settings, clock=clock)

        assert manager.load() == []
        manager.add_task(make_task("Four"))

        assert manager.saver.blocked
        assert "will not be saved" in manager.error_message
        denied[0] = False
        assert [t.title for t in task_storage.load_all()] == ["One", "Two", "Three"]

        manager.load()
        manager.add_task(make_task("Five"))

        assert not manager.saver.blocked
        assert len(task_storage.load_all()) == 4
