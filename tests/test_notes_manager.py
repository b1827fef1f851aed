"""
Tests for the notes manager

Debounce timers are fakes from conftest; a test fires them explicitly
to stand for the quiet period passing.
"""

import pytest
from datetime import timedelta
from uuid import uuid4

from organizer.managers import NotesManager
from organizer.models import ALL_NOTES, PINNED, RECENTLY_DELETED, Note, NoteFolder
from organizer.models.common import evolve
from organizer.services.storage import KeyValueStorage, NotFoundError
from organizer.validation import ValidationError

from tests.conftest import NOW


def folder_named(manager: NotesManager, name: str) -> NoteFolder:
    return next(f for f in manager.folders if f.name == name)


def saved_notes(preferences) -> list[Note]:
    return KeyValueStorage(preferences, "savedNotes", Note).load_all() or []


class TestNotesLoading:
    """Tests for first-run folders and reload."""

    def test_first_run_creates_virtual_folders(self, notes_manager, preferences):
        """Test that the three virtual folders exist and are saved."""
        names = [f.name for f in notes_manager.folders]
        assert names == [ALL_NOTES, PINNED, RECENTLY_DELETED]

        stored = KeyValueStorage(preferences, "savedFolders", NoteFolder).load_all()
        assert [f.name for f in stored] == names

    def test_reload_keeps_folder_ids(self, notes_manager, preferences, effects, clock):
        """Test that a second load does not recreate the folders."""
        folder = notes_manager.add_folder("Recipes")

        second = NotesManager(
            KeyValueStorage(preferences, "savedNotes", Note),
            KeyValueStorage(preferences, "savedFolders", NoteFolder),
            effects,
            clock=clock,
        )
        second.load()

        assert folder.id in {f.id for f in second.folders}
        assert len(second.folders) == 4

    def test_corrupt_blob_set_aside(self, preferences, effects, clock):
        """Test that one bad blob is quarantined and the other survives."""
        preferences.set("savedNotes", "[{\"title\": 5}]")
        manager = NotesManager(
            KeyValueStorage(preferences, "savedNotes", Note),
            KeyValueStorage(preferences, "savedFolders", NoteFolder),
            effects,
            clock=clock,
        )

        manager.load()

        assert manager.notes == []
        assert manager.error_message is not None
        assert any(k.startswith("savedNotes.corrupt-") for k in preferences.keys())


class TestNoteEditing:
    """Tests for note CRUD and the debounced save."""

    def test_add_note_selects_it(self, notes_manager):
        """Test that a new note becomes the selection."""
        note = notes_manager.add_note("Groceries", "eggs")
        assert notes_manager.selected_note == note

    def test_update_bumps_modified_date(self, notes_manager, clock):
        """Test that editing a note stamps modified_date."""
        note = notes_manager.add_note("Draft")
        clock.advance(seconds=30)

        stored = notes_manager.update_note(evolve(note, content="more"))

        assert stored.modified_date == NOW + timedelta(seconds=30)

    def test_update_keeps_content_verbatim(self, notes_manager, preferences):
        """Test that indentation and trailing newlines survive an edit and a save."""
        code = "    def f():\n        return 1\n"
        note = notes_manager.add_note("  Snippet  ")

        stored = notes_manager.update_note(evolve(note, content=code))
        notes_manager.flush()

        assert stored.content == code
        assert stored.title == "Snippet"
        assert saved_notes(preferences)[0].content == code

    def test_update_keeps_original_created_date(self, notes_manager, clock):
        """Test that a caller cannot rewrite when a note was created."""
        note = notes_manager.add_note("Draft")
        clock.advance(minutes=1)

        stored = notes_manager.update_note(
            evolve(note, content="more", created_date=NOW - timedelta(days=365))
        )

        assert stored.created_date == NOW
        assert notes_manager.get_note(note.id).created_date == NOW

    def test_pin_move_and_restore_keep_modified_date(self, notes_manager, clock):
        """Test that pinning, filing and restoring do not count as content edits."""
        note = notes_manager.add_note("Draft")
        folder = notes_manager.add_folder("Work")
        clock.advance(minutes=5)

        notes_manager.toggle_pin(note)
        stored = notes_manager.move_note(note, folder.id)

        assert stored.is_pinned
        assert stored.folder_id == folder.id
        assert stored.modified_date == note.modified_date

        notes_manager.delete_note(note)
        clock.advance(minutes=5)
        restored = notes_manager.restore_note(note)

        assert restored.deleted_at is None
        assert restored.modified_date == note.modified_date

    def test_update_unknown_note_raises(self, notes_manager):
        """Test that editing a note that does not exist is surfaced."""
        with pytest.raises(NotFoundError):
            notes_manager.update_note(Note(title="Ghost"))

    def test_burst_of_edits_writes_once(self, notes_manager, preferences, timers):
        """Test that N quick edits produce one write holding the last state."""
        saver = notes_manager.notes_saver
        writes_before = saver.writes

        note = notes_manager.add_note("v0")
        for i in range(1, 5):
            note = notes_manager.update_note(evolve(note, title=f"v{i}"))

        assert saver.pending
        assert saver.writes == writes_before
        assert len(timers.live) == 1

        timers.live[0].fire()

        assert saver.writes == writes_before + 1
        assert [n.title for n in saved_notes(preferences)] == ["v4"]

    def test_stale_timer_does_not_write(self, notes_manager, timers):
        """Test that a cancelled timer firing late is ignored."""
        saver = notes_manager.notes_saver
        note = notes_manager.add_note("first")
        notes_manager.update_note(evolve(note, title="second"))
        stale = timers.timers[-2]
        writes_before = saver.writes

        stale.fire()

        assert stale.cancelled
        assert saver.writes == writes_before
        assert saver.pending

    def test_flush_writes_pending_edits(self, notes_manager, preferences):
        """Test that flush does not wait for the quiet period."""
        notes_manager.add_note("Keep me")

        notes_manager.flush()

        assert not notes_manager.notes_saver.pending
        assert [n.title for n in saved_notes(preferences)] == ["Keep me"]

    def test_close_flushes_and_refuses_more(self, notes_manager, preferences):
        """Test that closing writes the final state."""
        notes_manager.add_note("Last words")

        notes_manager.close()

        assert [n.title for n in saved_notes(preferences)] == ["Last words"]
        with pytest.raises(RuntimeError):
            notes_manager.add_note("Too late")


class TestRecentlyDeleted:
    """Tests for soft delete, restore and purge."""

    def test_delete_moves_to_recently_deleted(self, notes_manager):
        """Test that a deleted note is only listed under Recently Deleted."""
        note = notes_manager.add_note("Old idea")

        notes_manager.delete_note(note)

        trash = folder_named(notes_manager, RECENTLY_DELETED)
        everything = folder_named(notes_manager, ALL_NOTES)
        assert [n.id for n in notes_manager.notes_for_folder(trash)] == [note.id]
        assert notes_manager.notes_for_folder(everything) == []
        assert notes_manager.selected_note is None

    def test_restore_brings_note_back(self, notes_manager):
        """Test that restoring clears the deletion mark."""
        note = notes_manager.add_note("Maybe")
        notes_manager.delete_note(note)

        restored = notes_manager.restore_note(note)

        assert not restored.is_deleted
        assert restored.id in [n.id for n in notes_manager.filtered_notes()]

    def test_empty_trash_purges_only_deleted(self, notes_manager):
        """Test that empty_trash leaves live notes alone."""
        keep = notes_manager.add_note("keep")
        for title in ("a", "b"):
            notes_manager.delete_note(notes_manager.add_note(title))

        assert notes_manager.empty_trash() == 2
        assert [n.id for n in notes_manager.notes] == [keep.id]

    def test_purge_unknown_note_raises(self, notes_manager):
        """Test that purging an unknown id is surfaced."""
        with pytest.raises(NotFoundError):
            notes_manager.purge_note(uuid4())


class TestFolders:
    """Tests for folder management and folder views."""

    def test_pinned_notes_sort_first(self, notes_manager, clock):
        """Test pinned first, then most recently modified."""
        old = notes_manager.add_note("old")
        clock.advance(minutes=1)
        new = notes_manager.add_note("new")
        notes_manager.toggle_pin(old)

        ordered = notes_manager.filtered_notes(folder_named(notes_manager, ALL_NOTES))

        assert [n.id for n in ordered] == [old.id, new.id]
        pinned = notes_manager.notes_for_folder(folder_named(notes_manager, PINNED))
        assert [n.id for n in pinned] == [old.id]

    def test_search_within_folder(self, notes_manager):
        """Test that search matches title or content in the chosen folder."""
        folder = notes_manager.add_folder("Work")
        match = notes_manager.move_note(notes_manager.add_note("Standup", "sprint notes"), folder.id)
        notes_manager.move_note(notes_manager.add_note("Retro"), folder.id)
        notes_manager.add_note("Sprint elsewhere")

        found = notes_manager.filtered_notes(folder, "SPRINT")

        assert [n.id for n in found] == [match.id]

    def test_delete_folder_orphans_notes(self, notes_manager):
        """Test that notes of a deleted folder stay visible under All Notes."""
        folder = notes_manager.add_folder("Travel")
        notes = [
            notes_manager.move_note(notes_manager.add_note(title), folder.id)
            for title in ("Flights", "Hotels")
        ]

        notes_manager.delete_folder(folder)

        assert all(notes_manager.get_note(n.id).folder_id is None for n in notes)
        visible = notes_manager.notes_for_folder(folder_named(notes_manager, ALL_NOTES))
        assert {n.id for n in visible} == {n.id for n in notes}
        assert folder.id not in {f.id for f in notes_manager.folders}

    def test_virtual_folder_cannot_be_deleted(self, notes_manager):
        """Test that the virtual folders are protected."""
        with pytest.raises(ValidationError):
            notes_manager.delete_folder(folder_named(notes_manager, PINNED))

    @pytest.mark.parametrize("name", ["", "   ", "Pinned", "All Notes"])
    def test_invalid_folder_names_rejected(self, notes_manager, name):
        """Test that blank and reserved names are refused."""
        with pytest.raises(ValidationError):
            notes_manager.add_folder(name)

    def test_duplicate_folder_name_rejected(self, notes_manager):
        """Test that folder names are unique ignoring case."""
        notes_manager.add_folder("Ideas")
        with pytest.raises(ValidationError) as exc_info:
            notes_manager.add_folder("ideas")
        assert exc_info.value.result.issues[0].issue_type == "duplicate"

    def test_move_into_virtual_folder_rejected(self, notes_manager):
        """Test that notes cannot be filed under a virtual folder."""
        note = notes_manager.add_note("x")
        with pytest.raises(ValidationError):
            notes_manager.move_note(note, folder_named(notes_manager, PINNED).id)

    def test_move_into_unknown_folder_raises(self, notes_manager):
        """Test that an unknown folder id is surfaced."""
        note = notes_manager.add_note("x")
        with pytest.raises(NotFoundError):
            notes_manager.move_note(note, uuid4())
