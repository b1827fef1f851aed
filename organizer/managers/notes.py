"""
Notes Manager

Notes and folders share one key-value file (``savedNotes`` and
``savedFolders``). Note edits arrive in bursts while the user types,
so the note blob is written on a trailing-edge debounce; folder
changes are rare and written immediately.

Deleting a note moves it to Recently Deleted. It is only removed for
good by ``purge_note`` or ``empty_trash``.
"""

from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from organizer.audit import AuditLogger
from organizer.managers.base import EntityCollection, EntityRef, ManagerBase, entity_id
from organizer.models.audit import AuditEventBuilder
from organizer.models.common import evolve, utcnow
from organizer.models.note import (
    RESERVED_FOLDER_NAMES,
    Note,
    NoteFolder,
    default_folders,
)
from organizer.queries.notes import filter_notes, notes_for_folder
from organizer.services.effects import EffectQueue
from organizer.services.storage import (
    CollectionStorage,
    DebouncedSaver,
    ImmediateSaver,
)
from organizer.validation import ValidationError


class NotesManager(ManagerBase):
    """In-memory notes and folders with debounced persistence."""

    family = "notes"

    def __init__(
        self,
        notes_storage: CollectionStorage[Note],
        folders_storage: CollectionStorage[NoteFolder],
        effects: EffectQueue,
        audit: Optional[AuditLogger] = None,
        debounce_seconds: float = 1.0,
        clock: Callable[[], datetime] = utcnow,
        timer_factory=None,
    ):
        super().__init__(effects, audit)
        self._notes: EntityCollection[Note] = EntityCollection(kind="note")
        self._folders: EntityCollection[NoteFolder] = EntityCollection(kind="folder")
        self._clock = clock

        saver_kwargs = {"timer_factory": timer_factory} if timer_factory else {}
        self._notes_saver = DebouncedSaver(
            notes_storage,
            self._notes_snapshot,
            effects,
            delay=debounce_seconds,
            on_error=self._on_save_error,
            **saver_kwargs,
        )
        self._folders_saver = ImmediateSaver(
            folders_storage, self._folders_snapshot, effects, on_error=self._on_save_error
        )

        self.search_text = ""
        self.selected_note_id: Optional[UUID] = None
        self.selected_folder_id: Optional[UUID] = None

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    def _notes_snapshot(self) -> list[Note]:
        with self._lock:
            return self._notes.snapshot()

    def _folders_snapshot(self) -> list[NoteFolder]:
        with self._lock:
            return self._folders.snapshot()

    @property
    def notes(self) -> list[Note]:
        return self._notes_snapshot()

    @property
    def folders(self) -> list[NoteFolder]:
        return self._folders_snapshot()

    @property
    def notes_saver(self) -> DebouncedSaver:
        return self._notes_saver

    @property
    def selected_note(self) -> Optional[Note]:
        with self._lock:
            if self.selected_note_id is None:
                return None
            return self._notes.find(self.selected_note_id)

    @property
    def selected_folder(self) -> Optional[NoteFolder]:
        with self._lock:
            if self.selected_folder_id is None:
                return None
            return self._folders.find(self.selected_folder_id)

    def get_note(self, note_id: UUID) -> Note:
        with self._lock:
            return self._notes.get(note_id)

    def get_folder(self, folder_id: UUID) -> NoteFolder:
        with self._lock:
            return self._folders.get(folder_id)

    def load(self) -> None:
        """Read notes and folders. The virtual folders are created when no folders exist."""
        notes, _ = self._load(self._notes_saver, list)
        folders, _ = self._load(self._folders_saver, list)

        create_defaults = not folders
        if create_defaults:
            folders = default_folders()

        with self._lock:
            self._notes.reset(notes)
            self._folders.reset(folders)

        if create_defaults:
            self._folders_saver.request()
        self._publish("loaded")

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    def _notes_changed(self, action: str, note_id: Optional[UUID]) -> None:
        self._publish(action, note_id)
        self._notes_saver.request()

    def add_note(self, title: str = "", content: str = "") -> Note:
        """Create a note and select it."""
        note = Note(title=title, content=content, created_date=self._clock())
        with self._lock:
            self._notes.add(note)
            self.selected_note_id = note.id

        self._audit.log_created("note", note.id, note.title or "Untitled")
        self._notes_changed("added", note.id)
        return note

    def update_note(self, note: Note) -> Note:
        """
        Replace the stored note and bump ``modified_date``.

        ``created_date`` always keeps the stored value.

        Raises:
            NotFoundError: If no note has that id
        """
        with self._lock:
            previous = self._notes.get(note.id)
            stored = evolve(
                note,
                created_date=previous.created_date,
                modified_date=max(self._clock(), previous.modified_date),
            )
            self._notes.replace(stored)
            self.selected_note_id = stored.id

        self._audit.log_updated("note", stored.id)
        self._notes_changed("updated", stored.id)
        return stored

    def _modify(self, note: EntityRef, **changes) -> Note:
        with self._lock:
            stored = evolve(self._notes.get(entity_id(note)), **changes)
            self._notes.replace(stored)
        return stored

    def delete_note(self, note: EntityRef) -> Note:
        """Move a note to Recently Deleted and clear the selection if it pointed there."""
        note_id = entity_id(note)
        with self._lock:
            stored = self._modify(note_id, deleted_at=self._clock())
            if self.selected_note_id == note_id:
                self.selected_note_id = None

        self._audit.log_deleted("note", note_id)
        self._notes_changed("deleted", note_id)
        return stored

    def restore_note(self, note: EntityRef) -> Note:
        """
        Bring a note back from Recently Deleted.

        Leaves ``modified_date`` alone: it tracks content edits, so a
        restored note keeps its place in the list.
        """
        stored = self._modify(note, deleted_at=None)
        self._audit.log(AuditEventBuilder.note_restored(stored.id))
        self._notes_changed("updated", stored.id)
        return stored

    def purge_note(self, note: EntityRef) -> Note:
        """Remove a note permanently."""
        note_id = entity_id(note)
        with self._lock:
            removed = self._notes.remove(note_id)
            if self.selected_note_id == note_id:
                self.selected_note_id = None

        self._audit.log(AuditEventBuilder.note_purged(note_id))
        self._notes_changed("purged", note_id)
        return removed

    def empty_trash(self) -> int:
        """Purge every note in Recently Deleted. Returns how many were removed."""
        with self._lock:
            doomed = [n.id for n in self._notes if n.is_deleted]
            self._notes.reset(n for n in self._notes.snapshot() if not n.is_deleted)
            if self.selected_note_id in doomed:
                self.selected_note_id = None

        for note_id in doomed:
            self._audit.log(AuditEventBuilder.note_purged(note_id))
        if doomed:
            self._notes_changed("purged", None)
        return len(doomed)

    def toggle_pin(self, note: EntityRef) -> Note:
        """Flip ``is_pinned``. Pinning is not a content edit, so ``modified_date`` is kept."""
        with self._lock:
            current = self._notes.get(entity_id(note))
            stored = self._modify(current, is_pinned=not current.is_pinned)
        self._notes_changed("updated", stored.id)
        return stored

    def move_note(self, note: EntityRef, folder_id: Optional[UUID]) -> Note:
        """
        File a note under ``folder_id`` (None for no folder).

        Filing is not a content edit, so ``modified_date`` is kept.

        Raises:
            NotFoundError: If the note or the folder does not exist
            ValidationError: If the folder is virtual
        """
        with self._lock:
            if folder_id is not None:
                folder = self._folders.get(folder_id)
                if folder.is_virtual:
                    raise ValidationError.for_field(
                        "folder", f"Notes cannot be moved into '{folder.name}'"
                    )
            stored = self._modify(note, folder_id=folder_id)
        self._notes_changed("updated", stored.id)
        return stored

    # -------------------------------------------------------------------------
    # Folders
    # -------------------------------------------------------------------------

    def add_folder(
        self,
        name: str,
        icon: str = "folder",
        color: str = "#007AFF",
    ) -> NoteFolder:
        """
        Create a user folder.

        Raises:
            ValidationError: For a blank, reserved or duplicate name
        """
        name = name.strip()
        if not name:
            raise ValidationError.for_field("name", "Folder name is required", "missing")
        if name in RESERVED_FOLDER_NAMES:
            raise ValidationError.for_field("name", f"'{name}' is a reserved folder name")

        folder = NoteFolder(name=name, icon=icon, color=color)
        with self._lock:
            if any(f.name.casefold() == name.casefold() for f in self._folders):
                raise ValidationError.for_field(
                    "name", f"A folder named '{name}' already exists", "duplicate"
                )
            self._folders.add(folder)

        self._audit.log_created("folder", folder.id, folder.name)
        self._publish("added", folder.id)
        self._folders_saver.request()
        return folder

    def delete_folder(self, folder: EntityRef) -> NoteFolder:
        """
        Delete a user folder. Its notes move to no folder and stay
        visible under All Notes.

        Raises:
            NotFoundError: If the folder does not exist
            ValidationError: If the folder is virtual
        """
        folder_id = entity_id(folder)
        with self._lock:
            current = self._folders.get(folder_id)
            if current.is_virtual:
                raise ValidationError.for_field(
                    "folder", f"'{current.name}' cannot be deleted"
                )
            self._folders.remove(folder_id)
            orphans = [n for n in self._notes if n.folder_id == folder_id]
            for note in orphans:
                self._notes.replace(evolve(note, folder_id=None))
            if self.selected_folder_id == folder_id:
                self.selected_folder_id = None

        self._audit.log_deleted("folder", folder_id)
        self._publish("deleted", folder_id)
        self._folders_saver.request()
        if orphans:
            self._notes_saver.request()
        return current

    # -------------------------------------------------------------------------
    # Selection and views
    # -------------------------------------------------------------------------

    def select_note(self, note: Optional[EntityRef]) -> None:
        with self._lock:
            self.selected_note_id = (
                None if note is None else self._notes.get(entity_id(note)).id
            )
        self._publish("view")

    def select_folder(self, folder: Optional[EntityRef]) -> None:
        with self._lock:
            self.selected_folder_id = (
                None if folder is None else self._folders.get(entity_id(folder)).id
            )
        self._publish("view")

    def filtered_notes(
        self,
        folder: Optional[NoteFolder] = None,
        search_text: Optional[str] = None,
    ) -> list[Note]:
        """Notes for ``folder`` (default: the selected folder) matching the search text."""
        with self._lock:
            notes = self._notes.snapshot()
            folder = folder or self.selected_folder
            search_text = self.search_text if search_text is None else search_text
        return filter_notes(notes, folder, search_text)

    def notes_for_folder(self, folder: NoteFolder) -> list[Note]:
        return notes_for_folder(self.notes, folder)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def flush(self) -> None:
        """Write pending note edits now."""
        self._notes_saver.flush()
        self._folders_saver.flush()

    def close(self) -> None:
        self._notes_saver.close()
        self._folders_saver.close()
