"""
Note Queries

Folder views are computed, not stored. The three virtual folders
select notes by their own state; a real folder selects by folder_id.
Notes in Recently Deleted appear nowhere else.

Order everywhere: pinned first, then most recently modified.
"""

from typing import Iterable, Optional

from organizer.models.note import ALL_NOTES, PINNED, RECENTLY_DELETED, Note, NoteFolder


def sort_notes(notes: Iterable[Note]) -> list[Note]:
    by_modified = sorted(notes, key=lambda n: n.modified_date, reverse=True)
    return sorted(by_modified, key=lambda n: not n.is_pinned)


def in_folder(note: Note, folder: Optional[NoteFolder]) -> bool:
    if folder is None or folder.name == ALL_NOTES:
        return not note.is_deleted
    if folder.name == PINNED:
        return note.is_pinned and not note.is_deleted
    if folder.name == RECENTLY_DELETED:
        return note.is_deleted
    return note.folder_id == folder.id and not note.is_deleted


def notes_for_folder(notes: Iterable[Note], folder: Optional[NoteFolder]) -> list[Note]:
    return sort_notes(n for n in notes if in_folder(n, folder))


def filter_notes(
    notes: Iterable[Note],
    folder: Optional[NoteFolder],
    search_text: str = "",
) -> list[Note]:
    """Notes of ``folder`` whose title or content contains ``search_text``."""
    query = search_text.strip()
    return sort_notes(
        n for n in notes
        if in_folder(n, folder) and (not query or n.matches(query))
    )
