"""
Notes Models

Notes live in at most one real folder. Three reserved folder names
are virtual: their contents are computed from the notes themselves
rather than from folder membership.
"""

from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import AwareDatetime, Field, field_validator, model_validator

from organizer.models.common import Entity, StrippedStr, utcnow


ALL_NOTES = "All Notes"
PINNED = "Pinned"
RECENTLY_DELETED = "Recently Deleted"

RESERVED_FOLDER_NAMES = frozenset({ALL_NOTES, PINNED, RECENTLY_DELETED})


class AttachmentType(str, Enum):
    """Kinds of media a note can carry."""
    IMAGE = "image"
    AUDIO = "audio"
    DRAWING = "drawing"
    DOCUMENT = "document"


class NoteAttachment(Entity):
    """Raw bytes supplied by the image/file collaborator."""

    type: AttachmentType
    data: bytes
    file_name: str = Field(..., min_length=1, max_length=255)
    created_date: AwareDatetime = Field(default_factory=utcnow)


class Note(Entity):
    """
    A free-form note.

    ``deleted_at`` marks a note as moved to Recently Deleted; it stays
    in the collection until purged.
    """

    title: StrippedStr = Field(default="", max_length=500)
    content: str = ""
    is_pinned: bool = False
    folder_id: Optional[UUID] = None
    tags: list[str] = Field(default_factory=list)
    attachments: list[NoteAttachment] = Field(default_factory=list)

    created_date: AwareDatetime = Field(default_factory=utcnow)
    modified_date: AwareDatetime = Field(default_factory=utcnow)
    deleted_at: Optional[AwareDatetime] = None

    @model_validator(mode="before")
    @classmethod
    def stamp_dates(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("created_date") is None:
                data["created_date"] = utcnow()
            if data.get("modified_date") is None:
                data["modified_date"] = data["created_date"]
        return data

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on title or content."""
        needle = query.casefold()
        return needle in self.title.casefold() or needle in self.content.casefold()


class NoteFolder(Entity):
    """A user folder, or one of the three virtual folders."""

    name: StrippedStr = Field(..., min_length=1, max_length=100)
    icon: str = Field(default="folder", max_length=50)
    color: str = Field(default="#007AFF", pattern=r"^#[0-9A-Fa-f]{6}$")

    @field_validator("color")
    @classmethod
    def normalize_color(cls, v: str) -> str:
        return v.upper()

    @property
    def is_virtual(self) -> bool:
        return self.name in RESERVED_FOLDER_NAMES


def default_folders() -> list[NoteFolder]:
    """The virtual folders created on first run."""
    return [
        NoteFolder(name=ALL_NOTES, icon="tray", color="#007AFF"),
        NoteFolder(name=PINNED, icon="pin", color="#FF9500"),
        NoteFolder(name=RECENTLY_DELETED, icon="trash", color="#FF3B30"),
    ]
