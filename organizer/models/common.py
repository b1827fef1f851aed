"""
Shared model building blocks.

Every entity is an immutable pydantic record. Edits never mutate an
entity in place: a manager builds a replacement with ``evolve`` and
swaps it into its collection. ``evolve`` re-runs full validation, so
invariants declared on a model hold for every version of it.
"""

import calendar
from datetime import date, datetime, timezone
from typing import Annotated, Any, Optional, TypeVar
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, StringConstraints


M = TypeVar("M", bound=BaseModel)

# Titles and names are trimmed; free text such as note bodies is kept verbatim.
StrippedStr = Annotated[str, StringConstraints(strip_whitespace=True)]


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def evolve(model: M, **changes: Any) -> M:
    """
    Return a validated copy of ``model`` with ``changes`` applied.

    Unlike ``model_copy(update=...)`` this goes through validation,
    so a change that breaks an invariant raises instead of producing
    an inconsistent record.
    """
    data = model.model_dump()
    data.update(changes)
    return type(model).model_validate(data)


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole months, clamping to the end of short months."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


class Entity(BaseModel):
    """
    Base for all persisted records.

    Bytes fields are written as base64 so receipt images and note
    attachments survive a JSON round trip.
    """
    model_config = ConfigDict(
        frozen=True,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )

    id: UUID = Field(
        default_factory=uuid4,
        description="Opaque identity, assigned on construction"
    )


class Location(BaseModel):
    """
    A resolved place attached to a task or transaction.

    Produced by the external map search / reverse-geocoding
    collaborator; the core only stores the coordinate, name and
    address it returns.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    name: Optional[str] = Field(default=None, max_length=200)
    address: Optional[str] = Field(default=None, max_length=500)

    @property
    def formatted_address(self) -> str:
        parts = [p for p in (self.name, self.address) if p]
        return ", ".join(parts)
