"""Index item models shared by persistence, cache and API layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class ItemFilter:
    """Filter for count and list queries; unset fields match everything."""

    campus: str | None = None
    letter: str | None = None
    created_since: datetime | None = None


class IndexItemBase(BaseModel):
    """Fields an editor supplies for an index item."""

    title: str = Field(min_length=1, max_length=500)
    url: str = Field(min_length=1, max_length=2048)
    letter: str = Field(min_length=1, max_length=1)
    campus: str = Field(min_length=1, max_length=200)


class IndexItemCreate(IndexItemBase):
    """Payload for creating an index item."""


class IndexItemUpdate(BaseModel):
    """Partial update payload; omitted fields keep their value."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    url: str | None = Field(default=None, min_length=1, max_length=2048)
    letter: str | None = Field(default=None, min_length=1, max_length=1)
    campus: str | None = Field(default=None, min_length=1, max_length=200)


class IndexItem(IndexItemBase):
    """A stored index item."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime
