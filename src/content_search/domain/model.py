"""Domain model - content records and indexed documents.

Two shapes of the same content exist:

- ``IndexableContent`` is what the content collaborator hands over: raw
  markup body, loosely formatted status/type/tags, camelCase or snake_case keys.
- ``Document`` is the immutable value placed into an index snapshot: the body
  is already normalized plain text and every field is canonical.

A content change never mutates a ``Document``; the next rebuild produces a new
value from a fresh ``IndexableContent``.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


DocumentType = Literal["post", "page"]
ContentStatus = Literal["published", "draft", "archived"]
IndexedStatus = Literal["published", "draft"]


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps as UTC so comparisons never mix aware and naive values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _tag_name(tag: Any) -> str:
    if isinstance(tag, dict):
        return str(tag.get("name") or tag.get("slug") or "")
    return str(tag)


class IndexableContent(BaseModel):
    """A raw content record as returned by ``fetch_indexable_content``."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str = Field(min_length=1)
    type: DocumentType = "post"
    title: str = ""
    raw_body: str = ""
    tags: tuple[str, ...] = ()
    status: ContentStatus = "published"
    published_at: datetime | None = None
    popularity: int = Field(default=0, ge=0)
    slug: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("type", "status", mode="before")
    @classmethod
    def _lowercase_enum(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("title", "raw_body", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _flatten_tags(cls, value: Any) -> Any:
        # Tags arrive either as plain names or as {"name": ..., "slug": ...} objects.
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        if isinstance(value, Iterable):
            return tuple(name for name in (_tag_name(tag).strip() for tag in value) if name)
        return value

    @field_validator("published_at", mode="after")
    @classmethod
    def _normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class Document(BaseModel):
    """Immutable, index-ready document held by a snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: DocumentType
    title: str
    body: str
    tags: frozenset[str] = frozenset()
    status: IndexedStatus = "published"
    published_at: datetime | None = None
    popularity: int = Field(default=0, ge=0)
    slug: str | None = None

    @property
    def url(self) -> str:
        return f"/{self.type}s/{self.slug or self.id}"

    @property
    def published_timestamp(self) -> float:
        """Seconds since epoch, or ``-inf`` when the document was never published."""
        if self.published_at is None:
            return float("-inf")
        return self.published_at.timestamp()

    def has_tags(self, wanted: Iterable[str]) -> bool:
        own = {tag.casefold() for tag in self.tags}
        return all(tag.casefold() in own for tag in wanted)
