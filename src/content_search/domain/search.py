"""Domain models for queries, results, suggestions and index status.

Value objects are immutable (frozen=True) so a cached response can be handed
to any number of callers without copying.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from content_search.domain.model import DocumentType, ensure_utc


StatusFilter = Literal["all", "published", "draft"]
SortBy = Literal["relevance", "recency", "popularity"]
SuggestionSource = Literal["history", "popular", "auto"]

# Lower value wins when the same suggestion text comes from several sources.
SOURCE_PRIORITY: dict[str, int] = {"history": 0, "popular": 1, "auto": 2}


class DateRange(BaseModel):
    """Inclusive publication date window. Either bound may be open."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end", mode="after")
    @classmethod
    def _normalize(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> DateRange:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("date range start must not be after end")
        return self

    def contains(self, value: datetime | None) -> bool:
        if value is None:
            return False
        if self.start is not None and value < self.start:
            return False
        return not (self.end is not None and value > self.end)


class SearchFilters(BaseModel):
    """Closed set of filters applied before scoring."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: DocumentType | None = None
    status: StatusFilter = "published"
    date_range: DateRange | None = None
    tags: frozenset[str] = frozenset()

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value: object) -> object:
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(str(tag).strip() for tag in value if str(tag).strip())
        return value

    def cache_fields(self) -> dict[str, object]:
        """Canonical, order-independent representation used in cache keys."""
        return {
            "type": self.type,
            "status": self.status,
            "start": self.date_range.start.isoformat() if self.date_range and self.date_range.start else None,
            "end": self.date_range.end.isoformat() if self.date_range and self.date_range.end else None,
            "tags": sorted(tag.casefold() for tag in self.tags),
        }


class SearchQuery(BaseModel):
    """A validated search request."""

    model_config = ConfigDict(frozen=True)

    term: str
    filters: SearchFilters = Field(default_factory=SearchFilters)
    page: int = 1
    page_size: int = 20
    sort_by: SortBy = "relevance"


class SearchResultItem(BaseModel):
    """A single ranked result as exposed to callers."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    excerpt: str
    type: DocumentType
    url: str
    tags: list[str] = Field(default_factory=list)
    published_at: datetime | None = None
    score: float


class SearchResponse(BaseModel):
    """Paginated search response."""

    model_config = ConfigDict(frozen=True)

    results: list[SearchResultItem] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20
    total_pages: int = 0
    query: str = ""
    type: DocumentType | Literal["all"] = "all"
    generation: int = 0


class Suggestion(BaseModel):
    """A single suggestion with its provenance."""

    model_config = ConfigDict(frozen=True)

    text: str
    source: SuggestionSource
    count: int | None = None


class IndexStatus(BaseModel):
    """Observability view of the published snapshot."""

    model_config = ConfigDict(frozen=True)

    generation: int
    built_at: datetime | None = None
    document_count: int
    state: str = "idle"


class RebuildOutcome(BaseModel):
    """Result of one ``rebuild()`` call.

    ``joined`` is set when the caller attached to a rebuild that was already
    in flight instead of starting a new one.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    generation: int
    document_count: int = 0
    skipped_count: int = 0
    duration_seconds: float = 0.0
    joined: bool = False
    reason: str = "manual"
    error_kind: Literal["content_fetch_failed", "build_failed"] | None = None
    error_message: str | None = None
