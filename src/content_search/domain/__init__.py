"""Domain layer - content, query and result types with no infrastructure dependencies."""

from content_search.domain.errors import (
    ContentFetchError,
    ContentSearchError,
    NormalizationSkippedError,
    QueryValidationError,
)
from content_search.domain.model import Document, IndexableContent
from content_search.domain.search import (
    DateRange,
    IndexStatus,
    RebuildOutcome,
    SearchFilters,
    SearchQuery,
    SearchResponse,
    SearchResultItem,
    Suggestion,
)


__all__ = [
    "ContentFetchError",
    "ContentSearchError",
    "DateRange",
    "Document",
    "IndexStatus",
    "IndexableContent",
    "NormalizationSkippedError",
    "QueryValidationError",
    "RebuildOutcome",
    "SearchFilters",
    "SearchQuery",
    "SearchResponse",
    "SearchResultItem",
    "Suggestion",
]
