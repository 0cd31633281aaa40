"""Service layer - caller-facing search, suggestion and rebuild operations."""

from .search_service import SearchService


__all__ = [
    "SearchService",
]
