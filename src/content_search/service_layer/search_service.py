"""Search service orchestration layer.

``SearchService`` is the single entry point callers use. It validates input,
checks the TTL cache, runs the ranking or suggestion engine against the
snapshot published by the rebuild orchestrator, and fills the cache.

``search`` and ``suggest`` are synchronous, CPU-bound reads over in-memory
structures. Each call reads the published snapshot exactly once, and every
cache key carries that snapshot's generation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
import logging
from typing import Any

from pydantic import ValidationError

from content_search.adapters.content_source import AbstractContentSource
from content_search.config import Settings
from content_search.domain.errors import QueryValidationError
from content_search.domain.search import (
    IndexStatus,
    RebuildOutcome,
    SearchFilters,
    SearchQuery,
    SearchResponse,
    SearchResultItem,
    Suggestion,
)
from content_search.observability.metrics import CACHE_EVENTS, SEARCH_LATENCY, SEARCH_REQUESTS, track_latency
from content_search.observability.tracing import annotate_current_span
from content_search.search.normalizer import normalize_phrase
from content_search.search.ranking import SORT_KEYS, RankedPage, RankingEngine, query_tokens, validate_pagination
from content_search.search.suggestions import PopularityCounter, SuggestionEngine
from content_search.services.rebuild_orchestrator import RebuildOrchestrator
from content_search.services.sweep_scheduler import CacheSweepScheduler
from content_search.services.ttl_cache import TTLCache


logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 50


def _filters_key(filters: SearchFilters) -> tuple:
    return tuple(
        (name, tuple(value) if isinstance(value, list) else value) for name, value in filters.cache_fields().items()
    )


def _to_response(term: str, filters: SearchFilters, ranked: RankedPage) -> SearchResponse:
    return SearchResponse(
        results=[
            SearchResultItem(
                id=result.document.id,
                title=result.document.title,
                excerpt=result.highlight,
                type=result.document.type,
                url=result.document.url,
                tags=sorted(result.document.tags),
                published_at=result.document.published_at,
                score=result.score,
            )
            for result in ranked.results
        ],
        total=ranked.total,
        page=ranked.page,
        page_size=ranked.page_size,
        total_pages=ranked.total_pages,
        query=term,
        type=filters.type or "all",
        generation=ranked.generation,
    )


class SearchService:
    """High-level search, suggestion and rebuild operations."""

    def __init__(
        self,
        settings: Settings,
        content_source: AbstractContentSource,
        *,
        cache: TTLCache | None = None,
        popularity: PopularityCounter | None = None,
        orchestrator: RebuildOrchestrator | None = None,
        build_in_thread: bool = True,
    ) -> None:
        """Wire the engines together.

        Args:
            settings: Validated configuration (bounds, TTLs, highlight options)
            content_source: Source of truth the index is rebuilt from
            cache: Shared query cache; one is created from settings when omitted
            popularity: Counter feeding the ``popular`` suggestion source
            orchestrator: Pre-built orchestrator (must share ``cache``)
            build_in_thread: Build snapshots in a worker thread
        """
        self.settings = settings
        self.content_source = content_source
        self.cache = cache if cache is not None else TTLCache(settings.search_cache_ttl_seconds)
        self.popularity = popularity or PopularityCounter(settings.popular_terms_capacity)
        self.orchestrator = orchestrator or RebuildOrchestrator(
            content_source, self.cache, build_in_thread=build_in_thread
        )
        self.ranking = RankingEngine(
            max_page_size=settings.max_page_size,
            highlight_window=settings.highlight_window,
            highlight_style=settings.highlight_style,
        )
        self.suggestions = SuggestionEngine(self.popularity)
        self.sweeper = CacheSweepScheduler(self.cache, settings.cache_sweep_schedule)

    async def start(self) -> RebuildOutcome | None:
        """Start the cache sweeper and, when configured, run the first rebuild."""
        self.orchestrator.attach_loop(asyncio.get_running_loop())
        self.sweeper.start()
        if not self.settings.rebuild_on_startup:
            return None
        return await self.rebuild_index(reason="startup")

    async def shutdown(self) -> None:
        await self.sweeper.stop()
        await self.orchestrator.shutdown()
        await self.content_source.close()

    def search(
        self,
        term: str,
        filters: SearchFilters | Mapping[str, Any] | None = None,
        page: int = 1,
        page_size: int | None = None,
        sort_by: str = "relevance",
    ) -> SearchResponse:
        """Ranked, paginated full-text search.

        Raises:
            QueryValidationError: a parameter is out of range. Raised before
                the snapshot or the cache is touched.
        """
        with track_latency(SEARCH_LATENCY, operation="search"):
            try:
                query = self._validate_search(term, filters, page, page_size, sort_by)
            except QueryValidationError as exc:
                SEARCH_REQUESTS.labels(operation="search", status="invalid").inc()
                logger.debug("Rejected search request: %s", exc)
                raise

            snapshot = self.orchestrator.snapshot
            key = (
                "search",
                snapshot.generation,
                query.term,
                _filters_key(query.filters),
                query.page,
                query.page_size,
                query.sort_by,
            )
            response = self.cache.get(key)
            hit = response is not None
            if hit:
                CACHE_EVENTS.labels(operation="search", event="hit").inc()
            else:
                CACHE_EVENTS.labels(operation="search", event="miss").inc()
                ranked = self.ranking.search(snapshot, query)
                response = _to_response(query.term, query.filters, ranked)
                self.cache.set(key, response, ttl=self.settings.search_cache_ttl_seconds)
            annotate_current_span(generation=snapshot.generation, total=response.total, cache_hit=hit)

            if query_tokens(query.term):
                self.popularity.record(query.term)
            SEARCH_REQUESTS.labels(operation="search", status="ok").inc()
            return response

    def suggest(
        self,
        prefix: str,
        limit: int | None = None,
        history: Sequence[str] | None = None,
    ) -> list[Suggestion]:
        """Suggestions for ``prefix``; an empty prefix returns trending terms.

        Raises:
            QueryValidationError: prefix too long or limit out of range.
        """
        with track_latency(SEARCH_LATENCY, operation="suggest"):
            try:
                prefix, limit, recent = self._validate_suggest(prefix, limit, history)
            except QueryValidationError as exc:
                SEARCH_REQUESTS.labels(operation="suggest", status="invalid").inc()
                logger.debug("Rejected suggest request: %s", exc)
                raise

            snapshot = self.orchestrator.snapshot
            key = ("suggest", snapshot.generation, normalize_phrase(prefix), limit, recent)
            cached = self.cache.get(key)
            hit = cached is not None
            if hit:
                CACHE_EVENTS.labels(operation="suggest", event="hit").inc()
                suggestions = list(cached)
            else:
                CACHE_EVENTS.labels(operation="suggest", event="miss").inc()
                suggestions = self.suggestions.suggest(snapshot, prefix, recent, limit)
                self.cache.set(key, tuple(suggestions), ttl=self.settings.suggestion_cache_ttl_seconds)
            annotate_current_span(generation=snapshot.generation, total=len(suggestions), cache_hit=hit)

            SEARCH_REQUESTS.labels(operation="suggest", status="ok").inc()
            return suggestions

    async def rebuild_index(self, reason: str = "manual") -> RebuildOutcome:
        """Rebuild now, or join the rebuild in flight. Safe to call repeatedly."""
        return await self.orchestrator.rebuild(reason)

    def index_status(self) -> IndexStatus:
        return self.orchestrator.status()

    def notify_content_changed(self, document_id: str | None = None, change: str = "updated") -> bool:
        """Content mutation hook. Callable from synchronous code once ``start`` has run."""
        return self.orchestrator.notify_content_changed(document_id, change)

    def _validate_search(
        self,
        term: str,
        filters: SearchFilters | Mapping[str, Any] | None,
        page: int,
        page_size: int | None,
        sort_by: str,
    ) -> SearchQuery:
        if not isinstance(term, str):
            raise QueryValidationError("term", "term must be a string")
        term = term.strip()
        if len(term) > self.settings.max_term_length:
            raise QueryValidationError("term", f"term must be at most {self.settings.max_term_length} characters")

        if page_size is None:
            page_size = self.settings.default_page_size
        validate_pagination(page, page_size, self.settings.max_page_size)

        if sort_by not in SORT_KEYS:
            raise QueryValidationError("sort_by", f"sort_by must be one of {sorted(SORT_KEYS)}")

        if filters is None:
            parsed = SearchFilters()
        elif isinstance(filters, SearchFilters):
            parsed = filters
        else:
            try:
                parsed = SearchFilters.model_validate(dict(filters))
            except ValidationError as exc:
                first = exc.errors()[0]
                location = ".".join(str(part) for part in first["loc"]) or "filters"
                raise QueryValidationError(f"filters.{location}", first["msg"]) from exc

        return SearchQuery(term=term, filters=parsed, page=page, page_size=page_size, sort_by=sort_by)

    def _validate_suggest(
        self,
        prefix: str,
        limit: int | None,
        history: Sequence[str] | None,
    ) -> tuple[str, int, tuple[str, ...]]:
        if prefix is None:
            prefix = ""
        if not isinstance(prefix, str):
            raise QueryValidationError("prefix", "prefix must be a string")
        if len(prefix) > self.settings.max_prefix_length:
            raise QueryValidationError(
                "prefix", f"prefix must be at most {self.settings.max_prefix_length} characters"
            )

        if limit is None:
            limit = self.settings.default_suggestion_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= self.settings.max_suggestion_limit:
            raise QueryValidationError("limit", f"limit must be between 1 and {self.settings.max_suggestion_limit}")

        if isinstance(history, str):
            history = [history]
        recent = tuple(str(entry) for entry in (history or ())[:MAX_HISTORY_ENTRIES])
        return prefix, limit, recent
